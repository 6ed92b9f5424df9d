from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field

from mixnotes.database import get_db
from mixnotes.models import User, Comment, ReactionType
from mixnotes.services.comment_service import CommentService
from mixnotes.services.reaction_service import ReactionService
from .auth import get_current_user

router = APIRouter(prefix="/comments", tags=["Comments"])

class FrequencyRange(BaseModel):
    low: float = Field(..., ge=0)
    high: float = Field(..., gt=0)


class AttachmentIn(BaseModel):
    type: str
    url: str
    thumbnail: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None


class CommentCreate(BaseModel):
    # Presence and range checks happen in CommentService so they surface as 400
    text: Optional[str] = None
    timestamp: Optional[float] = None
    duration: Optional[float] = None
    category: Optional[str] = Field(None, alias="type")
    frequency_range: Optional[FrequencyRange] = None
    attachments: Optional[List[AttachmentIn]] = None

    model_config = {"populate_by_name": True}


class ReplyCreate(CommentCreate):
    """Same body as a comment; any timestamp sent is replaced by the parent's."""


class CommentUpdate(BaseModel):
    text: Optional[str] = None
    status: Optional[str] = None


class ReactionRequest(BaseModel):
    type: Optional[str] = None


class StatusRequest(BaseModel):
    status: Optional[str] = None


def comment_response(comment: Comment, replies: Optional[List[Comment]] = None) -> dict:
    """Serialize a comment; top-level comments carry their replies"""
    counts = {reaction_type.value: 0 for reaction_type in ReactionType}
    for reaction in comment.reactions:
        counts[reaction.type.value] += 1

    data = {
        "id": comment.id,
        "track_id": comment.track_id,
        "parent_id": comment.parent_id,
        "is_reply": comment.is_reply,
        "author": {"id": comment.author.id, "username": comment.author.username},
        "timestamp": comment.timestamp,
        "duration": comment.duration,
        "frequency_range": (
            {"low": comment.frequency_low, "high": comment.frequency_high}
            if comment.frequency_low is not None else None
        ),
        "text": comment.text,
        "type": comment.category.value,
        "status": comment.status.value,
        "attachments": [
            {
                "id": attachment.id,
                "type": attachment.type.value,
                "url": attachment.url,
                "thumbnail": attachment.thumbnail,
                "metadata": attachment.extra,
            }
            for attachment in comment.attachments
        ],
        "reactions": [
            {"user_id": reaction.user_id, "type": reaction.type.value, "created_at": reaction.created_at}
            for reaction in comment.reactions
        ],
        "reaction_counts": counts,
        "created_at": comment.created_at,
        "updated_at": comment.updated_at,
    }
    if replies is not None:
        data["replies"] = [comment_response(reply) for reply in replies]
    return data


@router.post("/{comment_id}/replies", status_code=status.HTTP_201_CREATED)
def add_reply(
    comment_id: int,
    reply_in: ReplyCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Reply to a comment; the reply takes the parent's timestamp
    """
    reply = CommentService(db).reply(comment_id, current_user, reply_in.model_dump(exclude_none=True))
    return comment_response(reply)


@router.put("/{comment_id}")
def update_comment(
    comment_id: int,
    comment_in: CommentUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Edit text or status (author only)
    """
    comment_service = CommentService(db)
    comment = comment_service.update(comment_id, current_user, comment_in.model_dump(exclude_none=True))
    return _with_replies(comment)


@router.delete("/{comment_id}")
def delete_comment(
    comment_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Delete a comment; replies go with a top-level comment
    """
    CommentService(db).delete(comment_id, current_user)
    return {}


@router.post("/{comment_id}/reactions")
def toggle_reaction(
    comment_id: int,
    reaction_in: ReactionRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Toggle a reaction: adds it, or removes it when already present
    """
    comment = ReactionService(db).toggle(comment_id, current_user, reaction_in.type)
    return _with_replies(comment)


@router.put("/{comment_id}/status")
def change_status(
    comment_id: int,
    status_in: StatusRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Change review status (author, track uploader or project owner)
    """
    comment = CommentService(db).change_status(comment_id, current_user, status_in.status)
    return _with_replies(comment)


def _with_replies(comment: Comment) -> dict:
    return comment_response(comment, None if comment.is_reply else list(comment.replies))
