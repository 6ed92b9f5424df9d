import logging
import re
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from mixnotes.models import (
    User, Track, Comment, TopLevelComment, Reply, CommentAttachment,
    CommentCategory, CommentStatus, AttachmentType, Capability
)
from .errors import NotFoundError, ValidationError, AuthorizationError
from .permission_service import PermissionService
from .track_service import TrackService

logger = logging.getLogger(__name__)

MAX_TEXT_LENGTH = 1000
MENTION_PATTERN = re.compile(r"@(\w+)")

# Labels used by the older review board for the same field
STATUS_ALIASES = {
    "in_progress": CommentStatus.ADDRESSED,
    "resolved": CommentStatus.COMPLETED,
    "wont_fix": CommentStatus.REJECTED,
}


def parse_status(value) -> CommentStatus:
    """
    Map a requested status onto the canonical enumeration

    Raises:
        ValidationError: If the value is missing or unknown
    """
    if value is None or value == "":
        raise ValidationError("Please provide a status")
    if isinstance(value, CommentStatus):
        return value
    key = str(value).strip().lower()
    if key in STATUS_ALIASES:
        return STATUS_ALIASES[key]
    try:
        return CommentStatus(key)
    except ValueError:
        allowed = ", ".join(s.value for s in CommentStatus)
        raise ValidationError(f"Invalid status '{value}'; expected one of: {allowed}")


def extract_mentions(text: str) -> List[str]:
    return MENTION_PATTERN.findall(text or "")


def _clean_text(text: Optional[str]) -> str:
    text = (text or "").strip()
    if not text:
        raise ValidationError("Please add a comment")
    if len(text) > MAX_TEXT_LENGTH:
        raise ValidationError(f"Comment cannot be more than {MAX_TEXT_LENGTH} characters")
    return text


class CommentService:
    """
    Service for timestamped comments on tracks.

    Threads are two levels deep: a TopLevelComment anchored on the
    timeline and a flat list of Replies that share its timestamp.
    Status changes go through change_status, which admits the track
    uploader and project owner as well as the author.
    """

    def __init__(self, db: Session):
        self.db = db
        self.permissions = PermissionService(db)
        self.tracks = TrackService(db)

    def get_comment(self, comment_id: int) -> Comment:
        comment = self.db.query(Comment).filter(Comment.id == comment_id).first()
        if not comment:
            raise NotFoundError(f"Comment not found with id of {comment_id}")
        return comment

    def _track_of(self, comment: Comment) -> Track:
        return self.tracks.get_track(comment.track_id)

    def list_top_level(self, track_id: int) -> List[TopLevelComment]:
        """Top-level comments on a track, earliest point on the timeline first"""
        return (
            self.db.query(TopLevelComment)
            .filter(TopLevelComment.track_id == track_id)
            .order_by(TopLevelComment.timestamp, TopLevelComment.created_at, TopLevelComment.id)
            .all()
        )

    def attach_replies(self, comments: List[TopLevelComment]) -> List[Tuple[TopLevelComment, List[Reply]]]:
        """
        Pair each top-level comment with its replies

        Replies share their parent's timestamp, so they are ordered by
        creation time instead.
        """
        if not comments:
            return []

        by_parent: Dict[int, List[Reply]] = {comment.id: [] for comment in comments}
        replies = (
            self.db.query(Reply)
            .filter(Reply.parent_id.in_(list(by_parent)))
            .order_by(Reply.created_at, Reply.id)
            .all()
        )
        for reply in replies:
            by_parent[reply.parent_id].append(reply)

        return [(comment, by_parent[comment.id]) for comment in comments]

    def list_thread(self, track_id: int, user: User) -> List[Tuple[TopLevelComment, List[Reply]]]:
        track = self.tracks.get_track(track_id)
        self.permissions.require(user, track.project, Capability.VIEW, "access comments for this track")
        return self.attach_replies(self.list_top_level(track.id))

    def _apply_common_fields(self, comment: Comment, payload: dict) -> None:
        duration = payload.get("duration")
        if duration is not None:
            if duration < 0:
                raise ValidationError("Duration cannot be negative")
            comment.duration = duration

        frequency_range = payload.get("frequency_range")
        if frequency_range:
            low, high = frequency_range.get("low"), frequency_range.get("high")
            if low is None or high is None:
                raise ValidationError("Frequency range needs both low and high")
            if low < 0 or low >= high:
                raise ValidationError("Frequency range must satisfy 0 <= low < high")
            comment.frequency_low = low
            comment.frequency_high = high

        category = payload.get("category")
        if category:
            try:
                comment.category = CommentCategory(category)
            except ValueError:
                raise ValidationError(f"Invalid comment type '{category}'")

        for attachment in payload.get("attachments") or []:
            try:
                attachment_type = AttachmentType(attachment.get("type"))
            except ValueError:
                raise ValidationError(f"Invalid attachment type '{attachment.get('type')}'")
            if not attachment.get("url"):
                raise ValidationError("Attachment url is required")
            comment.attachments.append(CommentAttachment(
                type=attachment_type,
                url=attachment["url"],
                thumbnail=attachment.get("thumbnail"),
                extra=attachment.get("metadata")
            ))

    def _log_mentions(self, comment: Comment) -> None:
        # Observational only; must never fail the write it follows
        try:
            mentions = extract_mentions(comment.text)
            if mentions:
                logger.info(f"Mentions found in comment {comment.id}: {mentions}")
        except Exception:
            logger.exception(f"Mention scan failed for comment {comment.id}")

    def create(self, track_id: int, user: User, payload: dict) -> TopLevelComment:
        """
        Add a top-level comment to a track

        Args:
            track_id: ID of the track
            user: Author (needs comment capability)
            payload: text, timestamp and optional duration, category,
                frequency_range and attachments

        Returns:
            Created TopLevelComment
        """
        text = _clean_text(payload.get("text"))
        timestamp = payload.get("timestamp")
        if timestamp is None:
            raise ValidationError("Please provide a timestamp in seconds")
        if timestamp < 0:
            raise ValidationError("Timestamp cannot be negative")

        track = self.tracks.get_track(track_id)
        self.permissions.require(user, track.project, Capability.COMMENT, "add comments to this track")

        comment = TopLevelComment(
            track_id=track.id,
            author_id=user.id,
            timestamp=timestamp,
            text=text,
            status=CommentStatus.OPEN
        )
        self._apply_common_fields(comment, payload)

        self.db.add(comment)
        self.db.commit()
        self.db.refresh(comment)

        logger.info(f"Comment {comment.id} added to track {track.id} at {timestamp}s by user {user.id}")
        self._log_mentions(comment)
        return comment

    def reply(self, parent_id: int, user: User, payload: dict) -> Reply:
        """
        Reply to a comment

        The reply always takes the parent's timestamp. Replying to a reply
        attaches to that reply's thread root, so threads stay one level deep.
        """
        text = _clean_text(payload.get("text"))

        parent = self.get_comment(parent_id)
        if isinstance(parent, Reply):
            parent = parent.parent

        track = self._track_of(parent)
        self.permissions.require(user, track.project, Capability.COMMENT, "reply to comments on this track")

        reply = Reply(
            track_id=parent.track_id,
            author_id=user.id,
            parent_id=parent.id,
            timestamp=parent.timestamp,
            text=text,
            status=CommentStatus.OPEN
        )
        self._apply_common_fields(reply, payload)

        self.db.add(reply)
        self.db.commit()
        self.db.refresh(reply)

        logger.info(f"Reply {reply.id} added to comment {parent.id} by user {user.id}")
        self._log_mentions(reply)
        return reply

    def update(self, comment_id: int, user: User, patch: dict) -> Comment:
        """
        Edit a comment's text or status (author only)
        """
        comment = self.get_comment(comment_id)
        if comment.author_id != user.id:
            logger.warning(f"User {user.id} denied edit of comment {comment.id}")
            raise AuthorizationError("Not authorized to update this comment")

        status = parse_status(patch["status"]) if patch.get("status") is not None else None
        if patch.get("text") is not None:
            comment.text = _clean_text(patch["text"])
        if status is not None:
            comment.status = status
        comment.updated_at = datetime.utcnow()

        self.db.commit()
        self.db.refresh(comment)

        if patch.get("text") is not None:
            self._log_mentions(comment)
        return comment

    def delete(self, comment_id: int, user: User) -> int:
        """
        Delete a comment; deleting a top-level comment removes its replies first

        Args:
            comment_id: ID of the comment
            user: Author or project owner

        Returns:
            int: Number of comment records removed
        """
        comment = self.get_comment(comment_id)

        if comment.author_id != user.id:
            track = self._track_of(comment)
            if track.project.owner_id != user.id:
                logger.warning(f"User {user.id} denied delete of comment {comment.id}")
                raise AuthorizationError("Not authorized to delete this comment")

        removed = 1
        if isinstance(comment, TopLevelComment):
            # The replies cascade; the unit of work deletes them before their parent
            removed += len(comment.replies)

        self.db.delete(comment)
        self.db.commit()

        logger.info(f"Comment {comment_id} deleted by user {user.id} ({removed} records)")
        return removed

    def change_status(self, comment_id: int, user: User, new_status) -> Comment:
        """
        Move a comment through the review workflow

        Allowed for the comment author, the track's uploader or the
        project owner. Any status may follow any other.
        """
        status = parse_status(new_status)
        comment = self.get_comment(comment_id)

        if comment.author_id != user.id:
            track = self._track_of(comment)
            if track.uploader_id != user.id and track.project.owner_id != user.id:
                logger.warning(f"User {user.id} denied status change of comment {comment.id}")
                raise AuthorizationError("Not authorized to change the status of this comment")

        comment.status = status
        comment.updated_at = datetime.utcnow()
        self.db.commit()
        self.db.refresh(comment)

        logger.info(f"Comment {comment.id} status set to {status.value} by user {user.id}")
        return comment
