from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from typing import List, Optional
from pydantic import BaseModel, Field
from datetime import datetime

from mixnotes.database import get_db
from mixnotes.models import User
from mixnotes.services.project_service import ProjectService
from mixnotes.services.track_service import TrackService
from mixnotes.services.comment_service import CommentService
from .auth import get_current_user
from .comments import CommentCreate, comment_response

router = APIRouter(tags=["Tracks"])

class TrackCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=100)
    version_name: Optional[str] = Field(None, max_length=50)
    audio_url: str = Field(..., min_length=1)
    file_id: str = Field(..., min_length=1)
    file_size: int = Field(..., ge=0)
    duration: float = Field(..., ge=0)
    format: str = Field(..., min_length=1, max_length=20)
    sample_rate: Optional[int] = Field(None, gt=0)
    bit_depth: Optional[int] = Field(None, gt=0)
    waveform_data: str = Field(..., min_length=1)
    bpm: Optional[float] = Field(None, gt=0)
    key: Optional[str] = Field(None, max_length=20)
    genre: Optional[str] = Field(None, max_length=50)
    previous_version_id: Optional[int] = None


class TrackUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=100)
    version_name: Optional[str] = Field(None, max_length=50)
    bpm: Optional[float] = Field(None, gt=0)
    key: Optional[str] = Field(None, max_length=20)
    genre: Optional[str] = Field(None, max_length=50)


class WaveformUpdate(BaseModel):
    waveform_data: str


class TrackResponse(BaseModel):
    id: int
    project_id: int
    title: str
    version_number: int
    version_name: Optional[str]
    audio_url: str
    file_size: int
    duration: float
    format: str
    sample_rate: Optional[int]
    bit_depth: Optional[int]
    bpm: Optional[float]
    key: Optional[str]
    genre: Optional[str]
    uploader_id: int
    upload_date: Optional[datetime]
    previous_version_id: Optional[int]

    class Config:
        from_attributes = True


class TrackDetailResponse(TrackResponse):
    waveform_data: str
    next_version_id: Optional[int] = None
    comment_count: int = 0


@router.post("/projects/{project_id}/tracks", response_model=TrackResponse, status_code=status.HTTP_201_CREATED)
def create_track(
    project_id: int,
    track_in: TrackCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Register a track in a project

    - **previous_version_id**: Optional - make this track the next version of another
    """
    project = ProjectService(db).get_project(project_id)
    return TrackService(db).create_track(project, current_user, track_in.model_dump())


@router.get("/projects/{project_id}/tracks", response_model=List[TrackResponse])
def list_project_tracks(
    project_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    List all tracks in a project
    """
    project = ProjectService(db).get_project(project_id)
    return TrackService(db).list_project_tracks(project, current_user)


@router.get("/tracks/{track_id}", response_model=TrackDetailResponse)
def get_track(
    track_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    track_service = TrackService(db)
    track = track_service.get_visible_track(track_id, current_user)
    next_version = track_service.next_version(track)

    return TrackDetailResponse(
        **TrackResponse.model_validate(track).model_dump(),
        waveform_data=track.waveform_data,
        next_version_id=next_version.id if next_version else None,
        comment_count=len(track.comments)
    )


@router.put("/tracks/{track_id}", response_model=TrackResponse)
def update_track(
    track_id: int,
    track_in: TrackUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return TrackService(db).update_track(track_id, current_user, track_in.model_dump(exclude_unset=True))


@router.delete("/tracks/{track_id}")
def delete_track(
    track_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Delete a track with its comments; the next version is relinked to the previous one
    """
    TrackService(db).delete_track(track_id, current_user)
    return {}


@router.get("/tracks/{track_id}/waveform")
def get_track_waveform(
    track_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    waveform_data = TrackService(db).get_waveform(track_id, current_user)
    return {"track_id": track_id, "waveform_data": waveform_data}


@router.put("/tracks/{track_id}/waveform")
def update_track_waveform(
    track_id: int,
    waveform_in: WaveformUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    track = TrackService(db).update_waveform(track_id, current_user, waveform_in.waveform_data)
    return {"track_id": track.id, "waveform_data": track.waveform_data}


@router.get("/tracks/{track_id}/versions", response_model=List[TrackResponse])
def get_version_history(
    track_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Get every version in the track's lineage, oldest first
    """
    return TrackService(db).all_versions(track_id, current_user)


@router.get("/tracks/{track_id}/latest", response_model=TrackResponse)
def get_latest_version(
    track_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return TrackService(db).latest_version(track_id, current_user)


@router.get("/tracks/{track_id}/comments")
def get_comments_for_track(
    track_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Get top-level comments ordered by timestamp, each with its replies
    """
    thread = CommentService(db).list_thread(track_id, current_user)
    return [comment_response(comment, replies) for comment, replies in thread]


@router.post("/tracks/{track_id}/comments", status_code=status.HTTP_201_CREATED)
def add_comment(
    track_id: int,
    comment_in: CommentCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    comment = CommentService(db).create(track_id, current_user, comment_in.model_dump(exclude_none=True))
    return comment_response(comment, [])
