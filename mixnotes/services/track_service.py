import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from mixnotes.models import User, Project, Track, Capability
from .errors import NotFoundError, ValidationError, ConsistencyError
from .permission_service import PermissionService
from .lineage_service import LineageService

logger = logging.getLogger(__name__)

# Fields a track accepts after creation; project, audio reference
# and lineage are fixed once written.
EDITABLE_FIELDS = ("title", "version_name", "bpm", "key", "genre", "waveform_data")

# NOT NULL columns among them; an explicit null leaves the value as is
REQUIRED_FIELDS = ("title", "waveform_data")


class TrackService:
    """
    Service for track records and their version chain.
    """

    def __init__(self, db: Session):
        self.db = db
        self.permissions = PermissionService(db)
        self.lineage = LineageService(db)

    def get_track(self, track_id: int) -> Track:
        """
        Load a track together with its project

        Raises:
            NotFoundError: If the track or its project is missing
        """
        track = self.db.query(Track).filter(Track.id == track_id).first()
        if not track:
            raise NotFoundError(f"Track not found with id of {track_id}")
        if track.project is None:
            raise NotFoundError("Project not found for this track")
        return track

    def get_visible_track(self, track_id: int, user: User) -> Track:
        track = self.get_track(track_id)
        self.permissions.require(user, track.project, Capability.VIEW, "access this track")
        return track

    def list_project_tracks(self, project: Project, user: User) -> List[Track]:
        self.permissions.require(user, project, Capability.VIEW, "access tracks of this project")
        return (
            self.db.query(Track)
            .filter(Track.project_id == project.id)
            .order_by(Track.upload_date, Track.id)
            .all()
        )

    def create_track(self, project: Project, user: User, data: dict) -> Track:
        """
        Register a track, optionally as the next version of an existing one

        Args:
            project: Project the track belongs to
            user: Uploader (needs edit capability)
            data: Track fields; ``previous_version_id`` links it into a chain

        Returns:
            Created Track

        Raises:
            ValidationError: If the predecessor lives in another project
            ConsistencyError: If the predecessor already has a next version
        """
        self.permissions.require(user, project, Capability.EDIT, "add tracks to this project")

        data = dict(data)
        previous_version_id = data.pop("previous_version_id", None)
        version_number = 1

        if previous_version_id is not None:
            previous = self.db.query(Track).filter(Track.id == previous_version_id).first()
            if not previous:
                raise NotFoundError(f"Track not found with id of {previous_version_id}")
            if previous.project_id != project.id:
                raise ValidationError("Previous version belongs to a different project")
            if self.lineage.get_successor(previous) is not None:
                raise ConsistencyError(
                    f"Track {previous.id} already has a next version; add the new version to the latest one"
                )
            version_number = previous.version_number + 1

        track = Track(
            project_id=project.id,
            uploader_id=user.id,
            previous_version_id=previous_version_id,
            version_number=version_number,
            **data
        )
        self.db.add(track)
        self.db.commit()
        self.db.refresh(track)

        logger.info(
            f"Track {track.id} (v{track.version_number}) added to project {project.id} by user {user.id}"
        )
        return track

    def update_track(self, track_id: int, user: User, changes: dict) -> Track:
        track = self.get_track(track_id)
        self.permissions.require(user, track.project, Capability.EDIT, "update this track")

        for field in EDITABLE_FIELDS:
            if field not in changes:
                continue
            if changes[field] is None and field in REQUIRED_FIELDS:
                continue
            setattr(track, field, changes[field])

        self.db.commit()
        self.db.refresh(track)
        return track

    def get_waveform(self, track_id: int, user: User) -> str:
        return self.get_visible_track(track_id, user).waveform_data

    def update_waveform(self, track_id: int, user: User, waveform_data: str) -> Track:
        """
        Replace the stored waveform reference of a track

        Raises:
            ValidationError: If the reference is empty
        """
        if not waveform_data or not waveform_data.strip():
            raise ValidationError("Please provide waveform data")
        return self.update_track(track_id, user, {"waveform_data": waveform_data})

    def delete_track(self, track_id: int, user: User) -> None:
        """
        Delete a track and its comments, keeping the version chain intact

        The next version, if any, is relinked to the deleted track's
        predecessor, so the remaining versions still form one chain.

        Args:
            track_id: ID of the track
            user: Requesting user (needs edit capability)

        Raises:
            ConsistencyError: If the chain around the track is already broken
        """
        track = self.get_track(track_id)
        self.permissions.require(user, track.project, Capability.EDIT, "delete this track")

        successor = self.lineage.get_successor(track)
        if successor is not None:
            successor.previous_version_id = track.previous_version_id
            self.db.flush()
            logger.info(f"Track {successor.id} relinked to previous version {track.previous_version_id}")

        self.db.delete(track)
        self.db.commit()
        logger.info(f"Track {track_id} deleted by user {user.id}")

    def latest_version(self, track_id: int, user: User) -> Track:
        return self.lineage.latest_version(self.get_visible_track(track_id, user))

    def all_versions(self, track_id: int, user: User) -> List[Track]:
        return self.lineage.all_versions(self.get_visible_track(track_id, user))

    def next_version(self, track: Track) -> Optional[Track]:
        return self.lineage.get_successor(track)
