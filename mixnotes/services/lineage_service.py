from typing import List, Optional

from sqlalchemy.orm import Session

from mixnotes.models import Track
from .errors import ConsistencyError


class LineageService:
    """
    Walks the version chain of a track.

    Each track points only at its predecessor; successors are found by
    reverse lookup, one query per step. Every walk keeps a visited set so
    a cycle fails with ConsistencyError instead of looping, and a track with
    two successors fails instead of silently picking one branch.
    """

    def __init__(self, db: Session):
        self.db = db

    def get_successor(self, track: Track) -> Optional[Track]:
        """
        Find the track whose previous version is the given track

        Raises:
            ConsistencyError: If more than one track claims it as predecessor
        """
        successors = (
            self.db.query(Track)
            .filter(Track.previous_version_id == track.id)
            .order_by(Track.id)
            .limit(2)
            .all()
        )
        if len(successors) > 1:
            raise ConsistencyError(
                f"Track {track.id} has more than one next version "
                f"({successors[0].id}, {successors[1].id})"
            )
        return successors[0] if successors else None

    def get_predecessor(self, track: Track) -> Optional[Track]:
        if track.previous_version_id is None:
            return None
        predecessor = self.db.query(Track).filter(Track.id == track.previous_version_id).first()
        if predecessor is None:
            raise ConsistencyError(
                f"Track {track.id} points at missing previous version {track.previous_version_id}"
            )
        return predecessor

    def find_root(self, track: Track) -> Track:
        """Walk back to the original version (the one without a predecessor)"""
        visited = {track.id}
        current = track
        predecessor = self.get_predecessor(current)
        while predecessor is not None:
            if predecessor.id in visited:
                raise ConsistencyError(f"Version chain of track {track.id} contains a cycle")
            visited.add(predecessor.id)
            current = predecessor
            predecessor = self.get_predecessor(current)
        return current

    def latest_version(self, track: Track) -> Track:
        """
        Follow successors until none remain

        Args:
            track: Any track in the chain

        Returns:
            The newest version (the input itself if it has no successor)
        """
        visited = {track.id}
        current = track
        successor = self.get_successor(current)
        while successor is not None:
            if successor.id in visited:
                raise ConsistencyError(f"Version chain of track {track.id} contains a cycle")
            visited.add(successor.id)
            current = successor
            successor = self.get_successor(current)
        return current

    def all_versions(self, track: Track) -> List[Track]:
        """
        Collect the whole chain a track belongs to

        Args:
            track: Any track in the chain

        Returns:
            List of tracks, oldest first
        """
        root = self.find_root(track)

        versions = [root]
        visited = {root.id}
        successor = self.get_successor(root)
        while successor is not None:
            if successor.id in visited:
                raise ConsistencyError(f"Version chain of track {track.id} contains a cycle")
            visited.add(successor.id)
            versions.append(successor)
            successor = self.get_successor(successor)

        return versions
