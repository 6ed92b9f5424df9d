import logging
from typing import Optional, Set

from sqlalchemy.orm import Session

from mixnotes.models import User, Project, ProjectCollaborator, Capability, FULL_CAPABILITIES
from .errors import AuthorizationError

logger = logging.getLogger(__name__)


class PermissionService:
    """
    Service for checking user capabilities on projects.
    Centralizes all permission logic.
    """

    def __init__(self, db: Session):
        self.db = db

    def get_collaborator(self, user_id: int, project: Project) -> Optional[ProjectCollaborator]:
        """
        Find the user's collaborator entry on a project

        Args:
            user_id: ID of the user
            project: Project object

        Returns:
            ProjectCollaborator or None if the user is not a collaborator
        """
        for collaborator in project.collaborators:
            if collaborator.user_id == user_id:
                return collaborator
        return None

    def resolve_capabilities(self, user: User, project: Project) -> Set[Capability]:
        """
        Compute the capability set a user holds on a project

        Args:
            user: User object
            project: Project object

        Returns:
            set of Capability (empty if the user has no access)
        """
        # Owner always holds everything
        if project.owner_id == user.id:
            return set(FULL_CAPABILITIES)

        collaborator = self.get_collaborator(user.id, project)
        if collaborator is None:
            return set()

        return {Capability(token) for token in collaborator.permissions or []}

    def is_authorized(self, user: User, project: Project, capability: Capability) -> bool:
        """
        Check if user holds a capability on a project.
        Public projects grant view to everyone, and nothing else.
        """
        capability = Capability(capability)
        if capability == Capability.VIEW and not project.is_private:
            return True
        return capability in self.resolve_capabilities(user, project)

    def require(self, user: User, project: Project, capability: Capability, action: str) -> None:
        """Raise AuthorizationError unless user holds capability"""
        if not self.is_authorized(user, project, capability):
            logger.warning(
                f"User {user.id} denied '{Capability(capability).value}' on project {project.id} ({action})"
            )
            raise AuthorizationError(f"Not authorized to {action}")

    def can_manage_collaborators(self, user: User, project: Project) -> bool:
        """Owner or any collaborator holding admin"""
        return self.is_authorized(user, project, Capability.ADMIN)

    def can_delete(self, user: User, project: Project) -> bool:
        # Only owner can delete
        return project.owner_id == user.id
