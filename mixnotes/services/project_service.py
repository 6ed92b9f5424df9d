import logging
from typing import Iterable, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from mixnotes.models import (
    User, Project, ProjectCollaborator, ProjectStatus, UserRole,
    Capability, DEFAULT_COLLABORATOR_PERMISSIONS
)
from .errors import NotFoundError, ValidationError, DuplicateError, AuthorizationError
from .permission_service import PermissionService

logger = logging.getLogger(__name__)


def normalize_permissions(permissions: Iterable[str]) -> List[str]:
    """
    Validate permission tokens and return them deduplicated in canonical order

    Raises:
        ValidationError: On an unknown token
    """
    tokens = set()
    for token in permissions:
        try:
            tokens.add(Capability(token))
        except ValueError:
            raise ValidationError(f"Unknown permission '{token}'")
    return [capability.value for capability in Capability if capability in tokens]


class ProjectService:
    """
    Service for project lifecycle and collaborator management.
    The owner is never stored as a collaborator; PermissionService
    derives the owner's full capability set instead.
    """

    def __init__(self, db: Session):
        self.db = db
        self.permissions = PermissionService(db)

    def get_project(self, project_id: int) -> Project:
        project = self.db.query(Project).filter(Project.id == project_id).first()
        if not project:
            raise NotFoundError(f"Project not found with id of {project_id}")
        return project

    def get_visible_project(self, project_id: int, user: User) -> Project:
        project = self.get_project(project_id)
        self.permissions.require(user, project, Capability.VIEW, "access this project")
        return project

    def list_for_user(self, user: User) -> List[Project]:
        """Projects the user owns or collaborates on, most recently updated first"""
        owned = self.db.query(Project).filter(Project.owner_id == user.id).all()
        shared = (
            self.db.query(Project)
            .join(ProjectCollaborator)
            .filter(ProjectCollaborator.user_id == user.id)
            .all()
        )
        projects = list({p.id: p for p in owned + shared}.values())
        projects.sort(key=lambda p: p.updated_at or p.created_at, reverse=True)
        return projects

    def create_project(
        self,
        owner: User,
        title: str,
        description: Optional[str] = None,
        is_private: bool = True,
        status: ProjectStatus = ProjectStatus.DRAFT,
        tags: Optional[List[str]] = None
    ) -> Project:
        project = Project(
            title=title,
            description=description,
            owner_id=owner.id,
            is_private=is_private,
            status=ProjectStatus(status),
            tags=list(tags or [])
        )
        self.db.add(project)
        self.db.commit()
        self.db.refresh(project)

        logger.info(f"Project {project.id} created by user {owner.id}")
        return project

    def update_project(self, project_id: int, user: User, changes: dict) -> Project:
        """
        Update project fields (owner or admin collaborator)

        Args:
            project_id: ID of project
            user: Requesting user
            changes: Field values to set; owner_id is not accepted

        Returns:
            Updated Project
        """
        project = self.get_project(project_id)
        self.permissions.require(user, project, Capability.ADMIN, "update this project")

        if "owner_id" in changes and changes["owner_id"] != project.owner_id:
            raise ValidationError("Cannot change project owner")

        if "description" in changes:
            project.description = changes["description"]
        for field in ("title", "is_private", "tags"):
            if changes.get(field) is not None:
                setattr(project, field, changes[field])
        if changes.get("status") is not None:
            project.status = ProjectStatus(changes["status"])

        self.db.commit()
        self.db.refresh(project)
        return project

    def delete_project(self, project_id: int, user: User) -> None:
        project = self.get_project(project_id)
        if not self.permissions.can_delete(user, project):
            raise AuthorizationError("Not authorized to delete this project")

        self.db.delete(project)
        self.db.commit()
        logger.info(f"Project {project_id} deleted by user {user.id}")

    def _require_manager(self, project: Project, user: User, action: str) -> None:
        if not self.permissions.can_manage_collaborators(user, project):
            raise AuthorizationError(f"Not authorized to {action}")

    def add_collaborator(
        self,
        project_id: int,
        user: User,
        target_user_id: int,
        role: Optional[UserRole] = None,
        permissions: Optional[Iterable[str]] = None
    ) -> Project:
        """
        Add a collaborator to a project

        Args:
            project_id: ID of project
            user: Requesting user (owner or admin)
            target_user_id: ID of user to add
            role: Advisory role tag (defaults to artist)
            permissions: Permission tokens (defaults to view + comment)

        Returns:
            Updated Project

        Raises:
            DuplicateError: If the user is already a collaborator
            ValidationError: If the target is the owner
        """
        project = self.get_project(project_id)
        self._require_manager(project, user, "add collaborators to this project")

        if target_user_id == project.owner_id:
            raise ValidationError("Project owner is always a collaborator")

        target = self.db.query(User).filter(User.id == target_user_id).first()
        if not target:
            raise NotFoundError(f"User not found with id of {target_user_id}")

        if self.permissions.get_collaborator(target_user_id, project):
            raise DuplicateError("User is already a collaborator on this project")

        tokens = normalize_permissions(
            permissions if permissions is not None else DEFAULT_COLLABORATOR_PERMISSIONS
        )
        project.collaborators.append(ProjectCollaborator(
            user_id=target_user_id,
            role=UserRole(role) if role else UserRole.ARTIST,
            permissions=tokens
        ))

        try:
            self.db.commit()
        except IntegrityError:
            # A concurrent request stored the same collaborator first
            self.db.rollback()
            raise DuplicateError("User is already a collaborator on this project")

        self.db.refresh(project)
        logger.info(f"User {target_user_id} added to project {project.id} with {tokens}")
        return project

    def update_collaborator(
        self,
        project_id: int,
        user: User,
        target_user_id: int,
        role: Optional[UserRole] = None,
        permissions: Optional[Iterable[str]] = None
    ) -> Project:
        project = self.get_project(project_id)
        self._require_manager(project, user, "update collaborators in this project")

        if target_user_id == project.owner_id:
            raise ValidationError("Cannot modify project owner's permissions")

        collaborator = self.permissions.get_collaborator(target_user_id, project)
        if not collaborator:
            raise NotFoundError(f"Collaborator not found with id of {target_user_id}")

        if role:
            collaborator.role = UserRole(role)
        if permissions is not None:
            # Assign a new list so the JSON column is flagged dirty
            collaborator.permissions = normalize_permissions(permissions)

        self.db.commit()
        self.db.refresh(project)
        logger.info(f"Collaborator {target_user_id} on project {project.id} updated")
        return project

    def remove_collaborator(self, project_id: int, user: User, target_user_id: int) -> Project:
        project = self.get_project(project_id)
        self._require_manager(project, user, "remove collaborators from this project")

        if target_user_id == project.owner_id:
            raise ValidationError("Cannot remove project owner as collaborator")

        collaborator = self.permissions.get_collaborator(target_user_id, project)
        if not collaborator:
            raise NotFoundError(f"Collaborator not found with id of {target_user_id}")

        project.collaborators.remove(collaborator)
        self.db.commit()
        self.db.refresh(project)
        logger.info(f"User {target_user_id} removed from project {project.id}")
        return project
