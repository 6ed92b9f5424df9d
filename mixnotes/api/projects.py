from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from typing import List, Optional
from pydantic import BaseModel, Field
from datetime import datetime

from mixnotes.database import get_db
from mixnotes.models import User, Project, ProjectStatus, UserRole, Capability, FULL_CAPABILITIES
from mixnotes.services.project_service import ProjectService
from mixnotes.services.permission_service import PermissionService
from .auth import get_current_user

router = APIRouter(prefix="/projects", tags=["Projects"])

class ProjectCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    is_private: bool = True
    status: ProjectStatus = ProjectStatus.DRAFT
    tags: List[str] = Field(default_factory=list)


class ProjectUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    is_private: Optional[bool] = None
    status: Optional[ProjectStatus] = None
    tags: Optional[List[str]] = None
    owner_id: Optional[int] = None


class CollaboratorCreate(BaseModel):
    user_id: int
    role: Optional[UserRole] = None
    permissions: Optional[List[str]] = None


class CollaboratorUpdate(BaseModel):
    role: Optional[UserRole] = None
    permissions: Optional[List[str]] = None


class ProjectListItem(BaseModel):
    id: int
    title: str
    description: Optional[str]
    status: str
    is_private: bool
    capabilities: List[str]
    created_at: Optional[datetime]
    updated_at: Optional[datetime]


def _ordered(capabilities) -> List[str]:
    return [c.value for c in Capability if c in capabilities]


def project_detail(project: Project) -> dict:
    """
    Serialize a project with its collaborator list.
    The owner is listed first with the full capability set.
    """
    collaborators = [{
        "user": {"id": project.owner.id, "username": project.owner.username},
        "role": project.owner.role.value,
        "permissions": _ordered(FULL_CAPABILITIES),
        "is_owner": True,
        "added_at": project.created_at,
    }]
    for collab in project.collaborators:
        collaborators.append({
            "user": {"id": collab.user.id, "username": collab.user.username},
            "role": collab.role.value,
            "permissions": list(collab.permissions or []),
            "is_owner": False,
            "added_at": collab.added_at,
        })

    return {
        "id": project.id,
        "title": project.title,
        "description": project.description,
        "status": project.status.value,
        "is_private": project.is_private,
        "tags": list(project.tags or []),
        "owner": {"id": project.owner.id, "username": project.owner.username},
        "collaborators": collaborators,
        "track_count": len(project.tracks),
        "created_at": project.created_at,
        "updated_at": project.updated_at,
    }


@router.post("", status_code=status.HTTP_201_CREATED)
def create_project(
    project_in: ProjectCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Create a new project - current user becomes owner"""
    project = ProjectService(db).create_project(
        owner=current_user,
        title=project_in.title,
        description=project_in.description,
        is_private=project_in.is_private,
        status=project_in.status,
        tags=project_in.tags
    )
    return project_detail(project)


@router.get("", response_model=List[ProjectListItem])
def list_my_projects(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """List all projects where current user is owner or collaborator"""
    perm_service = PermissionService(db)
    return [
        ProjectListItem(
            id=project.id,
            title=project.title,
            description=project.description,
            status=project.status.value,
            is_private=project.is_private,
            capabilities=_ordered(perm_service.resolve_capabilities(current_user, project)),
            created_at=project.created_at,
            updated_at=project.updated_at,
        )
        for project in ProjectService(db).list_for_user(current_user)
    ]


@router.get("/{project_id}")
def get_project_detail(
    project_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Get detailed information about a specific project"""
    project = ProjectService(db).get_visible_project(project_id, current_user)
    return project_detail(project)


@router.put("/{project_id}")
def update_project(
    project_id: int,
    project_in: ProjectUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Update project settings (owner or admin collaborator)"""
    project = ProjectService(db).update_project(
        project_id, current_user, project_in.model_dump(exclude_unset=True)
    )
    return project_detail(project)


@router.delete("/{project_id}")
def delete_project(
    project_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Delete a project with its tracks and comments (owner only)"""
    ProjectService(db).delete_project(project_id, current_user)
    return {}


@router.post("/{project_id}/collaborators")
def add_collaborator(
    project_id: int,
    collaborator_in: CollaboratorCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Add a collaborator to a project

    - **user_id**: user to add
    - **role**: advisory role tag (default artist)
    - **permissions**: subset of view, comment, edit, admin (default view + comment)
    """
    project = ProjectService(db).add_collaborator(
        project_id,
        current_user,
        collaborator_in.user_id,
        role=collaborator_in.role,
        permissions=collaborator_in.permissions
    )
    return project_detail(project)


@router.put("/{project_id}/collaborators/{user_id}")
def update_collaborator(
    project_id: int,
    user_id: int,
    collaborator_in: CollaboratorUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Change a collaborator's role or permissions"""
    project = ProjectService(db).update_collaborator(
        project_id,
        current_user,
        user_id,
        role=collaborator_in.role,
        permissions=collaborator_in.permissions
    )
    return project_detail(project)


@router.delete("/{project_id}/collaborators/{user_id}")
def remove_collaborator(
    project_id: int,
    user_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Remove a collaborator from a project"""
    project = ProjectService(db).remove_collaborator(project_id, current_user, user_id)
    return project_detail(project)
