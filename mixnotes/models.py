from datetime import datetime
from enum import Enum as PyEnum
from sqlalchemy import Column, Integer, String, Boolean, ForeignKey, DateTime, Enum, Float, JSON, UniqueConstraint, Index, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from mixnotes.database import Base


class UserRole(str, PyEnum):
    """Advisory profile tag; never consulted for authorization."""
    ARTIST    = "artist"
    PRODUCER  = "producer"
    ENGINEER  = "engineer"
    MANAGER   = "manager"
    LISTENER  = "listener"


class Capability(str, PyEnum):
    VIEW     = "view"       # read project, tracks, comments
    COMMENT  = "comment"    # write comments and replies
    EDIT     = "edit"       # add and modify tracks
    ADMIN    = "admin"      # manage project and collaborators


FULL_CAPABILITIES = frozenset(Capability)
DEFAULT_COLLABORATOR_PERMISSIONS = [Capability.VIEW.value, Capability.COMMENT.value]


class ProjectStatus(str, PyEnum):
    DRAFT       = "draft"
    IN_PROGRESS = "in_progress"
    REVIEW      = "review"
    COMPLETED   = "completed"


class CommentCategory(str, PyEnum):
    GENERAL   = "general"
    TECHNICAL = "technical"
    CREATIVE  = "creative"
    QUESTION  = "question"


class CommentStatus(str, PyEnum):
    OPEN      = "open"
    ADDRESSED = "addressed"
    REJECTED  = "rejected"
    COMPLETED = "completed"


class ReactionType(str, PyEnum):
    LIKE     = "like"
    DISLIKE  = "dislike"
    AGREE    = "agree"
    DISAGREE = "disagree"


class AttachmentType(str, PyEnum):
    IMAGE = "image"
    AUDIO = "audio"
    VIDEO = "video"
    LINK  = "link"


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(50), unique=True, nullable=False)
    email = Column(String(100), unique=True, nullable=False, index=True)
    password = Column(String(255), nullable=False)
    role = Column(Enum(UserRole), default=UserRole.ARTIST, nullable=False)
    created_at = Column(DateTime, server_default=func.now())

    owned_projects = relationship("Project", back_populates="owner", foreign_keys="[Project.owner_id]")
    collaborations = relationship(
        "ProjectCollaborator",
        back_populates="user",
        cascade="all, delete-orphan"
    )


class Project(Base):
    __tablename__ = "projects"

    id          = Column(Integer, primary_key=True, index=True)
    title       = Column(String(100), nullable=False)
    description = Column(String(500), nullable=True)
    status      = Column(Enum(ProjectStatus), default=ProjectStatus.DRAFT, nullable=False)
    is_private  = Column(Boolean, default=True, nullable=False)
    tags        = Column(JSON, default=list, nullable=False)
    created_at  = Column(DateTime, server_default=func.now())
    updated_at  = Column(DateTime, onupdate=func.now(), nullable=True)

    # Set once at creation; the owner's capabilities are derived, never stored
    owner_id    = Column(Integer, ForeignKey("users.id"), nullable=False)

    owner       = relationship("User", foreign_keys=[owner_id], back_populates="owned_projects")

    collaborators = relationship(
        "ProjectCollaborator",
        back_populates="project",
        cascade="all, delete-orphan",
        order_by="ProjectCollaborator.added_at",
    )
    tracks = relationship("Track", back_populates="project", cascade="all, delete-orphan")


class ProjectCollaborator(Base):
    __tablename__ = "project_collaborators"

    # Composite key: one entry per (project, user)
    user_id     = Column(Integer, ForeignKey("users.id"), primary_key=True)
    project_id  = Column(Integer, ForeignKey("projects.id"), primary_key=True)
    role        = Column(Enum(UserRole), default=UserRole.ARTIST, nullable=False)
    permissions = Column(JSON, default=lambda: list(DEFAULT_COLLABORATOR_PERMISSIONS), nullable=False)
    added_at    = Column(DateTime, default=datetime.utcnow)

    user        = relationship("User", back_populates="collaborations")
    project     = relationship("Project", back_populates="collaborators")


class Track(Base):
    """
    One uploaded version of a piece of audio.
    Versions form a chain through previous_version_id; the successor is
    found by reverse lookup and never stored.
    """
    __tablename__ = "tracks"

    id                  = Column(Integer, primary_key=True)
    project_id          = Column(Integer, ForeignKey("projects.id"), nullable=False, index=True)
    title               = Column(String(100), nullable=False)
    version_number      = Column(Integer, nullable=False, default=1)
    version_name        = Column(String(50), nullable=True)

    audio_url           = Column(String(500), nullable=False)
    file_id             = Column(String(200), nullable=False)
    file_size           = Column(Integer, nullable=False)
    duration            = Column(Float, nullable=False)
    format              = Column(String(20), nullable=False)
    sample_rate         = Column(Integer, nullable=True)
    bit_depth           = Column(Integer, nullable=True)
    waveform_data       = Column(Text, nullable=False)

    bpm                 = Column(Float, nullable=True)
    key                 = Column(String(20), nullable=True)
    genre               = Column(String(50), nullable=True)

    uploader_id         = Column(Integer, ForeignKey("users.id"), nullable=False)
    upload_date         = Column(DateTime, default=datetime.utcnow)
    previous_version_id = Column(Integer, ForeignKey("tracks.id"), nullable=True, index=True)

    project             = relationship("Project", back_populates="tracks")
    uploader            = relationship("User")
    previous_version    = relationship("Track", remote_side=[id])
    comments            = relationship("Comment", back_populates="track", cascade="all, delete-orphan")


class Comment(Base):
    """
    Timestamped feedback on a track.
    Stored in one table; ``kind`` tells a top-level comment from a reply.
    Only Reply carries a parent, and the parent is always a TopLevelComment.
    """
    __tablename__ = "comments"

    id              = Column(Integer, primary_key=True)
    kind            = Column(String(20), nullable=False)
    track_id        = Column(Integer, ForeignKey("tracks.id"), nullable=False, index=True)
    author_id       = Column(Integer, ForeignKey("users.id"), nullable=False)
    parent_id       = Column(Integer, ForeignKey("comments.id"), nullable=True, index=True)

    timestamp       = Column(Float, nullable=False)
    duration        = Column(Float, nullable=False, default=0)
    frequency_low   = Column(Float, nullable=True)
    frequency_high  = Column(Float, nullable=True)
    text            = Column(String(1000), nullable=False)
    category        = Column(Enum(CommentCategory), default=CommentCategory.GENERAL, nullable=False)
    status          = Column(Enum(CommentStatus), default=CommentStatus.OPEN, nullable=False)

    created_at      = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at      = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    track           = relationship("Track", back_populates="comments")
    author          = relationship("User")
    attachments     = relationship("CommentAttachment", back_populates="comment", cascade="all, delete-orphan")
    reactions       = relationship(
        "CommentReaction",
        back_populates="comment",
        cascade="all, delete-orphan",
        order_by="CommentReaction.id",
    )

    __mapper_args__ = {"polymorphic_on": kind}

    __table_args__ = (
        Index('ix_comments_thread', 'track_id', 'parent_id', 'timestamp'),
    )

    @property
    def is_reply(self) -> bool:
        return False


class TopLevelComment(Comment):
    __mapper_args__ = {"polymorphic_identity": "comment"}

    replies = relationship(
        "Reply",
        back_populates="parent",
        cascade="all, delete-orphan",
        order_by=lambda: [Reply.created_at, Reply.id],
    )


class Reply(Comment):
    __mapper_args__ = {"polymorphic_identity": "reply"}

    parent = relationship("TopLevelComment", back_populates="replies", remote_side=[Comment.id])

    @property
    def is_reply(self) -> bool:
        return True


class CommentAttachment(Base):
    __tablename__ = "comment_attachments"

    id          = Column(Integer, primary_key=True)
    comment_id  = Column(Integer, ForeignKey("comments.id"), nullable=False, index=True)
    type        = Column(Enum(AttachmentType), nullable=False)
    url         = Column(String(500), nullable=False)
    thumbnail   = Column(String(500), nullable=True)
    extra       = Column("metadata", JSON, nullable=True)

    comment     = relationship("Comment", back_populates="attachments")


class CommentReaction(Base):
    __tablename__ = "comment_reactions"

    id          = Column(Integer, primary_key=True)
    comment_id  = Column(Integer, ForeignKey("comments.id"), nullable=False, index=True)
    user_id     = Column(Integer, ForeignKey("users.id"), nullable=False)
    type        = Column(Enum(ReactionType), nullable=False)
    created_at  = Column(DateTime, default=datetime.utcnow)

    comment     = relationship("Comment", back_populates="reactions")
    user        = relationship("User")

    __table_args__ = (
        UniqueConstraint('comment_id', 'user_id', 'type', name='uq_comment_reaction'),
    )
