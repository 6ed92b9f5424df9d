import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("JWT_SECRET", "test-secret")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from mixnotes.database import Base, get_db
from mixnotes.main import app
from mixnotes.api.auth import create_access_token
from mixnotes.models import User, Project, ProjectCollaborator, Track

engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture
def db():
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def client(db):
    def override_get_db():
        session = TestingSessionLocal()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def make_user(db):
    def _make_user(username):
        user = User(username=username, email=f"{username}@example.com", password="not-a-real-hash")
        db.add(user)
        db.commit()
        db.refresh(user)
        return user
    return _make_user


@pytest.fixture
def make_track(db):
    def _make_track(project, uploader, previous=None, title="Demo"):
        track = Track(
            project_id=project.id,
            title=title,
            version_number=previous.version_number + 1 if previous else 1,
            audio_url="https://cdn.example.com/demo.wav",
            file_id="file-1",
            file_size=1000,
            duration=180,
            format="wav",
            waveform_data="waveform-ref",
            uploader_id=uploader.id,
            previous_version_id=previous.id if previous else None,
        )
        db.add(track)
        db.commit()
        db.refresh(track)
        return track
    return _make_track


def add_collaborator(db, project, user, permissions):
    db.add(ProjectCollaborator(project_id=project.id, user_id=user.id, permissions=list(permissions)))
    db.commit()
    db.refresh(project)


def auth_headers(user):
    return {"Authorization": f"Bearer {create_access_token({'sub': user.email})}"}


@pytest.fixture
def owner(make_user):
    return make_user("alice")


@pytest.fixture
def outsider(make_user):
    return make_user("bob")


@pytest.fixture
def project(db, owner):
    project = Project(title="Album", description="First record", owner_id=owner.id, is_private=True, tags=[])
    db.add(project)
    db.commit()
    db.refresh(project)
    return project


@pytest.fixture
def track(project, owner, make_track):
    return make_track(project, owner)
