"""Pytest fixtures: file-backed SQLite database and local file storage per test."""
import io
import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from fastapi.testclient import TestClient

from groupwork.database import Base, get_db
from groupwork.main import app
from groupwork.services.file_storage import IncomingFile, LocalFileStorage, get_storage

# Import all models so they register with Base.metadata
from groupwork.models.user import User, UserRole       # noqa: F401
from groupwork.models.group import Group               # noqa: F401
from groupwork.models.assignment import Assignment     # noqa: F401
from groupwork.models.submission import Submission     # noqa: F401
from groupwork.models.message import GroupMessage      # noqa: F401


@pytest.fixture(scope="function")
def db_engine(tmp_path):
    """Create a fresh SQLite engine for each test."""
    engine = create_engine(f"sqlite:///{tmp_path / 'test.db'}", connect_args={"check_same_thread": False})

    # Enable WAL mode so a second session can write while the first one reads
    @event.listens_for(engine, "connect")
    def _set_sqlite_pragma(dbapi_conn, connection_record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.close()

    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def session_factory(db_engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=db_engine)


@pytest.fixture(scope="function")
def db(session_factory):
    """Yield a database session for service-level tests."""
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(scope="function")
def storage(tmp_path):
    return LocalFileStorage(tmp_path / "uploads", max_bytes=1024)


@pytest.fixture(scope="function")
def client(session_factory, storage):
    """FastAPI TestClient with the database and storage dependencies overridden."""

    def _override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _override_get_db
    app.dependency_overrides[get_storage] = lambda: storage
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Service-level helpers
# ---------------------------------------------------------------------------
def make_user(db, name: str = "Student", role: UserRole = UserRole.student, student_id: str = None) -> User:
    user = User(
        email=f"{name.lower().replace(' ', '.')}@campus.edu",
        full_name=name,
        student_id=student_id,
        role=role,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def upload(name: str = "report.pdf", content: bytes = b"%PDF-1.4 test", content_type: str = "application/pdf"):
    return IncomingFile(original_name=name, content_type=content_type, stream=io.BytesIO(content))


def stored_files(storage: LocalFileStorage) -> list:
    if not storage.root.exists():
        return []
    return sorted(p for p in storage.root.rglob("*") if p.is_file())


# ---------------------------------------------------------------------------
# API helpers: create records via the API, return the JSON response dict
# ---------------------------------------------------------------------------
def create_test_user(client: TestClient, name: str = "Test User", role: str = "student", student_id: str = None) -> dict:
    """POST /api/users and return response JSON."""
    resp = client.post("/api/users/", json={
        "email": f"{name.lower().replace(' ', '.')}@campus.edu",
        "full_name": name,
        "student_id": student_id,
        "role": role,
    })
    assert resp.status_code == 201, resp.text
    return resp.json()


def create_test_group(client: TestClient, creator_id: str, name: str = "Test Group", **fields) -> dict:
    """POST /api/groups and return response JSON."""
    resp = client.post("/api/groups/", params={"actor_id": creator_id}, json={"name": name, **fields})
    assert resp.status_code == 201, resp.text
    return resp.json()


def create_test_assignment(client: TestClient, admin_id: str, title: str = "Essay 1", **fields) -> dict:
    """POST /api/assignments and return response JSON."""
    payload = {"title": title, "due_date": "2026-12-01T23:59:00Z", "is_for_all": True, **fields}
    resp = client.post("/api/assignments/", params={"actor_id": admin_id}, json=payload)
    assert resp.status_code == 201, resp.text
    return resp.json()
