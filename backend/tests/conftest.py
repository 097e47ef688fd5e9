"""Pytest fixtures — fresh SQLite database per test, TestClient bound to it."""
import uuid
import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from fastapi.testclient import TestClient

from app.database import Base, get_session_factory
from app.main import app
from app.services import store
from app.session import Identity

# Import all models so they register with Base.metadata
from app.models.profile import Profile            # noqa: F401
from app.models.room import Room, RoomMember      # noqa: F401
from app.models.message import Message            # noqa: F401

SQLITE_URL = "sqlite:///./test.db"


@pytest.fixture(scope="function")
def db_engine():
    """Create a fresh SQLite engine for each test."""
    engine = create_engine(SQLITE_URL, connect_args={"check_same_thread": False})

    # Enable WAL mode for better concurrency
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
    """Yield a database session, closed after the test."""
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(scope="function")
def client(session_factory):
    """FastAPI TestClient with the session factory overridden to use SQLite."""
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def make_identity(name: str = "Test User", verified: bool = True) -> Identity:
    """Build an identity the way the auth provider would describe it."""
    slug = name.lower().replace(" ", ".")
    return Identity(
        user_id=str(uuid.uuid4()),
        email=f"{slug}@example.com",
        email_verified=verified,
        full_name=name,
    )


def token_for(identity: Identity) -> str:
    return app.state.session_oracle.issue_token(
        identity.user_id,
        identity.email,
        email_verified=identity.email_verified,
        full_name=identity.full_name,
    )


def create_test_identity(name: str = "Test User", verified: bool = True) -> dict:
    """Helper — identity plus a signed token and ready-made auth headers."""
    identity = make_identity(name, verified)
    token = token_for(identity)
    return {
        "identity": identity,
        "user_id": identity.user_id,
        "email": identity.email,
        "token": token,
        "headers": {"Authorization": f"Bearer {token}"},
    }


def create_test_room(client: TestClient, owner: dict, name: str = "Test Room") -> dict:
    """Helper — POST /api/rooms and return the room JSON."""
    resp = client.post("/api/rooms/", json={"name": name}, headers=owner["headers"])
    assert resp.status_code == 201, resp.text
    return resp.json()["room"]


def join_test_room(client: TestClient, member: dict, group_id: str) -> dict:
    """Helper — POST /api/rooms/join and return the room JSON."""
    resp = client.post("/api/rooms/join", json={"group_id": group_id}, headers=member["headers"])
    assert resp.status_code == 201, resp.text
    return resp.json()["room"]


def send_test_message(client: TestClient, author: dict, room_id: str, content: str = "hello") -> dict:
    """Helper — POST a message and return its JSON."""
    resp = client.post(f"/api/rooms/{room_id}/messages", json={"content": content}, headers=author["headers"])
    assert resp.status_code == 201, resp.text
    return resp.json()


def seed_profile(db, name: str = "Test User") -> Identity:
    """Helper for service-level tests: an identity with its profile row stored."""
    identity = make_identity(name)
    store.upsert_profile(db, identity)
    return identity
