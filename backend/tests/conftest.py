# backend/tests/conftest.py
"""
Pytest configuration for the realtime backend.

Every test gets its own SQLite database file, so store calls running in
worker threads see committed rows exactly like they would against a real
server. Socket components are exercised through ``FakeTransport``, an
in-memory stand-in for a WebSocket that records every frame it is sent.
"""

import os
import sys

# CRITICAL: Set testing mode BEFORE any app imports!
os.environ["is_testing"] = "true"
os.environ.setdefault("database_url", "sqlite://")
os.environ["notification_provider"] = "console"

# Add the backend directory to Python path so imports work
backend_dir = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, backend_dir)

from typing import Any, Callable, Optional

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session, sessionmaker

from app.core.config import settings
from app.database import Base, build_engine, get_db
from app.main import app
from app.models.contact import UserContact
from app.models.user import User
from app.repositories.conversation_repository import ConversationRepository
from app.services.realtime import RealtimeGateway, RealtimeStore
from app.services.realtime.connection import Connection
from app.services.realtime.notifier import OfflineNotifier
from tests.helpers.realtime import FakeTransport, RecordingProvider

settings.is_testing = True


# ============================================================================
# DATABASE FIXTURES
# ============================================================================


@pytest.fixture
def session_factory(tmp_path) -> sessionmaker:
    engine = build_engine(f"sqlite:///{tmp_path / 'realtime_test.db'}")
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine, expire_on_commit=False)
    yield factory
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db(session_factory: sessionmaker) -> Session:
    session = session_factory()
    yield session
    session.rollback()
    session.close()


@pytest.fixture
def store(session_factory: sessionmaker) -> RealtimeStore:
    return RealtimeStore(session_factory=session_factory, timeout_seconds=5.0)


def _create_user(db: Session, username: str, **overrides: Any) -> User:
    user = User(
        username=username,
        email=f"{username}@example.com",
        full_name=username.title(),
        **overrides,
    )
    db.add(user)
    db.commit()
    return user


@pytest.fixture
def make_user(db: Session) -> Callable[..., User]:
    def _make(username: str, **overrides: Any) -> User:
        return _create_user(db, username, **overrides)

    return _make


@pytest.fixture
def alice(make_user) -> User:
    return make_user("alice", profile_photo_url="https://cdn.example.com/alice.png")


@pytest.fixture
def bob(make_user) -> User:
    return make_user("bob")


@pytest.fixture
def carol(make_user) -> User:
    return make_user("carol")


@pytest.fixture
def make_conversation(db: Session) -> Callable[..., str]:
    def _make(*members: User, is_group: bool = False, group_name: Optional[str] = None) -> str:
        conversation = ConversationRepository(db).create_with_members(
            [m.id for m in members], is_group=is_group, group_name=group_name
        )
        db.commit()
        return conversation.id

    return _make


@pytest.fixture
def conversation_id(make_conversation, alice: User, bob: User) -> str:
    """A direct conversation between alice and bob."""
    return make_conversation(alice, bob)


@pytest.fixture
def add_contact(db: Session) -> Callable[[User, User], None]:
    def _add(owner: User, contact: User) -> None:
        db.add(UserContact(user_id=owner.id, contact_user_id=contact.id))
        db.commit()

    return _add


# ============================================================================
# REALTIME FIXTURES
# ============================================================================


@pytest.fixture
def notifications() -> RecordingProvider:
    return RecordingProvider()


@pytest.fixture
def gateway(store: RealtimeStore, notifications: RecordingProvider) -> RealtimeGateway:
    return RealtimeGateway(
        store=store,
        notifier=OfflineNotifier(notifications),
        broadcast_scope="contacts",
        auth_timeout_seconds=5.0,
    )


@pytest.fixture
def connect(gateway: RealtimeGateway) -> Callable[..., Any]:
    """Register a fake connection for ``user``; returns the Connection."""

    async def _connect(user: User, transport: Optional[FakeTransport] = None) -> Connection:
        connection = Connection(
            transport=transport or FakeTransport(),
            user_id=user.id,
            display_name=user.username,
            photo_url=user.profile_photo_url,
        )
        await gateway.lifecycle.connect(connection)
        return connection

    return _connect


# ============================================================================
# HTTP / WEBSOCKET FIXTURES
# ============================================================================


@pytest.fixture
def client(gateway: RealtimeGateway, session_factory: sessionmaker):
    """Test client wired to the per-test database and gateway."""

    def override_get_db():
        session = session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.state.realtime_gateway = gateway

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
    app.state.realtime_gateway = None

