"""
Test fixtures for the test suite.

Provides an in-memory database with two dioceses, their testing centers and
one user per role, plus identities and a client factory with dependency
overrides.
"""

import bcrypt
import pytest
from typing import Generator, Optional
from unittest.mock import MagicMock, Mock
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from diocese_backend.database import get_db
from diocese_backend.model import Base
from diocese_backend.model.auth import User
from diocese_backend.model.organization import Diocese
from diocese_backend.model.organization import TestingCenter as Center
from diocese_backend.permissions.auth import get_current_identity
from diocese_backend.permissions.principal import Identity
from diocese_backend.permissions.roles import ExternalRole, InternalRole

PASSWORD = "secret123"

# Devise style hash, cheap cost keeps the suite fast
PASSWORD_HASH = bcrypt.hashpw(PASSWORD.encode(), bcrypt.gensalt(rounds=4)).decode().replace("$2b$", "$2a$", 1)

ADMIN_ID = 1
DIOCESE_MANAGER_ID = 2
SCHOOL_MANAGER_ID = 3
STUDENT_ID = 4
DEACTIVATED_ID = 5
OTHER_DIOCESE_MANAGER_ID = 6


# Test database setup
@pytest.fixture(scope="function")
def test_db() -> Generator[Session, None, None]:
    """Create a test database session using SQLite in-memory."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    Base.metadata.create_all(bind=engine)

    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSessionLocal()

    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def seeded_db(test_db: Session) -> Session:
    """Two dioceses (5 and 6), centers 51, 52 and 61 and one user per role."""

    test_db.add_all([
        Diocese(id=5, name="Northern Diocese"),
        Diocese(id=6, name="Southern Diocese"),
    ])
    test_db.flush()

    test_db.add_all([
        Center(id=51, name="St. Mary", diocese_id=5),
        Center(id=52, name="St. Joseph", diocese_id=5),
        Center(id=61, name="St. Anne", diocese_id=6),
    ])
    test_db.flush()

    def user(id, role, diocese_id=None, testing_center_id=None, deactivate=False):
        return User(
            id=id,
            uuid=f"00000000-0000-0000-0000-00000000000{id}",
            username=f"user{id}",
            email=f"user{id}@diocese.org",
            encrypted_password=PASSWORD_HASH,
            role=role.code,
            diocese_id=diocese_id,
            testing_center_id=testing_center_id,
            deactivate=deactivate,
        )

    test_db.add_all([
        user(ADMIN_ID, ExternalRole.ARK_ADMIN),
        user(DIOCESE_MANAGER_ID, ExternalRole.DIOCESE_ADMIN, diocese_id=5),
        user(SCHOOL_MANAGER_ID, ExternalRole.CENTER_ADMIN, diocese_id=5, testing_center_id=51),
        user(STUDENT_ID, ExternalRole.STUDENT, diocese_id=5, testing_center_id=51),
        user(DEACTIVATED_ID, ExternalRole.TEACHER, diocese_id=5, testing_center_id=52, deactivate=True),
        user(OTHER_DIOCESE_MANAGER_ID, ExternalRole.DIOCESE_EXECUTIVE, diocese_id=6),
    ])
    test_db.commit()

    return test_db


# Mock database for simpler tests
@pytest.fixture
def mock_db() -> Mock:
    """Create a mock database session with common query patterns."""
    db = MagicMock(spec=Session)

    query_mock = MagicMock()
    query_mock.filter = MagicMock(return_value=query_mock)
    query_mock.order_by = MagicMock(return_value=query_mock)
    query_mock.first = MagicMock(return_value=None)
    query_mock.all = MagicMock(return_value=[])
    query_mock.scalar = MagicMock(return_value=None)

    db.query = MagicMock(return_value=query_mock)
    return db


# Identity fixtures for the three roles
@pytest.fixture
def admin_identity() -> Identity:
    return Identity(id=ADMIN_ID, email="user1@diocese.org", username="user1", role=InternalRole.SUPER_ADMIN)


@pytest.fixture
def diocese_identity() -> Identity:
    return Identity(
        id=DIOCESE_MANAGER_ID,
        email="user2@diocese.org",
        username="user2",
        role=InternalRole.DIOCESE_MANAGER,
        diocese_id=5
    )


@pytest.fixture
def school_identity() -> Identity:
    return Identity(
        id=SCHOOL_MANAGER_ID,
        email="user3@diocese.org",
        username="user3",
        role=InternalRole.SCHOOL_MANAGER,
        diocese_id=5,
        testing_center_id=51
    )


# Test client fixture with dependency injection
@pytest.fixture
def test_client_factory(mock_db):
    """Factory for creating test clients with different identities."""
    from fastapi.testclient import TestClient
    from diocese_backend.server import app

    def _create_client(identity: Optional[Identity], db: Optional[Session] = None):
        app.dependency_overrides[get_current_identity] = lambda: identity
        app.dependency_overrides[get_db] = lambda: db if db is not None else mock_db
        return TestClient(app)

    yield _create_client

    app.dependency_overrides.clear()


@pytest.fixture
def db_client(seeded_db):
    """Client resolving identities from cookies against the seeded database."""
    from fastapi.testclient import TestClient
    from diocese_backend.server import app

    app.dependency_overrides[get_db] = lambda: seeded_db
    yield TestClient(app)
    app.dependency_overrides.clear()
