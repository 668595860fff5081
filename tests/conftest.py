"""
Test configuration and fixtures for pytest.

This module provides shared fixtures used across all tests:
- Test database (SQLite in-memory for speed)
- Test client (FastAPI TestClient)
- Users with stored Google credentials
- A fake Drive client and an orchestrator wired to both
"""

import pytest
from typing import Generator

from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

from app.main import app
from app.db.base import Base
from app.db.session import get_db
from app.models.user import User
from app.services.transfer import SessionRepository, TransferOrchestrator, build_transfer_orchestrator
from tests.helpers import FakeDriveClient, auth_headers_for, create_user


# ---------------------------------------------------------------------------
# TEST DATABASE SETUP
# ---------------------------------------------------------------------------
# Use SQLite in-memory for fast tests (no PostgreSQL dependency)
# StaticPool keeps the same connection across all operations

SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},  # Required for SQLite
    poolclass=StaticPool,  # Keep connection alive across operations
)

TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


# ---------------------------------------------------------------------------
# DATABASE FIXTURES
# ---------------------------------------------------------------------------

@pytest.fixture(scope="function")
def db() -> Generator[Session, None, None]:
    """
    Create a fresh database for each test function.

    - Creates all tables
    - Yields a session for the test
    - Drops all tables after test (clean slate)
    """
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()

    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


# ---------------------------------------------------------------------------
# USER FIXTURES
# ---------------------------------------------------------------------------

@pytest.fixture
def sender(db: Session) -> User:
    return create_user(db, "alice@example.com")


@pytest.fixture
def receiver(db: Session) -> User:
    return create_user(db, "bob@example.com")


@pytest.fixture
def outsider(db: Session) -> User:
    return create_user(db, "carol@example.com")


@pytest.fixture
def sender_headers(sender: User) -> dict:
    return auth_headers_for(sender)


@pytest.fixture
def receiver_headers(receiver: User) -> dict:
    return auth_headers_for(receiver)


@pytest.fixture
def outsider_headers(outsider: User) -> dict:
    return auth_headers_for(outsider)


# ---------------------------------------------------------------------------
# DRIVE FIXTURES
# ---------------------------------------------------------------------------

@pytest.fixture
def fake_drive() -> FakeDriveClient:
    return FakeDriveClient()


@pytest.fixture
def session_factory(db: Session) -> sessionmaker:
    """Session factory bound to the test database (what services open their sessions from)."""
    return TestingSessionLocal


@pytest.fixture
def orchestrator(session_factory: sessionmaker, fake_drive: FakeDriveClient) -> TransferOrchestrator:
    """Orchestrator on the test database with the fake Drive client."""
    return build_transfer_orchestrator(
        session_factory=session_factory,
        drive_client_factory=fake_drive,
    )


@pytest.fixture
def repository(orchestrator: TransferOrchestrator) -> SessionRepository:
    return orchestrator.repository


# ---------------------------------------------------------------------------
# CLIENT FIXTURE
# ---------------------------------------------------------------------------

@pytest.fixture(scope="function")
def client(db: Session, orchestrator: TransferOrchestrator) -> Generator[TestClient, None, None]:
    """
    Create a test client with the test database and orchestrator.

    Overrides get_db and installs the orchestrator on app.state before the
    lifespan runs, so the app never touches the real database.
    """
    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.state.transfer_orchestrator = orchestrator

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
    del app.state.transfer_orchestrator
