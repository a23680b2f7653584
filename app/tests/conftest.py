"""
Pytest configuration and fixtures for testing.
Provides test database, test client, users, tokens and a fake Google client.
"""
import os

# Settings are read at import time
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key-for-vidchat-suite")
os.environ.setdefault("GOOGLE_CLIENT_ID", "test-client.apps.googleusercontent.com")
os.environ.setdefault("LOG_JSON", "false")

import pytest
from typing import Callable, Dict, Generator
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from fastapi.testclient import TestClient
from db.database import Base
from db.models import User
from db.repository import Repository
from core.errors import Unauthorized
from core.security import AuthGateway
from services.google_client import GoogleProfile, get_google_client
from main import app
from api.dependencies import get_auth_gateway, get_db, get_session_factory


TEST_DATABASE_URL = "sqlite:///./test_vidchat.db"

# Create test engine
test_engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False}
)
TestSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)


class FakeGoogleClient:
    """Accepts tokens registered with add_profile; everything else is rejected."""

    def __init__(self):
        self.profiles: Dict[str, GoogleProfile] = {}

    def add_profile(self, token: str, profile: GoogleProfile) -> None:
        self.profiles[token] = profile

    def verify(self, token: str) -> GoogleProfile:
        if token not in self.profiles:
            raise Unauthorized("Invalid Google token")
        return self.profiles[token]


@pytest.fixture(scope="function")
def test_db() -> Generator[Session, None, None]:
    """
    Create a fresh database for each test.
    Automatically creates and destroys tables.
    """
    Base.metadata.create_all(bind=test_engine)

    db = TestSessionLocal()

    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=test_engine)


@pytest.fixture
def session_factory(test_db: Session) -> Callable[[], Session]:
    """Session factory bound to the test database (tables already created)."""
    return TestSessionLocal


@pytest.fixture
def fake_google() -> FakeGoogleClient:
    return FakeGoogleClient()


@pytest.fixture(scope="function")
def test_client(test_db: Session, fake_google: FakeGoogleClient) -> TestClient:
    """
    Create a test client with test database dependency override.
    """
    def override_get_db():
        try:
            yield test_db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: TestSessionLocal
    app.dependency_overrides[get_google_client] = lambda: fake_google

    client = TestClient(app)
    yield client

    # Clean up dependency overrides
    app.dependency_overrides.clear()


@pytest.fixture
def gateway() -> AuthGateway:
    return get_auth_gateway()


@pytest.fixture(scope="function")
def seed_test_users(test_db: Session) -> list[User]:
    """
    Seed test database with 3 test users: alice, bob and carol.
    """
    repository = Repository(test_db)
    users = []

    for name in ("alice", "bob", "carol"):
        user = repository.create_user(
            google_id=f"google-{name}",
            name=name.capitalize(),
            email=f"{name}@example.com",
            username=name,
            avatar=f"https://cdn.example.com/{name}.png"
        )
        users.append(user)

    return users


@pytest.fixture
def auth_headers(gateway: AuthGateway) -> Callable[[User], Dict[str, str]]:
    """Build an Authorization header for a user."""
    def _headers(user: User) -> Dict[str, str]:
        return {"Authorization": f"Bearer {gateway.issue_for_user(user)}"}
    return _headers
