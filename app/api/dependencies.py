"""
Dependency injection functions for FastAPI.
Provides database sessions, the auth gateway and authentication dependencies.
"""
from functools import lru_cache
from typing import Callable, Generator, Optional
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
from core.config import settings
from core.security import AuthGateway, Identity
from db.database import SessionLocal
from db.repository import Repository
from services.message_service import MessageService
from services.video_service import VideoService

security = HTTPBearer(auto_error=False)


def get_db() -> Generator[Session, None, None]:
    """
    Dependency that provides a database session.
    Automatically closes the session when request completes.

    Yields:
        Database session
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_session_factory() -> Callable[[], Session]:
    """Session factory for work that runs outside the request (WebSocket events)."""
    return SessionLocal


@lru_cache()
def get_auth_gateway() -> AuthGateway:
    """Auth gateway built once from settings."""
    return AuthGateway.from_settings(settings)


def get_repository(db: Session = Depends(get_db)) -> Repository:
    return Repository(db)


def get_message_service(repository: Repository = Depends(get_repository)) -> MessageService:
    return MessageService(repository)


def get_video_service(repository: Repository = Depends(get_repository)) -> VideoService:
    return VideoService(repository)


def get_current_identity(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    gateway: AuthGateway = Depends(get_auth_gateway)
) -> Identity:
    """
    Bearer authentication dependency.
    Validates the Authorization header JWT (signature and expiry).

    Returns:
        Caller identity

    Raises:
        Unauthorized: if the header is missing or the token is invalid or expired
    """
    raw = f"{credentials.scheme} {credentials.credentials}" if credentials else None
    return gateway.verify(raw)
