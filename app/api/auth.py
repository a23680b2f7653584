"""
Authentication endpoints.
Exchanges a Google ID token for a local account and a signed access token.
"""
import logging
from fastapi import APIRouter, Depends, Request, status

from api.dependencies import get_auth_gateway, get_current_identity, get_repository
from api.schemas import GoogleLoginRequest, TokenResponse, UserProfile
from core.audit_logger import audit_logger
from core.errors import NotFound, Unauthorized
from core.security import AuthGateway, Identity
from db.models import User
from db.repository import Repository
from services.google_client import GoogleIdentityClient, GoogleProfile, get_google_client

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Authentication"])


def get_or_create_user(repository: Repository, profile: GoogleProfile) -> User:
    """Find the account linked to a Google profile, creating it on first sign-in."""
    user = repository.get_user_by_google_id(profile.google_id)
    if user is not None:
        return user

    username = repository.generate_unique_username(profile.name, profile.email)
    user = repository.create_user(
        google_id=profile.google_id,
        name=profile.name,
        email=profile.email,
        username=username,
        avatar=profile.avatar
    )
    logger.info(f"Created user {user.id} ({user.username}) from Google sign-in")
    return user


@router.post("/google", response_model=TokenResponse, status_code=status.HTTP_200_OK)
def google_login(
    body: GoogleLoginRequest,
    request: Request,
    repository: Repository = Depends(get_repository),
    google_client: GoogleIdentityClient = Depends(get_google_client),
    gateway: AuthGateway = Depends(get_auth_gateway)
):
    """
    Sign in with Google.

    Verifies the Google ID token, finds or creates the matching account and
    returns a bearer token valid for three hours.

    Raises:
        Unauthorized: 401 if the Google token is invalid

    Example Request:
        ```json
        POST /auth/google
        {"token": "<google id token>"}
        ```
    """
    ip_address = request.client.host if request.client else None
    try:
        profile = google_client.verify(body.token)
    except Unauthorized as e:
        audit_logger.log_auth_failure(ip_address, e.message)
        raise

    user = get_or_create_user(repository, profile)
    access_token = gateway.issue_for_user(user)

    audit_logger.log_auth_success(user.id, ip_address)
    audit_logger.log_token_issued(user.id, gateway.expires_in)

    return TokenResponse(
        access_token=access_token,
        token_type="Bearer",
        expires_in=gateway.expires_in,
        user=UserProfile.model_validate(user)
    )


@router.get("/me", response_model=UserProfile)
def get_me(
    identity: Identity = Depends(get_current_identity),
    repository: Repository = Depends(get_repository)
):
    """Get the authenticated user's profile."""
    user = repository.get_user_by_id(identity.id)
    if user is None:
        raise NotFound("User not found")
    return UserProfile.model_validate(user)
