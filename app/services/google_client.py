"""
Google Sign-In client.

Verifies Google ID tokens obtained by the client-side sign-in flow and
extracts the profile used to create or find the local account.
"""
import logging
from dataclasses import dataclass
from typing import Optional
from google.auth.transport import requests as google_requests
from google.oauth2 import id_token

from core.config import settings
from core.errors import Unauthorized

logger = logging.getLogger(__name__)

GOOGLE_ISSUERS = ("accounts.google.com", "https://accounts.google.com")


@dataclass(frozen=True)
class GoogleProfile:
    """Subset of the Google ID token claims we keep."""
    google_id: str
    email: str
    name: str
    avatar: Optional[str] = None


class GoogleIdentityClient:
    """Verifies Google ID tokens against the configured OAuth client ID."""

    def __init__(self, client_id: Optional[str] = None):
        self.client_id = client_id or settings.google_client_id
        self._request = google_requests.Request()

    def verify(self, token: str) -> GoogleProfile:
        """
        Verify a Google ID token.

        Args:
            token: Google ID token string

        Returns:
            GoogleProfile with the account ID, email, name and picture

        Raises:
            Unauthorized: if the token is invalid, expired, issued for another
                client or by another issuer
        """
        if not self.client_id:
            logger.error("GOOGLE_CLIENT_ID is not configured")
            raise Unauthorized("Google sign-in is not configured")

        try:
            idinfo = id_token.verify_oauth2_token(token, self._request, self.client_id)
        except ValueError as e:
            logger.warning(f"Google token verification failed: {e}")
            raise Unauthorized("Invalid Google token")

        if idinfo.get("iss") not in GOOGLE_ISSUERS:
            raise Unauthorized("Invalid Google token issuer")

        email = idinfo.get("email") or "no-email@example.com"
        return GoogleProfile(
            google_id=idinfo["sub"],
            email=email,
            name=idinfo.get("name") or "Unknown Name",
            avatar=idinfo.get("picture")
        )


_google_client: Optional[GoogleIdentityClient] = None


def get_google_client() -> GoogleIdentityClient:
    """Get the shared Google client (created on first use)."""
    global _google_client
    if _google_client is None:
        _google_client = GoogleIdentityClient()
    return _google_client
