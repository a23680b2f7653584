"""
Bearer credential issuance and verification.
Uses python-jose for HMAC-signed JWT tokens.

The same AuthGateway instance backs the REST dependency, the message
service guard and the WebSocket handshake, so every entry point makes the
same trust decision.
"""
import re
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Generic, Optional, TypeVar
from jose import jwt, JWTError, ExpiredSignatureError

from core.config import Settings
from core.errors import Unauthorized

logger = logging.getLogger(__name__)

_BEARER_PREFIX = re.compile(r"^Bearer\s+", re.IGNORECASE)

T = TypeVar("T")


@dataclass(frozen=True)
class Identity:
    """Caller identity extracted from a verified credential."""
    id: str
    email: Optional[str] = None


@dataclass(frozen=True)
class AuthenticatedRequest(Generic[T]):
    """
    A call made on behalf of a verified identity.

    Built once at the boundary (REST route or WebSocket event) and handed
    to the service layer unchanged.
    """
    identity: Identity
    payload: T


class AuthGateway:
    """Verifies and issues bearer credentials against a shared secret."""

    def __init__(self, secret_key: str, algorithm: str = "HS256", expire_hours: int = 3):
        self._secret_key = secret_key
        self._algorithm = algorithm
        self.expire_hours = expire_hours

    @classmethod
    def from_settings(cls, settings: Settings) -> "AuthGateway":
        return cls(
            secret_key=settings.jwt_secret_key,
            algorithm=settings.jwt_algorithm,
            expire_hours=settings.access_token_expire_hours
        )

    @property
    def expires_in(self) -> int:
        """Token lifetime in seconds."""
        return self.expire_hours * 3600

    @staticmethod
    def extract_token(raw: Optional[str]) -> str:
        """
        Strip an optional "Bearer " prefix from a credential string.

        Raises:
            Unauthorized: if the credential is absent or empty
        """
        if not raw or not isinstance(raw, str):
            raise Unauthorized("Unauthorized: missing credential")
        token = _BEARER_PREFIX.sub("", raw.strip()).strip()
        if not token:
            raise Unauthorized("Unauthorized: missing credential")
        return token

    def issue_token(self, claims: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
        """
        Sign a token carrying the given claims.

        Args:
            claims: Payload claims, must include "id"
            expires_delta: Optional custom lifetime (defaults to expire_hours)

        Returns:
            Encoded JWT string
        """
        now = datetime.now(timezone.utc)
        expire = now + (expires_delta if expires_delta is not None else timedelta(hours=self.expire_hours))
        to_encode = dict(claims)
        to_encode.update({"iat": int(now.timestamp()), "exp": int(expire.timestamp())})
        return jwt.encode(to_encode, self._secret_key, algorithm=self._algorithm)

    def issue_for_user(self, user) -> str:
        """Issue an access token for a persisted user."""
        return self.issue_token({
            "id": user.id,
            "email": user.email,
            "name": user.name,
            "username": user.username,
            "avatar": user.avatar
        })

    def verify(self, raw: Optional[str]) -> Identity:
        """
        Verify a bearer credential and return the caller identity.

        Raises:
            Unauthorized: if the credential is absent, malformed, expired or
                fails signature verification
        """
        token = self.extract_token(raw)
        try:
            payload = jwt.decode(token, self._secret_key, algorithms=[self._algorithm])
        except ExpiredSignatureError:
            logger.info("Rejected expired credential")
            raise Unauthorized("Unauthorized: token expired")
        except JWTError as e:
            logger.info(f"Rejected invalid credential: {e}")
            raise Unauthorized("Unauthorized: invalid token")

        user_id = payload.get("id")
        if not user_id or not isinstance(user_id, str):
            raise Unauthorized("Unauthorized: invalid token payload")
        return Identity(id=user_id, email=payload.get("email"))


def require_identity(request: Optional[AuthenticatedRequest]) -> Identity:
    """
    Service-level guard: refuse to act on behalf of no one.

    Raises:
        Unauthorized: if there is no request or it carries no identity
    """
    if request is None or request.identity is None or not request.identity.id:
        raise Unauthorized("Unauthorized")
    return request.identity
