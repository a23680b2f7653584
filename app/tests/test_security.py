"""
Unit tests for bearer credential issuance and verification.
"""
import pytest
from datetime import timedelta
from jose import jwt
from core.errors import Unauthorized
from core.security import AuthGateway, AuthenticatedRequest, Identity, require_identity

SECRET = "unit-test-secret-key-0123456789"


@pytest.fixture
def auth_gateway() -> AuthGateway:
    return AuthGateway(secret_key=SECRET, algorithm="HS256", expire_hours=3)


class TestVerify:
    """Tests for AuthGateway.verify."""

    def test_valid_token_yields_identity(self, auth_gateway):
        token = auth_gateway.issue_token({"id": "abc123", "email": "a@example.com"})

        identity = auth_gateway.verify(token)

        assert identity == Identity(id="abc123", email="a@example.com")

    def test_bearer_prefix_is_optional(self, auth_gateway):
        token = auth_gateway.issue_token({"id": "abc123"})

        assert auth_gateway.verify(f"Bearer {token}").id == "abc123"
        assert auth_gateway.verify(f"bearer   {token}").id == "abc123"
        assert auth_gateway.verify(token).id == "abc123"

    @pytest.mark.parametrize("raw", [None, "", "   ", "Bearer ", "Bearer"])
    def test_missing_credential(self, auth_gateway, raw):
        with pytest.raises(Unauthorized):
            auth_gateway.verify(raw)

    def test_expired_token(self, auth_gateway):
        token = auth_gateway.issue_token({"id": "abc123"}, expires_delta=timedelta(seconds=-5))

        with pytest.raises(Unauthorized) as exc_info:
            auth_gateway.verify(token)

        assert "expired" in exc_info.value.message

    def test_wrong_signature(self, auth_gateway):
        forged = AuthGateway(secret_key="another-secret-key-9876543210").issue_token({"id": "abc123"})

        with pytest.raises(Unauthorized) as exc_info:
            auth_gateway.verify(forged)

        assert exc_info.value.message == "Unauthorized: invalid token"

    def test_garbage_token(self, auth_gateway):
        with pytest.raises(Unauthorized):
            auth_gateway.verify("not.a.jwt")

    @pytest.mark.parametrize("claims", [{}, {"id": ""}, {"id": 42}, {"email": "x@example.com"}])
    def test_token_without_string_id(self, auth_gateway, claims):
        token = auth_gateway.issue_token(claims)

        with pytest.raises(Unauthorized) as exc_info:
            auth_gateway.verify(token)

        assert exc_info.value.message == "Unauthorized: invalid token payload"


class TestIssue:
    """Tests for token issuance."""

    def test_issue_sets_three_hour_expiry(self, auth_gateway):
        token = auth_gateway.issue_token({"id": "abc123"})

        claims = jwt.get_unverified_claims(token)

        assert claims["exp"] - claims["iat"] == 3 * 3600
        assert auth_gateway.expires_in == 10800

    def test_issue_for_user_carries_profile_claims(self, auth_gateway):
        class _User:
            id = "u1"
            email = "u1@example.com"
            name = "User One"
            username = "userone"
            avatar = None

        claims = jwt.get_unverified_claims(auth_gateway.issue_for_user(_User()))

        assert claims["id"] == "u1"
        assert claims["username"] == "userone"
        assert claims["name"] == "User One"


class TestRequireIdentity:
    """Tests for the service-level identity guard."""

    def test_request_with_identity(self):
        identity = Identity(id="abc123")
        assert require_identity(AuthenticatedRequest(identity=identity, payload=None)) is identity

    def test_missing_request(self):
        with pytest.raises(Unauthorized):
            require_identity(None)

    def test_missing_identity(self):
        with pytest.raises(Unauthorized):
            require_identity(AuthenticatedRequest(identity=None, payload="x"))
