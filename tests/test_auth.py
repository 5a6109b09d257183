"""
Tests for token issuance, verification and the authentication flows.
"""

import base64
import json
from datetime import timedelta

import jwt
import pytest

from api_usage_guard.core.errors import InvalidCredentials, InvalidToken, ValidationFailure
from api_usage_guard.core.tokens import ALGORITHM, TokenService

TEST_ACCESS_SECRET = "auth-test-access-secret-0123456789abcdef"
TEST_REFRESH_SECRET = "auth-test-refresh-secret-0123456789abcdef"


@pytest.fixture
def tokens():
    return TokenService(TEST_ACCESS_SECRET, TEST_REFRESH_SECRET)


class TestTokenService:
    """Test signed token lifecycle."""

    def test_access_round_trip(self, tokens):
        """An issued access token verifies to the same user."""
        claims = tokens.verify_access_token(tokens.issue_access_token("u1"))

        assert claims.user_id == "u1"
        assert claims.expires_at > claims.issued_at

    def test_refresh_round_trip(self, tokens):
        """An issued refresh token verifies to the same user."""
        assert tokens.verify_refresh_token(tokens.issue_refresh_token("u1")).user_id == "u1"

    def test_kinds_are_not_interchangeable(self, tokens):
        """Access tokens are not refresh tokens and vice versa."""
        with pytest.raises(InvalidToken):
            tokens.verify_refresh_token(tokens.issue_access_token("u1"))
        with pytest.raises(InvalidToken):
            tokens.verify_access_token(tokens.issue_refresh_token("u1"))

    def test_expired_token(self):
        """Tokens past their expiry are rejected."""
        expired = TokenService(
            TEST_ACCESS_SECRET, TEST_REFRESH_SECRET, access_ttl=timedelta(seconds=-60)
        )

        with pytest.raises(InvalidToken):
            expired.verify_access_token(expired.issue_access_token("u1"))

    def test_tampered_token(self, tokens):
        """A payload swapped under the original signature does not verify."""
        header, _, signature = tokens.issue_access_token("u1").split(".")
        forged = base64.urlsafe_b64encode(
            json.dumps({"userId": "admin", "iat": 1, "exp": 9999999999}).encode("utf-8")
        ).rstrip(b"=").decode("ascii")
        tampered = ".".join([header, forged, signature])

        with pytest.raises(InvalidToken):
            tokens.verify_access_token(tampered)

    def test_garbage_token(self, tokens):
        """Malformed strings are rejected."""
        with pytest.raises(InvalidToken):
            tokens.verify_access_token("not-a-token")

    def test_missing_user_id(self, tokens):
        """Correctly signed tokens without a user id are rejected."""
        token = jwt.encode({"iat": 1, "exp": 9999999999}, TEST_ACCESS_SECRET, algorithm=ALGORITHM)

        with pytest.raises(InvalidToken):
            tokens.verify_access_token(token)

    def test_secrets_must_differ(self):
        """Sharing a secret between token kinds is refused."""
        with pytest.raises(ValueError):
            TokenService("same", "same")
        with pytest.raises(ValueError):
            TokenService("", "other")


class TestAuthService:
    """Test signup, login, refresh and logout."""

    def test_signup_issues_pair(self, application):
        """Signup creates a user and returns both tokens."""
        pair = application.auth.signup("A", "a@x.com", "p")

        user_id = application.tokens.verify_access_token(pair.access_token).user_id
        assert application.credentials.get_user(user_id).email == "a@x.com"
        assert application.tokens.verify_refresh_token(pair.refresh_token).user_id == user_id
        assert set(pair.to_dict()) == {"token", "refreshToken"}

    def test_signup_duplicate_email(self, application):
        """Signing up twice with one email fails."""
        application.auth.signup("A", "a@x.com", "p")

        with pytest.raises(ValidationFailure, match="Email already registered"):
            application.auth.signup("B", "a@x.com", "q")

    def test_login(self, application):
        """Valid credentials yield tokens for the user."""
        user = application.credentials.create_user("A", "a@x.com", "p")

        pair = application.auth.login("a@x.com", "p")

        assert application.tokens.verify_access_token(pair.access_token).user_id == user.id

    def test_login_failures_look_alike(self, application):
        """Unknown email and wrong password raise the same error."""
        application.credentials.create_user("A", "a@x.com", "p")

        with pytest.raises(InvalidCredentials) as wrong_password:
            application.auth.login("a@x.com", "wrong")
        with pytest.raises(InvalidCredentials) as unknown_email:
            application.auth.login("nobody@x.com", "p")

        assert wrong_password.value.message == unknown_email.value.message == "Invalid credentials"

    def test_refresh(self, application):
        """A refresh token mints a new access token for the same user."""
        pair = application.auth.signup("A", "a@x.com", "p")

        access_token = application.auth.refresh(pair.refresh_token)

        assert (
            application.tokens.verify_access_token(access_token).user_id
            == application.tokens.verify_refresh_token(pair.refresh_token).user_id
        )

    def test_refresh_rejects_access_token(self, application):
        """Access tokens cannot be used to refresh."""
        pair = application.auth.signup("A", "a@x.com", "p")

        with pytest.raises(InvalidToken):
            application.auth.refresh(pair.access_token)

    def test_logout_does_not_revoke(self, application):
        """Logout acknowledges; tokens keep working until expiry."""
        pair = application.auth.signup("A", "a@x.com", "p")

        assert application.auth.logout() == {"message": "Logged out"}
        assert application.tokens.verify_access_token(pair.access_token)
