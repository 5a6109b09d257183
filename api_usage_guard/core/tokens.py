"""
Access and refresh token lifecycle.

Tokens are stateless HS256 JWTs carrying the user id. Access and refresh
tokens use different secrets, so a token of one kind never verifies as the
other. Nothing is stored server side; a token stays valid until it expires.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import jwt

from .errors import InvalidToken

ALGORITHM = "HS256"
DEFAULT_ACCESS_TTL = timedelta(minutes=15)
DEFAULT_REFRESH_TTL = timedelta(days=7)


@dataclass(frozen=True)
class TokenClaims:
    """Decoded contents of a verified token."""
    user_id: str
    issued_at: datetime
    expires_at: datetime


class TokenService:
    """Issues and verifies signed access and refresh tokens."""

    def __init__(
        self,
        access_secret: str,
        refresh_secret: str,
        access_ttl: timedelta = DEFAULT_ACCESS_TTL,
        refresh_ttl: timedelta = DEFAULT_REFRESH_TTL,
    ):
        if not access_secret or not refresh_secret:
            raise ValueError("Token secrets must not be empty")
        if access_secret == refresh_secret:
            raise ValueError("Access and refresh secrets must differ")
        self.access_secret = access_secret
        self.refresh_secret = refresh_secret
        self.access_ttl = access_ttl
        self.refresh_ttl = refresh_ttl

    def _issue(self, user_id: str, secret: str, ttl: timedelta) -> str:
        now = datetime.now(timezone.utc)
        payload = {
            "userId": user_id,
            "iat": int(now.timestamp()),
            "exp": int((now + ttl).timestamp()),
        }
        return jwt.encode(payload, secret, algorithm=ALGORITHM)

    def _verify(self, token: str, secret: str) -> TokenClaims:
        try:
            payload = jwt.decode(
                token,
                secret,
                algorithms=[ALGORITHM],
                options={"require": ["exp", "iat"]},
            )
        except jwt.PyJWTError:
            raise InvalidToken()

        user_id = payload.get("userId")
        if not isinstance(user_id, str) or not user_id:
            raise InvalidToken()

        return TokenClaims(
            user_id=user_id,
            issued_at=datetime.fromtimestamp(payload["iat"], tz=timezone.utc),
            expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
        )

    def issue_access_token(self, user_id: str) -> str:
        return self._issue(user_id, self.access_secret, self.access_ttl)

    def issue_refresh_token(self, user_id: str) -> str:
        return self._issue(user_id, self.refresh_secret, self.refresh_ttl)

    def verify_access_token(self, token: str) -> TokenClaims:
        """Verify an access token.

        Raises:
            InvalidToken: On bad signature, malformed payload, or expiry
        """
        return self._verify(token, self.access_secret)

    def verify_refresh_token(self, token: str) -> TokenClaims:
        """Verify a refresh token.

        Raises:
            InvalidToken: On bad signature, malformed payload, or expiry
        """
        return self._verify(token, self.refresh_secret)
