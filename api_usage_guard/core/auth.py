"""
Authentication flows built on the credential store and token service.
"""

import logging
from dataclasses import dataclass
from typing import Dict

from .credentials import CredentialStore
from .errors import InvalidCredentials
from .tokens import TokenService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TokenPair:
    """Access and refresh tokens issued together at signup or login."""
    access_token: str
    refresh_token: str

    def to_dict(self) -> Dict[str, str]:
        return {"token": self.access_token, "refreshToken": self.refresh_token}


class AuthService:
    """Signup, login, refresh and logout."""

    def __init__(self, credentials: CredentialStore, tokens: TokenService):
        self.credentials = credentials
        self.tokens = tokens

    def _issue_pair(self, user_id: str) -> TokenPair:
        return TokenPair(
            access_token=self.tokens.issue_access_token(user_id),
            refresh_token=self.tokens.issue_refresh_token(user_id),
        )

    def signup(self, name: str, email: str, password: str) -> TokenPair:
        user = self.credentials.create_user(name, email, password)
        return self._issue_pair(user.id)

    def login(self, email: str, password: str) -> TokenPair:
        """Exchange credentials for a token pair.

        Raises:
            InvalidCredentials: For an unknown email or a wrong password
        """
        user = self.credentials.authenticate(email, password)
        if user is None:
            logger.info("Rejected login attempt")
            raise InvalidCredentials()
        return self._issue_pair(user.id)

    def refresh(self, refresh_token: str) -> str:
        """Mint a new access token from a valid refresh token.

        The user id in the refresh token is not checked against the
        credential store, and no revocation list is consulted.

        Raises:
            InvalidToken: If the refresh token does not verify
        """
        claims = self.tokens.verify_refresh_token(refresh_token)
        return self.tokens.issue_access_token(claims.user_id)

    def logout(self) -> Dict[str, str]:
        """Acknowledge a logout.

        Tokens are stateless, so this does not invalidate anything; issued
        tokens remain usable until they expire.
        """
        return {"message": "Logged out"}
