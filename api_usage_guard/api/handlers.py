"""
Request layer.

Maps every logical operation onto a ``Response`` of status code and body,
independent of any transport. Services raise business-rule errors; this
module is the only place they are turned into status codes:

- success: 200 with the entity or an acknowledgement
- NotFound: 404 ``{"message": ...}``
- ValidationFailure: 400 ``{"message": ...}``
- InvalidCredentials / InvalidToken: 401 ``{"message": ...}``
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from . import validation
from api_usage_guard.config.loader import TenancyMode
from api_usage_guard.core.alerts import AlertEngine
from api_usage_guard.core.auth import AuthService
from api_usage_guard.core.credentials import CredentialStore
from api_usage_guard.core.errors import (
    InvalidCredentials,
    InvalidToken,
    NotFound,
    ValidationFailure,
)
from api_usage_guard.core.ledger import UsageLedger
from api_usage_guard.core.registry import IntegrationRegistry
from api_usage_guard.core.tokens import TokenService
from api_usage_guard.storage.models import ANONYMOUS_OWNER

logger = logging.getLogger(__name__)

HTTP_OK = 200
HTTP_BAD_REQUEST = 400
HTTP_UNAUTHORIZED = 401
HTTP_NOT_FOUND = 404
HTTP_INTERNAL_ERROR = 500


@dataclass(frozen=True)
class Response:
    """Transport-neutral response."""
    status: int
    body: Any

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


def _message(status: int, message: str) -> Response:
    return Response(status, {"message": message})


def bearer_token(authorization: Optional[str]) -> str:
    """Extract the token from an ``Authorization: Bearer <token>`` header.

    Raises:
        InvalidToken: If the header is missing or not a bearer header
    """
    if not authorization or not authorization.startswith("Bearer "):
        raise InvalidToken("Unauthorized")
    token = authorization[len("Bearer "):].strip()
    if not token:
        raise InvalidToken("Unauthorized")
    return token


class RequestHandler:
    """Logical operations exposed to a transport."""

    def __init__(
        self,
        registry: IntegrationRegistry,
        ledger: UsageLedger,
        alert_engine: AlertEngine,
        credentials: CredentialStore,
        auth: AuthService,
        tokens: TokenService,
        tenancy: TenancyMode = TenancyMode.SINGLE,
    ):
        self.registry = registry
        self.ledger = ledger
        self.alert_engine = alert_engine
        self.credentials = credentials
        self.auth = auth
        self.tokens = tokens
        self.tenancy = tenancy

    def _run(self, operation: Callable[[], Response]) -> Response:
        try:
            return operation()
        except NotFound as e:
            return _message(HTTP_NOT_FOUND, e.message)
        except ValidationFailure as e:
            return _message(HTTP_BAD_REQUEST, e.message)
        except (InvalidCredentials, InvalidToken) as e:
            return _message(HTTP_UNAUTHORIZED, e.message)
        except Exception:
            logger.exception("Unhandled error while processing request")
            return _message(HTTP_INTERNAL_ERROR, "Internal error")

    def authenticate(self, authorization: Optional[str]) -> str:
        """Return the user id carried by a bearer access token.

        Raises:
            InvalidToken: If the header or token is invalid
        """
        token = bearer_token(authorization)
        try:
            return self.tokens.verify_access_token(token).user_id
        except InvalidToken:
            raise InvalidToken("Unauthorized")

    def _owner(self, authorization: Optional[str]) -> str:
        if self.tenancy == TenancyMode.SINGLE:
            return ANONYMOUS_OWNER
        return self.authenticate(authorization)

    # --- Integrations ---

    def create_integration(self, body: Any, authorization: Optional[str] = None) -> Response:
        def operation():
            owner_id = self._owner(authorization)
            fields = validation.parse_integration_create(body)
            integration = self.registry.create(owner_id, **fields)
            return Response(HTTP_OK, integration.to_dict())
        return self._run(operation)

    def get_integration(self, integration_id: str, authorization: Optional[str] = None) -> Response:
        def operation():
            integration = self.registry.get(integration_id, self._owner(authorization))
            if integration is None:
                return _message(HTTP_NOT_FOUND, "Integration not found")
            return Response(HTTP_OK, integration.to_dict())
        return self._run(operation)

    def update_integration(self, integration_id: str, body: Any, authorization: Optional[str] = None) -> Response:
        def operation():
            owner_id = self._owner(authorization)
            changes = validation.parse_integration_update(body)
            integration = self.registry.update(integration_id, changes, owner_id)
            if integration is None:
                return _message(HTTP_NOT_FOUND, "Integration not found")
            return Response(HTTP_OK, integration.to_dict())
        return self._run(operation)

    def delete_integration(self, integration_id: str, authorization: Optional[str] = None) -> Response:
        def operation():
            ack = self.registry.delete(integration_id, self._owner(authorization))
            if ack is None:
                return _message(HTTP_NOT_FOUND, "Integration not found")
            return Response(HTTP_OK, ack)
        return self._run(operation)

    def list_integrations(self, authorization: Optional[str] = None) -> Response:
        def operation():
            integrations = self.registry.list(self._owner(authorization))
            return Response(HTTP_OK, [integration.to_dict() for integration in integrations])
        return self._run(operation)

    # --- Usage ---

    def record_usage(self, integration_id: str, body: Any) -> Response:
        def operation():
            entry = validation.parse_usage_entry(body)
            return Response(HTTP_OK, self.ledger.record_usage(integration_id, entry))
        return self._run(operation)

    def get_usage(self, integration_id: str) -> Response:
        def operation():
            entries = self.ledger.get_usage(integration_id)
            return Response(HTTP_OK, [entry.to_dict() for entry in entries])
        return self._run(operation)

    def get_usage_range(self, integration_id: str, query: Any) -> Response:
        def operation():
            start, end = validation.parse_range_query(query)
            entries = self.ledger.get_usage_in_range(integration_id, start, end)
            return Response(HTTP_OK, [entry.to_dict() for entry in entries])
        return self._run(operation)

    def update_usage(self, integration_id: str, usage_id: str, body: Any) -> Response:
        def operation():
            changes = validation.parse_usage_update(body)
            entry = self.ledger.update_usage_entry(integration_id, usage_id, changes)
            if entry is None:
                return _message(HTTP_NOT_FOUND, "Usage entry not found")
            return Response(HTTP_OK, entry.to_dict())
        return self._run(operation)

    def delete_usage(self, integration_id: str, usage_id: str) -> Response:
        def operation():
            entry = self.ledger.delete_usage_entry(integration_id, usage_id)
            if entry is None:
                return _message(HTTP_NOT_FOUND, "Usage entry not found")
            return Response(HTTP_OK, entry.to_dict())
        return self._run(operation)

    # --- Alerts ---

    def create_alert(self, body: Any) -> Response:
        def operation():
            fields = validation.parse_alert_create(body)
            alert = self.alert_engine.create_alert(**fields)
            return Response(HTTP_OK, alert.to_dict())
        return self._run(operation)

    def get_alert(self, alert_id: str) -> Response:
        def operation():
            alert = self.alert_engine.get_alert(alert_id)
            if alert is None:
                return _message(HTTP_NOT_FOUND, "Alert not found")
            return Response(HTTP_OK, alert.to_dict())
        return self._run(operation)

    def update_alert(self, alert_id: str, body: Any) -> Response:
        def operation():
            changes = validation.parse_alert_update(body)
            alert = self.alert_engine.update_alert(alert_id, changes)
            if alert is None:
                return _message(HTTP_NOT_FOUND, "Alert not found")
            return Response(HTTP_OK, alert.to_dict())
        return self._run(operation)

    def delete_alert(self, alert_id: str) -> Response:
        def operation():
            ack = self.alert_engine.delete_alert(alert_id)
            if ack is None:
                return _message(HTTP_NOT_FOUND, "Alert not found")
            return Response(HTTP_OK, ack)
        return self._run(operation)

    # --- Users ---

    def create_user(self, body: Any) -> Response:
        def operation():
            name, email, password = validation.parse_user_create(body)
            user = self.credentials.create_user(name, email, password)
            return Response(HTTP_OK, user.to_dict())
        return self._run(operation)

    def get_user(self, user_id: str) -> Response:
        def operation():
            user = self.credentials.get_user(user_id)
            if user is None:
                return _message(HTTP_NOT_FOUND, "User not found")
            return Response(HTTP_OK, user.to_dict())
        return self._run(operation)

    def update_user(self, user_id: str, body: Any) -> Response:
        def operation():
            changes = validation.parse_user_update(body)
            user = self.credentials.update_user(user_id, changes)
            if user is None:
                return _message(HTTP_NOT_FOUND, "User not found")
            return Response(HTTP_OK, user.to_dict())
        return self._run(operation)

    def delete_user(self, user_id: str) -> Response:
        def operation():
            ack = self.credentials.delete_user(user_id)
            if ack is None:
                return _message(HTTP_NOT_FOUND, "User not found")
            return Response(HTTP_OK, ack)
        return self._run(operation)

    # --- Auth ---

    def signup(self, body: Any) -> Response:
        def operation():
            name, email, password = validation.parse_user_create(body)
            return Response(HTTP_OK, self.auth.signup(name, email, password).to_dict())
        return self._run(operation)

    def login(self, body: Any) -> Response:
        def operation():
            email, password = validation.parse_login(body)
            return Response(HTTP_OK, self.auth.login(email, password).to_dict())
        return self._run(operation)

    def refresh(self, body: Any) -> Response:
        def operation():
            token = body.get("refreshToken") if isinstance(body, dict) else None
            if not isinstance(token, str) or not token:
                raise InvalidToken("Invalid refresh token")
            try:
                access_token = self.auth.refresh(token)
            except InvalidToken:
                raise InvalidToken("Invalid refresh token")
            return Response(HTTP_OK, {"token": access_token})
        return self._run(operation)

    def logout(self, body: Optional[Dict[str, Any]] = None) -> Response:
        return Response(HTTP_OK, self.auth.logout())
