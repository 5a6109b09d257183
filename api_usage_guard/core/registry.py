"""
Integration registry.

Every integration has an owner. Single-tenant deployments register
everything under ``ANONYMOUS_OWNER``; multi-tenant callers pass the
authenticated user id, and records of other owners look like unknown ids.
"""

import logging
import uuid
from typing import Any, Dict, List, Optional

from .alerts import AlertEngine
from .errors import ValidationFailure
from .ledger import UsageLedger
from api_usage_guard.storage.base import IntegrationStore
from api_usage_guard.storage.models import Integration

logger = logging.getLogger(__name__)

_MUTABLE_FIELDS = {"name", "api_key"}


class IntegrationRegistry:
    """CRUD over integrations, cascading deletes to usage and alerts."""

    def __init__(
        self,
        integrations: IntegrationStore,
        ledger: UsageLedger,
        alert_engine: AlertEngine,
    ):
        self.integrations = integrations
        self.ledger = ledger
        self.alert_engine = alert_engine

    def create(self, owner_id: str, name: str, type: str, api_key: str) -> Integration:
        if not owner_id:
            raise ValidationFailure("Integration owner is required")

        integration = Integration(
            id=str(uuid.uuid4()),
            owner_id=owner_id,
            name=name,
            type=type,
            api_key=api_key,
        )
        self.integrations.create(integration)
        logger.info("Registered %s integration %s for owner %s", type, integration.id, owner_id)
        return integration

    def get(self, integration_id: str, owner_id: Optional[str] = None) -> Optional[Integration]:
        integration = self.integrations.find_by_id(integration_id)
        if integration is None:
            return None
        if owner_id is not None and integration.owner_id != owner_id:
            return None
        return integration

    def list(self, owner_id: str) -> List[Integration]:
        return self.integrations.find_many(owner_id)

    def update(
        self,
        integration_id: str,
        changes: Dict[str, Any],
        owner_id: Optional[str] = None,
    ) -> Optional[Integration]:
        """Shallow-merge ``changes``; only ``name`` and ``api_key`` may change.

        Raises:
            ValidationFailure: If ``changes`` touches ``type`` or any other
                immutable field
        """
        if "type" in changes:
            raise ValidationFailure("Integration type cannot be changed")
        forbidden = set(changes) - _MUTABLE_FIELDS
        if forbidden:
            raise ValidationFailure(f"Fields cannot be updated: {sorted(forbidden)}")

        if self.get(integration_id, owner_id) is None:
            return None
        return self.integrations.update(integration_id, changes)

    def delete(self, integration_id: str, owner_id: Optional[str] = None) -> Optional[Dict[str, str]]:
        """Delete an integration together with its usage and alerts.

        Holds the ledger's lock for the integration throughout, so no usage
        write can land between the cascade and the removal.
        """
        with self.ledger.integration_lock(integration_id):
            if self.get(integration_id, owner_id) is None:
                return None

            alerts_removed = self.alert_engine.delete_alerts_for_integration(integration_id)
            entries_removed = self.ledger.delete_all_usage(integration_id)
            self.integrations.delete(integration_id)
        logger.info(
            "Deleted integration %s (%d usage entries, %d alerts)",
            integration_id, entries_removed, alerts_removed,
        )
        return {"message": "Integration deleted"}
