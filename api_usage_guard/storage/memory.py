"""
In-memory store implementations.

Dict-backed stores for tests and single-process deployments. State lives
exactly as long as the store objects do.
"""

from dataclasses import replace
from typing import Any, Dict, List, Optional

from .base import (
    AlertStore,
    DuplicateKeyError,
    IntegrationStore,
    Stores,
    UsageStore,
    UserStore,
)
from .models import Alert, Integration, UsageEntry, User


class MemoryIntegrationStore(IntegrationStore):

    def __init__(self):
        self._records: Dict[str, Integration] = {}

    def create(self, integration: Integration) -> Integration:
        self._records[integration.id] = integration
        return integration

    def find_by_id(self, integration_id: str) -> Optional[Integration]:
        return self._records.get(integration_id)

    def find_many(self, owner_id: Optional[str] = None) -> List[Integration]:
        return [
            record for record in self._records.values()
            if owner_id is None or record.owner_id == owner_id
        ]

    def update(self, integration_id: str, changes: Dict[str, Any]) -> Optional[Integration]:
        current = self._records.get(integration_id)
        if current is None:
            return None
        updated = replace(current, **changes)
        self._records[integration_id] = updated
        return updated

    def delete(self, integration_id: str) -> bool:
        return self._records.pop(integration_id, None) is not None


class MemoryUsageStore(UsageStore):

    def __init__(self):
        self._sequences: Dict[str, List[UsageEntry]] = {}

    def append(self, integration_id: str, entry: UsageEntry) -> UsageEntry:
        self._sequences.setdefault(integration_id, []).append(entry)
        return entry

    def find_many(self, integration_id: str) -> List[UsageEntry]:
        return list(self._sequences.get(integration_id, []))

    def find_in_range(self, integration_id: str, start: str, end: str) -> List[UsageEntry]:
        return [
            entry for entry in self._sequences.get(integration_id, [])
            if start <= entry.date <= end
        ]

    def update_at(self, integration_id: str, index: int, changes: Dict[str, Any]) -> Optional[UsageEntry]:
        entries = self._sequences.get(integration_id)
        if not entries or not 0 <= index < len(entries):
            return None
        entries[index] = replace(entries[index], **changes)
        return entries[index]

    def delete_at(self, integration_id: str, index: int) -> Optional[UsageEntry]:
        entries = self._sequences.get(integration_id)
        if not entries or not 0 <= index < len(entries):
            return None
        return entries.pop(index)

    def delete_all(self, integration_id: str) -> int:
        return len(self._sequences.pop(integration_id, []))


class MemoryAlertStore(AlertStore):

    def __init__(self):
        self._records: Dict[str, Alert] = {}

    def create(self, alert: Alert) -> Alert:
        self._records[alert.id] = alert
        return alert

    def find_by_id(self, alert_id: str) -> Optional[Alert]:
        return self._records.get(alert_id)

    def find_many(self, integration_id: Optional[str] = None) -> List[Alert]:
        return [
            alert for alert in self._records.values()
            if integration_id is None or alert.integration_id == integration_id
        ]

    def update(self, alert_id: str, changes: Dict[str, Any]) -> Optional[Alert]:
        current = self._records.get(alert_id)
        if current is None:
            return None
        updated = replace(current, **changes)
        self._records[alert_id] = updated
        return updated

    def delete(self, alert_id: str) -> bool:
        return self._records.pop(alert_id, None) is not None


class MemoryUserStore(UserStore):

    def __init__(self):
        self._records: Dict[str, User] = {}

    def _check_email_free(self, email: str, user_id: Optional[str] = None) -> None:
        for record in self._records.values():
            if record.email == email and record.id != user_id:
                raise DuplicateKeyError("email", email)

    def create(self, user: User) -> User:
        self._check_email_free(user.email)
        self._records[user.id] = user
        return user

    def find_by_id(self, user_id: str) -> Optional[User]:
        return self._records.get(user_id)

    def find_by_email(self, email: str) -> Optional[User]:
        for record in self._records.values():
            if record.email == email:
                return record
        return None

    def update(self, user_id: str, changes: Dict[str, Any]) -> Optional[User]:
        current = self._records.get(user_id)
        if current is None:
            return None
        if "email" in changes:
            self._check_email_free(changes["email"], user_id)
        updated = replace(current, **changes)
        self._records[user_id] = updated
        return updated

    def delete(self, user_id: str) -> bool:
        return self._records.pop(user_id, None) is not None


def create_memory_stores() -> Stores:
    """Build a fresh, empty set of in-memory stores."""
    return Stores(
        integrations=MemoryIntegrationStore(),
        usage=MemoryUsageStore(),
        alerts=MemoryAlertStore(),
        users=MemoryUserStore(),
    )
