"""
Store interfaces for the persistence layer.

Each store owns one entity kind and exposes point CRUD primitives that are
atomic per call. Services receive stores by reference and never reach for
process-global state.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from .models import Alert, Integration, UsageEntry, User


class DuplicateKeyError(Exception):
    """Raised when a write would violate a uniqueness constraint."""
    def __init__(self, field: str, value: str):
        super().__init__(f"Duplicate value for {field}")
        self.field = field
        self.value = value


class IntegrationStore(ABC):
    """Persistence for integration records."""

    @abstractmethod
    def create(self, integration: Integration) -> Integration:
        ...

    @abstractmethod
    def find_by_id(self, integration_id: str) -> Optional[Integration]:
        ...

    @abstractmethod
    def find_many(self, owner_id: Optional[str] = None) -> List[Integration]:
        """Return integrations in creation order, optionally for one owner."""

    @abstractmethod
    def update(self, integration_id: str, changes: Dict[str, Any]) -> Optional[Integration]:
        ...

    @abstractmethod
    def delete(self, integration_id: str) -> bool:
        ...


class UsageStore(ABC):
    """Ordered usage sequences keyed by integration id."""

    @abstractmethod
    def append(self, integration_id: str, entry: UsageEntry) -> UsageEntry:
        ...

    @abstractmethod
    def find_many(self, integration_id: str) -> List[UsageEntry]:
        """Return the full sequence in insertion order (empty if unknown)."""

    @abstractmethod
    def find_in_range(self, integration_id: str, start: str, end: str) -> List[UsageEntry]:
        """Return entries with ``start <= date <= end`` under string comparison."""

    @abstractmethod
    def update_at(self, integration_id: str, index: int, changes: Dict[str, Any]) -> Optional[UsageEntry]:
        ...

    @abstractmethod
    def delete_at(self, integration_id: str, index: int) -> Optional[UsageEntry]:
        ...

    @abstractmethod
    def delete_all(self, integration_id: str) -> int:
        """Drop the whole sequence, returning the number of removed entries."""


class AlertStore(ABC):
    """Persistence for alert definitions."""

    @abstractmethod
    def create(self, alert: Alert) -> Alert:
        ...

    @abstractmethod
    def find_by_id(self, alert_id: str) -> Optional[Alert]:
        ...

    @abstractmethod
    def find_many(self, integration_id: Optional[str] = None) -> List[Alert]:
        ...

    @abstractmethod
    def update(self, alert_id: str, changes: Dict[str, Any]) -> Optional[Alert]:
        ...

    @abstractmethod
    def delete(self, alert_id: str) -> bool:
        ...


class UserStore(ABC):
    """Persistence for user records."""

    @abstractmethod
    def create(self, user: User) -> User:
        """Persist a new user.

        Raises:
            DuplicateKeyError: If another user already has the same email
        """

    @abstractmethod
    def find_by_id(self, user_id: str) -> Optional[User]:
        ...

    @abstractmethod
    def find_by_email(self, email: str) -> Optional[User]:
        ...

    @abstractmethod
    def update(self, user_id: str, changes: Dict[str, Any]) -> Optional[User]:
        ...

    @abstractmethod
    def delete(self, user_id: str) -> bool:
        ...


@dataclass(frozen=True)
class Stores:
    """The four stores an application instance works against."""
    integrations: IntegrationStore
    usage: UsageStore
    alerts: AlertStore
    users: UserStore
