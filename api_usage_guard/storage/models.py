"""
Data models for storage layer.

Defines the tracked entities and their wire representation.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict


class AlertType(Enum):
    """Metric an alert threshold is compared against."""
    COST = "cost"
    USAGE = "usage"


class NotificationMethod(Enum):
    """Channel used to notify when an alert triggers."""
    EMAIL = "email"
    SLACK = "slack"


# Owner used by single-tenant deployments
ANONYMOUS_OWNER = "anonymous"


@dataclass(frozen=True)
class Integration:
    """Registered external API credential whose usage is tracked."""
    id: str
    owner_id: str
    name: str
    type: str
    api_key: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "ownerId": self.owner_id,
            "name": self.name,
            "type": self.type,
            "apiKey": self.api_key,
        }


@dataclass(frozen=True)
class UsageEntry:
    """One dated record of consumption and cost.

    Entries have no identity of their own; they are addressed by their
    position in the owning integration's sequence.
    """
    date: str
    usage: float
    cost: float

    def to_dict(self) -> Dict[str, Any]:
        return {"date": self.date, "usage": self.usage, "cost": self.cost}


@dataclass(frozen=True)
class Alert:
    """Threshold rule on an integration's cumulative usage or cost."""
    id: str
    integration_id: str
    threshold: float
    type: AlertType
    notification_method: NotificationMethod
    triggered: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "integrationId": self.integration_id,
            "threshold": self.threshold,
            "type": self.type.value,
            "notificationMethod": self.notification_method.value,
            "triggered": self.triggered,
        }


@dataclass(frozen=True)
class PublicUser:
    """User representation safe to hand out of the credential store."""
    id: str
    name: str
    email: str

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name, "email": self.email}


@dataclass(frozen=True)
class User:
    """Stored user record, including the salted password hash."""
    id: str
    name: str
    email: str
    password_hash: str

    def to_public(self) -> PublicUser:
        """Strip the password hash."""
        return PublicUser(id=self.id, name=self.name, email=self.email)
