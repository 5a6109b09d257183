"""
Threshold alerts over cumulative usage and cost.

Evaluation always recomputes totals from the full usage history of an
integration and compares them against each alert's current threshold.
Running totals are never cached, so edits and deletions of historical
entries cannot make the totals drift.

Triggering is monotonic: once an alert is triggered, nothing here resets it.
"""

import logging
import uuid
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Union

from .errors import NotFound, ValidationFailure
from api_usage_guard.storage.base import AlertStore, IntegrationStore, UsageStore
from api_usage_guard.storage.models import Alert, AlertType, NotificationMethod, UsageEntry

logger = logging.getLogger(__name__)

_UPDATABLE_FIELDS = {"threshold", "notification_method", "integration_id", "type"}


@dataclass(frozen=True)
class UsageTotals:
    """Aggregate usage and cost over an integration's history."""
    usage: float
    cost: float
    entry_count: int

    def observed(self, alert_type: AlertType) -> float:
        """Total for the metric an alert of ``alert_type`` watches."""
        return self.usage if alert_type == AlertType.USAGE else self.cost


def compute_totals(entries: Iterable[UsageEntry]) -> UsageTotals:
    """Sum usage and cost over all entries."""
    total_usage = 0.0
    total_cost = 0.0
    count = 0
    for entry in entries:
        total_usage += entry.usage
        total_cost += entry.cost
        count += 1
    return UsageTotals(usage=total_usage, cost=total_cost, entry_count=count)


class AlertNotifier:
    """Receives alerts at the moment they transition to triggered."""

    def notify(self, alert: Alert, totals: UsageTotals) -> None:
        raise NotImplementedError


class LoggingNotifier(AlertNotifier):
    """Reports triggered alerts through the application log."""

    def notify(self, alert: Alert, totals: UsageTotals) -> None:
        logger.warning(
            "Alert %s triggered for integration %s: %s total %.2f >= threshold %.2f (notify via %s)",
            alert.id,
            alert.integration_id,
            alert.type.value,
            totals.observed(alert.type),
            alert.threshold,
            alert.notification_method.value,
        )


class AlertEngine:
    """CRUD over alert definitions plus threshold evaluation."""

    def __init__(
        self,
        alerts: AlertStore,
        integrations: IntegrationStore,
        usage: UsageStore,
        notifier: Optional[AlertNotifier] = None,
    ):
        self.alerts = alerts
        self.integrations = integrations
        self.usage = usage
        self.notifier = notifier or LoggingNotifier()

    def create_alert(
        self,
        integration_id: str,
        threshold: float,
        type: Union[AlertType, str],
        notification_method: Union[NotificationMethod, str],
    ) -> Alert:
        """Create an alert for an existing integration.

        The integration is only checked here. If it is removed later without
        going through the registry, the alert keeps evaluating against an
        empty history, which never triggers a positive threshold.

        Raises:
            NotFound: If the integration does not exist
        """
        if self.integrations.find_by_id(integration_id) is None:
            raise NotFound("Integration does not exist")

        alert = Alert(
            id=str(uuid.uuid4()),
            integration_id=integration_id,
            threshold=float(threshold),
            type=AlertType(type),
            notification_method=NotificationMethod(notification_method),
            triggered=False,
        )
        self.alerts.create(alert)
        logger.info("Created %s alert %s for integration %s", alert.type.value, alert.id, integration_id)
        return alert

    def get_alert(self, alert_id: str) -> Optional[Alert]:
        return self.alerts.find_by_id(alert_id)

    def list_alerts(self, integration_id: Optional[str] = None) -> List[Alert]:
        return self.alerts.find_many(integration_id)

    def update_alert(self, alert_id: str, changes: Dict[str, Any]) -> Optional[Alert]:
        """Shallow-merge ``changes`` onto an alert.

        The triggered flag is not updatable.

        Raises:
            ValidationFailure: If ``changes`` names a field that cannot change
        """
        unknown = set(changes) - _UPDATABLE_FIELDS
        if unknown:
            raise ValidationFailure(f"Fields cannot be updated: {sorted(unknown)}")

        values = dict(changes)
        if "threshold" in values:
            values["threshold"] = float(values["threshold"])
        if "type" in values:
            values["type"] = AlertType(values["type"])
        if "notification_method" in values:
            values["notification_method"] = NotificationMethod(values["notification_method"])

        return self.alerts.update(alert_id, values)

    def delete_alert(self, alert_id: str) -> Optional[Dict[str, str]]:
        if not self.alerts.delete(alert_id):
            return None
        return {"message": "Alert deleted"}

    def delete_alerts_for_integration(self, integration_id: str) -> int:
        """Remove every alert that references ``integration_id``."""
        removed = 0
        for alert in self.alerts.find_many(integration_id):
            if self.alerts.delete(alert.id):
                removed += 1
        return removed

    def evaluate_alerts_for_integration(self, integration_id: str) -> List[Alert]:
        """Flip triggered flags for alerts whose threshold has been reached.

        Compares the totals over all historical entries with each alert's
        threshold (``>=``). Idempotent: a repeated call with no new writes
        changes nothing and returns an empty list.

        Args:
            integration_id: Integration whose alerts are evaluated

        Returns:
            Alerts that became triggered during this call
        """
        candidates = [
            alert for alert in self.alerts.find_many(integration_id)
            if not alert.triggered
        ]
        if not candidates:
            return []

        totals = compute_totals(self.usage.find_many(integration_id))

        newly_triggered = []
        for alert in candidates:
            if totals.observed(alert.type) >= alert.threshold:
                updated = self.alerts.update(alert.id, {"triggered": True})
                if updated is not None:
                    newly_triggered.append(updated)

        for alert in newly_triggered:
            try:
                self.notifier.notify(alert, totals)
            except Exception:
                logger.exception("Notification for alert %s failed", alert.id)

        return newly_triggered
