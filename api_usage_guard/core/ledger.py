"""
Usage ledger.

Ordered per-integration sequences of usage entries. Entries are addressed
by zero-based position; deleting an entry shifts every later index down.

Writes to one integration are serialized by a per-integration lock. The
registry takes the same lock for cascading deletes, so a write either lands
before the integration disappears or fails with NotFound.

Recording and updating re-evaluate the integration's alerts after the
write itself has been committed. An evaluation failure is logged and never
turns a successful write into a failed one.
"""

import logging
import re
import threading
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional

from .alerts import AlertEngine
from .errors import NotFound
from api_usage_guard.storage.base import IntegrationStore, UsageStore
from api_usage_guard.storage.models import Alert, UsageEntry

logger = logging.getLogger(__name__)

_POSITION_PATTERN = re.compile(r"[+-]?[0-9]+")


def parse_position(positional_id: str) -> Optional[int]:
    """Parse the leading base-10 integer of a positional id.

    Leading whitespace is skipped and anything after the digits is ignored,
    so ``"1.5"`` is 1 and ``"0abc"`` is 0. Returns None when the id does not
    start with an integer.
    """
    match = _POSITION_PATTERN.match(str(positional_id).lstrip())
    if match is None:
        return None
    return int(match.group())


class KeyedLocks:
    """Reentrant locks created on demand per key.

    An entry lives only while some thread holds or waits for it, so keys
    nobody is using take no memory.
    """

    def __init__(self):
        self._entries: Dict[str, list] = {}
        self._guard = threading.Lock()

    def __len__(self) -> int:
        with self._guard:
            return len(self._entries)

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        with self._guard:
            entry = self._entries.get(key)
            if entry is None:
                entry = self._entries[key] = [threading.RLock(), 0]
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._entries[key]


class UsageLedger:
    """Records usage against integrations and keeps alerts current."""

    def __init__(
        self,
        usage: UsageStore,
        integrations: IntegrationStore,
        alert_engine: AlertEngine,
    ):
        self.usage = usage
        self.integrations = integrations
        self.alert_engine = alert_engine
        self.locks = KeyedLocks()

    def integration_lock(self, integration_id: str):
        """Context manager serializing writes to one integration."""
        return self.locks.hold(integration_id)

    def _evaluate_alerts(self, integration_id: str) -> List[Alert]:
        try:
            return self.alert_engine.evaluate_alerts_for_integration(integration_id)
        except Exception:
            logger.exception("Alert evaluation failed for integration %s", integration_id)
            return []

    def record_usage(self, integration_id: str, entry: UsageEntry) -> Dict[str, str]:
        """Append ``entry`` to the integration's sequence and evaluate alerts.

        Raises:
            NotFound: If the integration does not exist
        """
        with self.integration_lock(integration_id):
            if self.integrations.find_by_id(integration_id) is None:
                raise NotFound("Integration does not exist")
            self.usage.append(integration_id, entry)
            logger.debug("Recorded usage for integration %s on %s", integration_id, entry.date)
            self._evaluate_alerts(integration_id)

        return {"message": "Usage recorded"}

    def get_usage(self, integration_id: str) -> List[UsageEntry]:
        return self.usage.find_many(integration_id)

    def get_usage_in_range(self, integration_id: str, start: str, end: str) -> List[UsageEntry]:
        """Entries whose date satisfies ``start <= date <= end``.

        Dates are compared as strings, so only ISO-8601 dates give calendar
        ordering. Other formats are compared character by character.
        """
        return self.usage.find_in_range(integration_id, start, end)

    def update_usage_entry(
        self,
        integration_id: str,
        positional_id: str,
        changes: Dict[str, Any],
    ) -> Optional[UsageEntry]:
        """Shallow-merge ``changes`` onto the entry at ``positional_id``.

        Returns None for a non-numeric or out-of-range position.
        """
        index = parse_position(positional_id)
        if index is None or index < 0:
            return None

        with self.integration_lock(integration_id):
            updated = self.usage.update_at(integration_id, index, changes)
            if updated is not None:
                self._evaluate_alerts(integration_id)
        return updated

    def delete_usage_entry(self, integration_id: str, positional_id: str) -> Optional[UsageEntry]:
        """Remove and return the entry at ``positional_id``.

        Returns None for a non-numeric or out-of-range position.
        """
        index = parse_position(positional_id)
        if index is None or index < 0:
            return None

        with self.integration_lock(integration_id):
            deleted = self.usage.delete_at(integration_id, index)
        return deleted

    def delete_all_usage(self, integration_id: str) -> int:
        with self.integration_lock(integration_id):
            return self.usage.delete_all(integration_id)
