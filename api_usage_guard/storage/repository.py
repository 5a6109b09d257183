"""
Repository pattern for data access.

SQLite-backed implementations of the store interfaces. Every call opens its
own connection and commits before returning, so each operation is atomic.
"""

import sqlite3
from typing import Any, Dict, List, Optional

from .base import (
    AlertStore,
    DuplicateKeyError,
    IntegrationStore,
    Stores,
    UsageStore,
    UserStore,
)
from .db import get_connection
from .models import Alert, AlertType, Integration, NotificationMethod, UsageEntry, User

DEFAULT_DB_PATH = "api_usage_guard.db"

_INTEGRATION_COLUMNS = ("owner_id", "name", "type", "api_key")
_USAGE_COLUMNS = ("date", "usage", "cost")
_ALERT_COLUMNS = ("integration_id", "threshold", "type", "notification_method", "triggered")
_USER_COLUMNS = ("name", "email", "password_hash")


def initialize_schema(db_path: str = DEFAULT_DB_PATH) -> None:
    """Create all tables if they don't exist.

    Usage entries carry an autoincrement row id so that insertion order is
    recoverable; callers still address entries by position.

    Args:
        db_path: Path to SQLite database file
    """
    conn = get_connection(db_path)
    try:
        conn.executescript("""
            CREATE TABLE IF NOT EXISTS integration (
                id TEXT PRIMARY KEY,
                owner_id TEXT NOT NULL,
                name TEXT NOT NULL,
                type TEXT NOT NULL,
                api_key TEXT NOT NULL
            );
            CREATE INDEX IF NOT EXISTS idx_integration_owner
                ON integration (owner_id);

            CREATE TABLE IF NOT EXISTS usage_entry (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                integration_id TEXT NOT NULL,
                date TEXT NOT NULL,
                usage REAL NOT NULL,
                cost REAL NOT NULL
            );
            CREATE INDEX IF NOT EXISTS idx_usage_entry_integration
                ON usage_entry (integration_id);

            CREATE TABLE IF NOT EXISTS alert (
                id TEXT PRIMARY KEY,
                integration_id TEXT NOT NULL,
                threshold REAL NOT NULL,
                type TEXT NOT NULL,
                notification_method TEXT NOT NULL,
                triggered INTEGER NOT NULL DEFAULT 0
            );
            CREATE INDEX IF NOT EXISTS idx_alert_integration
                ON alert (integration_id);

            CREATE TABLE IF NOT EXISTS user_account (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                email TEXT NOT NULL UNIQUE,
                password_hash TEXT NOT NULL
            );
        """)
        conn.commit()
    finally:
        conn.close()


def _assignments(changes: Dict[str, Any], allowed: tuple) -> str:
    unknown = set(changes) - set(allowed)
    if unknown:
        raise ValueError(f"Unknown fields: {sorted(unknown)}")
    return ", ".join(f"{column} = ?" for column in changes)


def _row_to_integration(row: sqlite3.Row) -> Integration:
    return Integration(
        id=row["id"],
        owner_id=row["owner_id"],
        name=row["name"],
        type=row["type"],
        api_key=row["api_key"],
    )


def _row_to_usage(row: sqlite3.Row) -> UsageEntry:
    return UsageEntry(date=row["date"], usage=row["usage"], cost=row["cost"])


def _row_to_alert(row: sqlite3.Row) -> Alert:
    return Alert(
        id=row["id"],
        integration_id=row["integration_id"],
        threshold=row["threshold"],
        type=AlertType(row["type"]),
        notification_method=NotificationMethod(row["notification_method"]),
        triggered=bool(row["triggered"]),
    )


def _row_to_user(row: sqlite3.Row) -> User:
    return User(
        id=row["id"],
        name=row["name"],
        email=row["email"],
        password_hash=row["password_hash"],
    )


class SQLiteIntegrationStore(IntegrationStore):
    """Integration records in the ``integration`` table."""

    def __init__(self, db_path: str = DEFAULT_DB_PATH):
        self.db_path = db_path

    def create(self, integration: Integration) -> Integration:
        conn = get_connection(self.db_path)
        try:
            conn.execute(
                "INSERT INTO integration (id, owner_id, name, type, api_key) VALUES (?, ?, ?, ?, ?)",
                (integration.id, integration.owner_id, integration.name,
                 integration.type, integration.api_key),
            )
            conn.commit()
            return integration
        finally:
            conn.close()

    def find_by_id(self, integration_id: str) -> Optional[Integration]:
        conn = get_connection(self.db_path)
        try:
            row = conn.execute(
                "SELECT * FROM integration WHERE id = ?", (integration_id,)
            ).fetchone()
            return _row_to_integration(row) if row else None
        finally:
            conn.close()

    def find_many(self, owner_id: Optional[str] = None) -> List[Integration]:
        conn = get_connection(self.db_path)
        try:
            query = "SELECT * FROM integration"
            params = []
            if owner_id is not None:
                query += " WHERE owner_id = ?"
                params.append(owner_id)
            query += " ORDER BY rowid"
            return [_row_to_integration(row) for row in conn.execute(query, params)]
        finally:
            conn.close()

    def update(self, integration_id: str, changes: Dict[str, Any]) -> Optional[Integration]:
        conn = get_connection(self.db_path)
        try:
            if changes:
                assignments = _assignments(changes, _INTEGRATION_COLUMNS)
                conn.execute(
                    f"UPDATE integration SET {assignments} WHERE id = ?",
                    (*changes.values(), integration_id),
                )
                conn.commit()
            row = conn.execute(
                "SELECT * FROM integration WHERE id = ?", (integration_id,)
            ).fetchone()
            return _row_to_integration(row) if row else None
        finally:
            conn.close()

    def delete(self, integration_id: str) -> bool:
        conn = get_connection(self.db_path)
        try:
            cursor = conn.execute("DELETE FROM integration WHERE id = ?", (integration_id,))
            conn.commit()
            return cursor.rowcount > 0
        finally:
            conn.close()


class SQLiteUsageStore(UsageStore):
    """Usage sequences in the ``usage_entry`` table, ordered by row id."""

    def __init__(self, db_path: str = DEFAULT_DB_PATH):
        self.db_path = db_path

    def append(self, integration_id: str, entry: UsageEntry) -> UsageEntry:
        conn = get_connection(self.db_path)
        try:
            conn.execute(
                "INSERT INTO usage_entry (integration_id, date, usage, cost) VALUES (?, ?, ?, ?)",
                (integration_id, entry.date, entry.usage, entry.cost),
            )
            conn.commit()
            return entry
        finally:
            conn.close()

    def find_many(self, integration_id: str) -> List[UsageEntry]:
        conn = get_connection(self.db_path)
        try:
            cursor = conn.execute(
                "SELECT date, usage, cost FROM usage_entry WHERE integration_id = ? ORDER BY id",
                (integration_id,),
            )
            return [_row_to_usage(row) for row in cursor]
        finally:
            conn.close()

    def find_in_range(self, integration_id: str, start: str, end: str) -> List[UsageEntry]:
        # BINARY collation orders TEXT the same way Python orders str
        conn = get_connection(self.db_path)
        try:
            cursor = conn.execute("""
                SELECT date, usage, cost FROM usage_entry
                WHERE integration_id = ? AND date >= ? AND date <= ?
                ORDER BY id
            """, (integration_id, start, end))
            return [_row_to_usage(row) for row in cursor]
        finally:
            conn.close()

    def _row_at(self, conn: sqlite3.Connection, integration_id: str, index: int) -> Optional[sqlite3.Row]:
        if index < 0:
            return None
        return conn.execute(
            "SELECT id, date, usage, cost FROM usage_entry "
            "WHERE integration_id = ? ORDER BY id LIMIT 1 OFFSET ?",
            (integration_id, index),
        ).fetchone()

    def update_at(self, integration_id: str, index: int, changes: Dict[str, Any]) -> Optional[UsageEntry]:
        conn = get_connection(self.db_path)
        try:
            row = self._row_at(conn, integration_id, index)
            if row is None:
                return None
            if changes:
                assignments = _assignments(changes, _USAGE_COLUMNS)
                conn.execute(
                    f"UPDATE usage_entry SET {assignments} WHERE id = ?",
                    (*changes.values(), row["id"]),
                )
                conn.commit()
            updated = conn.execute(
                "SELECT date, usage, cost FROM usage_entry WHERE id = ?", (row["id"],)
            ).fetchone()
            return _row_to_usage(updated)
        finally:
            conn.close()

    def delete_at(self, integration_id: str, index: int) -> Optional[UsageEntry]:
        conn = get_connection(self.db_path)
        try:
            row = self._row_at(conn, integration_id, index)
            if row is None:
                return None
            conn.execute("DELETE FROM usage_entry WHERE id = ?", (row["id"],))
            conn.commit()
            return _row_to_usage(row)
        finally:
            conn.close()

    def delete_all(self, integration_id: str) -> int:
        conn = get_connection(self.db_path)
        try:
            cursor = conn.execute(
                "DELETE FROM usage_entry WHERE integration_id = ?", (integration_id,)
            )
            conn.commit()
            return cursor.rowcount
        finally:
            conn.close()


class SQLiteAlertStore(AlertStore):
    """Alert definitions in the ``alert`` table."""

    def __init__(self, db_path: str = DEFAULT_DB_PATH):
        self.db_path = db_path

    def create(self, alert: Alert) -> Alert:
        conn = get_connection(self.db_path)
        try:
            conn.execute("""
                INSERT INTO alert
                (id, integration_id, threshold, type, notification_method, triggered)
                VALUES (?, ?, ?, ?, ?, ?)
            """, (
                alert.id,
                alert.integration_id,
                alert.threshold,
                alert.type.value,
                alert.notification_method.value,
                int(alert.triggered),
            ))
            conn.commit()
            return alert
        finally:
            conn.close()

    def find_by_id(self, alert_id: str) -> Optional[Alert]:
        conn = get_connection(self.db_path)
        try:
            row = conn.execute("SELECT * FROM alert WHERE id = ?", (alert_id,)).fetchone()
            return _row_to_alert(row) if row else None
        finally:
            conn.close()

    def find_many(self, integration_id: Optional[str] = None) -> List[Alert]:
        conn = get_connection(self.db_path)
        try:
            query = "SELECT * FROM alert"
            params = []
            if integration_id is not None:
                query += " WHERE integration_id = ?"
                params.append(integration_id)
            query += " ORDER BY rowid"
            return [_row_to_alert(row) for row in conn.execute(query, params)]
        finally:
            conn.close()

    def update(self, alert_id: str, changes: Dict[str, Any]) -> Optional[Alert]:
        values = {}
        for column, value in changes.items():
            if isinstance(value, (AlertType, NotificationMethod)):
                value = value.value
            elif column == "triggered":
                value = int(value)
            values[column] = value

        conn = get_connection(self.db_path)
        try:
            if values:
                assignments = _assignments(values, _ALERT_COLUMNS)
                conn.execute(
                    f"UPDATE alert SET {assignments} WHERE id = ?",
                    (*values.values(), alert_id),
                )
                conn.commit()
            row = conn.execute("SELECT * FROM alert WHERE id = ?", (alert_id,)).fetchone()
            return _row_to_alert(row) if row else None
        finally:
            conn.close()

    def delete(self, alert_id: str) -> bool:
        conn = get_connection(self.db_path)
        try:
            cursor = conn.execute("DELETE FROM alert WHERE id = ?", (alert_id,))
            conn.commit()
            return cursor.rowcount > 0
        finally:
            conn.close()


class SQLiteUserStore(UserStore):
    """User records in the ``user_account`` table; email is unique."""

    def __init__(self, db_path: str = DEFAULT_DB_PATH):
        self.db_path = db_path

    def create(self, user: User) -> User:
        conn = get_connection(self.db_path)
        try:
            conn.execute(
                "INSERT INTO user_account (id, name, email, password_hash) VALUES (?, ?, ?, ?)",
                (user.id, user.name, user.email, user.password_hash),
            )
            conn.commit()
            return user
        except sqlite3.IntegrityError:
            conn.rollback()
            raise DuplicateKeyError("email", user.email)
        finally:
            conn.close()

    def find_by_id(self, user_id: str) -> Optional[User]:
        conn = get_connection(self.db_path)
        try:
            row = conn.execute("SELECT * FROM user_account WHERE id = ?", (user_id,)).fetchone()
            return _row_to_user(row) if row else None
        finally:
            conn.close()

    def find_by_email(self, email: str) -> Optional[User]:
        conn = get_connection(self.db_path)
        try:
            row = conn.execute("SELECT * FROM user_account WHERE email = ?", (email,)).fetchone()
            return _row_to_user(row) if row else None
        finally:
            conn.close()

    def update(self, user_id: str, changes: Dict[str, Any]) -> Optional[User]:
        conn = get_connection(self.db_path)
        try:
            if changes:
                assignments = _assignments(changes, _USER_COLUMNS)
                try:
                    conn.execute(
                        f"UPDATE user_account SET {assignments} WHERE id = ?",
                        (*changes.values(), user_id),
                    )
                    conn.commit()
                except sqlite3.IntegrityError:
                    conn.rollback()
                    raise DuplicateKeyError("email", changes.get("email", ""))
            row = conn.execute("SELECT * FROM user_account WHERE id = ?", (user_id,)).fetchone()
            return _row_to_user(row) if row else None
        finally:
            conn.close()

    def delete(self, user_id: str) -> bool:
        conn = get_connection(self.db_path)
        try:
            cursor = conn.execute("DELETE FROM user_account WHERE id = ?", (user_id,))
            conn.commit()
            return cursor.rowcount > 0
        finally:
            conn.close()


def create_sqlite_stores(db_path: str = DEFAULT_DB_PATH) -> Stores:
    """Initialize the schema at ``db_path`` and return stores bound to it."""
    initialize_schema(db_path)
    return Stores(
        integrations=SQLiteIntegrationStore(db_path),
        usage=SQLiteUsageStore(db_path),
        alerts=SQLiteAlertStore(db_path),
        users=SQLiteUserStore(db_path),
    )
