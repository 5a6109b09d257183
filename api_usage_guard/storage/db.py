"""
SQLite connections.

Every store operation opens its own short-lived connection, so concurrent
writers wait on SQLite's file lock for up to ``BUSY_TIMEOUT_SECONDS``.
"""

import sqlite3
from pathlib import Path

BUSY_TIMEOUT_SECONDS = 5.0


def get_connection(db_path: str = "api_usage_guard.db") -> sqlite3.Connection:
    """Open ``db_path``, creating missing parent directories.

    Rows come back as ``sqlite3.Row`` and can be read by column name.
    """
    path = Path(db_path)
    if not path.parent.exists():
        path.parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(str(path), timeout=BUSY_TIMEOUT_SECONDS)
    conn.row_factory = sqlite3.Row
    return conn
