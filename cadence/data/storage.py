"""
Storage — the single place where SQL lives.

Every other module talks to Storage through get/set on a handful of keys,
never to raw SQL. Values are stored as JSON. A failing read or write is
logged and degrades to "no prior data" so scheduling never stops because the
database is locked, missing or corrupt.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from typing import Any, Optional

logger = logging.getLogger(__name__)

# Store keys
PERFORMANCE_HISTORY = "performance_history"
SWITCHER_STATE = "switcher_state"
GLOBAL_MODEL = "federated.global_model"
CONTRIBUTION_QUEUE = "federated.contribution_queue"
PRIVACY_CONFIG = "federated.privacy_config"


class Storage:
    """Key/value access layer wrapping a sqlite3 connection."""

    def __init__(self, conn: Optional[sqlite3.Connection]) -> None:
        self.conn = conn

    def get(self, key: str, default: Any = None) -> Any:
        """Return the decoded value for key, or default if absent or unreadable."""
        if self.conn is None:
            return default
        try:
            row = self.conn.execute(
                "SELECT value FROM kv_store WHERE key = ?", (key,)
            ).fetchone()
        except sqlite3.Error as exc:
            logger.warning("Storage read failed for %s: %s", key, exc)
            return default
        if row is None:
            return default
        try:
            return json.loads(row[0])
        except (TypeError, ValueError) as exc:
            logger.warning("Discarding corrupt value for %s: %s", key, exc)
            return default

    def set(self, key: str, value: Any) -> bool:
        """Persist value under key. Returns False if the write did not happen."""
        if self.conn is None:
            return False
        try:
            payload = json.dumps(value)
        except (TypeError, ValueError) as exc:
            logger.warning("Value for %s is not serialisable: %s", key, exc)
            return False
        try:
            self.conn.execute(
                """INSERT INTO kv_store (key, value, updated_at)
                   VALUES (?, ?, datetime('now'))
                   ON CONFLICT(key) DO UPDATE SET
                       value = excluded.value, updated_at = excluded.updated_at""",
                (key, payload),
            )
            self.conn.commit()
        except sqlite3.Error as exc:
            logger.warning("Storage write failed for %s: %s", key, exc)
            return False
        return True

    def delete(self, key: str) -> None:
        if self.conn is None:
            return
        try:
            self.conn.execute("DELETE FROM kv_store WHERE key = ?", (key,))
            self.conn.commit()
        except sqlite3.Error as exc:
            logger.warning("Storage delete failed for %s: %s", key, exc)

    def keys(self) -> list:
        if self.conn is None:
            return []
        try:
            rows = self.conn.execute("SELECT key FROM kv_store ORDER BY key").fetchall()
        except sqlite3.Error as exc:
            logger.warning("Storage key listing failed: %s", exc)
            return []
        return [r[0] for r in rows]


# ---------------------------------------------------------------------------
# Explanation
# ---------------------------------------------------------------------------
# What this file does:
#   A tiny key/value repository over one SQLite table. The clock, the
#   switcher and the aggregator each own one or two keys.
#
# Data flow:
#   PerformanceRecorder.record() → Storage.set("performance_history", [...])
#   FederatedAggregator batch → Storage.set("federated.global_model", {...})
#   Startup → Storage.get(key, default) → components rebuild their state.
