from __future__ import annotations

import logging
import sqlite3

from greensync.domain.exceptions import RepositoryError

logger = logging.getLogger(__name__)


class SyncSettingsOperations:
    """Key/value persistence for process-wide sync settings."""

    def get_sync_setting(self, key: str) -> str | None:
        try:
            db = self.get_db()
            row = db.execute("SELECT value FROM SyncSettings WHERE key = ?", (key,)).fetchone()
        except sqlite3.Error as exc:
            logger.error("Error reading sync setting %s: %s", key, exc)
            raise RepositoryError(f"Failed to read sync setting {key}: {exc}") from exc
        return row["value"] if row else None

    def set_sync_setting(self, key: str, value: str | None) -> None:
        with self.transaction() as db:
            db.execute(
                """
                INSERT INTO SyncSettings (key, value) VALUES (?, ?)
                ON CONFLICT(key) DO UPDATE SET value = excluded.value
                """,
                (key, value),
            )
