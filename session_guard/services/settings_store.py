"""
Device-Local Settings Store.

The session start mark is the only value SessionGuard persists.  The
``KeyValueStore`` protocol is the seam between the lifecycle logic and
durable storage: string keys, string values, and failures reported as
return values rather than exceptions, so a broken disk degrades to "no
mark" instead of crashing the guard.
"""

from __future__ import annotations

import sqlite3
from typing import Any, Optional, Protocol

from session_guard.database import DatabaseManager
from session_guard.logger import StructuredLogger


class KeyValueStore(Protocol):
    """Persistent string key-value capability."""

    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> bool: ...

    def delete(self, key: str) -> bool: ...


_UPSERT = (
    "INSERT INTO app_settings (key, value) VALUES (?, ?) "
    "ON CONFLICT(key) DO UPDATE SET value = excluded.value, "
    "updated_at = CURRENT_TIMESTAMP"
)
_DELETE = "DELETE FROM app_settings WHERE key = ?"
_SELECT = "SELECT value FROM app_settings WHERE key = ?"


class SqliteSettingsStore:
    """``KeyValueStore`` over the ``app_settings`` table.

    Writes are single committed statements under the database write lock.
    """

    def __init__(self, db: DatabaseManager, logger: StructuredLogger) -> None:
        self._db = db
        self._logger = logger

    def get(self, key: str) -> Optional[str]:
        try:
            row = self._db.sqlite.execute(_SELECT, (key,)).fetchone()
        except sqlite3.Error as exc:
            self._logger.warning("Setting %s unreadable: %s", key, exc)
            return None
        return None if row is None else row["value"]

    def set(self, key: str, value: str) -> bool:
        return self._write(_UPSERT, (key, value), key)

    def delete(self, key: str) -> bool:
        """Deleting a key that is not there still succeeds."""
        return self._write(_DELETE, (key,), key)

    def _write(self, sql: str, params: tuple[Any, ...], key: str) -> bool:
        try:
            with self._db.write_lock:
                self._db.sqlite.execute(sql, params)
                self._db.sqlite.commit()
        except sqlite3.Error as exc:
            self._logger.error("Setting %s not written: %s", key, exc)
            return False
        return True


class InMemorySettingsStore:
    """Dict-backed ``KeyValueStore`` for tests and diskless runs."""

    def __init__(self, initial: Optional[dict[str, str]] = None) -> None:
        self._values: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._values.get(key)

    def set(self, key: str, value: str) -> bool:
        self._values[key] = value
        return True

    def delete(self, key: str) -> bool:
        self._values.pop(key, None)
        return True

    def __contains__(self, key: object) -> bool:
        return key in self._values
