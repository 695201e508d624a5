"""
Connections.

``DatabaseManager`` holds the two connections SessionGuard needs:

* the device-local SQLite database (session start mark + audit trail);
* the async Supabase client, when credentials are configured.

Without Supabase credentials the manager stays offline; callers then use
``OfflineAuthProvider`` and every session resolves as signed out.
Query logic lives in the stores and services, not here.
"""

from __future__ import annotations

import sqlite3
import threading
from pathlib import Path
from typing import Optional

from supabase import AsyncClient, acreate_client

from session_guard.logger import StructuredLogger


def open_sqlite(path: Path | str) -> sqlite3.Connection:
    """Open *path* (or ``":memory:"``) with WAL journaling and row access by name."""
    conn = sqlite3.connect(str(path), check_same_thread=False)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL")
    return conn


class DatabaseManager:
    """Local SQLite connection plus the optional Supabase client.

    Parameters
    ----------
    sqlite_path:
        Database file, or ``":memory:"``.
    logger:
        Structured logger instance.
    """

    def __init__(self, sqlite_path: Path | str, logger: StructuredLogger) -> None:
        self._logger: StructuredLogger = logger
        self._write_lock: threading.RLock = threading.RLock()
        self._supabase: Optional[AsyncClient] = None
        self._closed: bool = False
        try:
            self._sqlite: sqlite3.Connection = open_sqlite(sqlite_path)
        except sqlite3.OperationalError as exc:
            # Unwritable directory or a file locked by another process.
            self._logger.error("Cannot open local database %s: %s", sqlite_path, exc)
            raise
        self._logger.info("Local database opened at %s.", sqlite_path)

    async def connect_supabase(self, url: str, key: str) -> bool:
        """Create the Supabase client.  Returns ``False`` when staying offline."""
        if not url or not key:
            self._logger.warning("Supabase not configured; running offline.")
            return False
        try:
            self._supabase = await acreate_client(url, key)
        except (ValueError, TypeError) as exc:
            self._logger.warning("Invalid Supabase credentials (%s); running offline.", exc)
            return False
        except Exception as exc:
            self._logger.error(
                "Supabase client creation failed (%s); running offline.", exc,
                exc_info=True,
            )
            return False
        self._logger.info("Supabase client ready.")
        return True

    @property
    def is_online(self) -> bool:
        return self._supabase is not None

    @property
    def supabase(self) -> AsyncClient:
        """The Supabase client.  Raises ``RuntimeError`` when offline."""
        if self._supabase is None:
            raise RuntimeError("Supabase client unavailable: running offline.")
        return self._supabase

    @property
    def sqlite(self) -> sqlite3.Connection:
        return self._sqlite

    @property
    def write_lock(self) -> threading.RLock:
        """Hold while executing and committing a SQLite write."""
        return self._write_lock

    def close(self) -> None:
        """Close the SQLite connection.  Further calls do nothing."""
        with self._write_lock:
            if self._closed:
                return
            self._closed = True
            self._sqlite.close()
        self._logger.info("Local database closed.")
