"""
Local SQLite Schema.

The device-local database holds two things: the ``app_settings``
key-value table (where the session start mark lives) and the
``audit_log`` trail.  Schema changes are expressed as numbered
migrations; :func:`initialize_schema` applies the ones a database has not
seen yet, each inside its own transaction, and records the version
reached in ``schema_version``.
"""

from __future__ import annotations

import sqlite3

from session_guard.logger import StructuredLogger

__all__ = ["CURRENT_SCHEMA_VERSION", "MIGRATIONS", "initialize_schema"]

# version -> statements that bring a database from version - 1 to version
MIGRATIONS: dict[int, tuple[str, ...]] = {
    1: (
        """
        CREATE TABLE IF NOT EXISTS app_settings (
            key        TEXT PRIMARY KEY,
            value      TEXT NOT NULL,
            updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
        """,
        """
        CREATE TABLE IF NOT EXISTS audit_log (
            id          INTEGER PRIMARY KEY AUTOINCREMENT,
            occurred_at TEXT NOT NULL,
            action      TEXT NOT NULL,
            store_key   TEXT NOT NULL,
            user_id     TEXT NOT NULL,
            details     TEXT NOT NULL DEFAULT '{}'
        )
        """,
        "CREATE INDEX IF NOT EXISTS idx_audit_log_action ON audit_log(action)",
    ),
}

CURRENT_SCHEMA_VERSION: int = max(MIGRATIONS)


def _stored_version(conn: sqlite3.Connection) -> int:
    conn.execute(
        "CREATE TABLE IF NOT EXISTS schema_version ("
        " id INTEGER PRIMARY KEY CHECK (id = 1),"
        " version INTEGER NOT NULL,"
        " applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP)"
    )
    conn.commit()
    row = conn.execute("SELECT version FROM schema_version WHERE id = 1").fetchone()
    return row[0] if row is not None else 0


def _apply(conn: sqlite3.Connection, version: int) -> None:
    for statement in MIGRATIONS[version]:
        conn.execute(statement)
    conn.execute(
        "INSERT INTO schema_version (id, version) VALUES (1, ?) "
        "ON CONFLICT(id) DO UPDATE SET version = excluded.version, "
        "applied_at = CURRENT_TIMESTAMP",
        (version,),
    )


def initialize_schema(conn: sqlite3.Connection, logger: StructuredLogger) -> int:
    """Bring *conn* up to :data:`CURRENT_SCHEMA_VERSION`.

    Safe to call on every startup.  A failing migration is rolled back
    and re-raised; earlier migrations stay applied.

    Returns:
        The schema version the database is at afterwards.
    """
    version = _stored_version(conn)
    if version >= CURRENT_SCHEMA_VERSION:
        logger.debug("Schema up to date at version %d.", version)
        return version

    for target in range(version + 1, CURRENT_SCHEMA_VERSION + 1):
        try:
            _apply(conn, target)
            conn.commit()
        except sqlite3.Error:
            conn.rollback()
            logger.error(
                "Schema migration to version %d failed; database left at version %d.",
                target, version,
            )
            raise
        version = target
        logger.info("Schema migrated to version %d.", version)
    return version
