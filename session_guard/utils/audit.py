"""
Session Audit Trail.

Lifecycle transitions (mark stamped, mark cleared, lifetime exceeded,
forced sign-out) are recorded as ``SessionAuditEvent`` objects: always as
a JSON log line, and additionally as an ``audit_log`` row when a SQLite
connection is supplied.
"""

from __future__ import annotations

import json
import sqlite3
from datetime import datetime, timezone
from typing import Optional, Union

from pydantic import BaseModel, Field

from session_guard.logger import StructuredLogger
from session_guard.models.enums import AuditAction

__all__ = ["SessionAuditEvent", "record_session_event", "persist_session_event"]

DetailValue = Union[str, int, float, bool, None]


class SessionAuditEvent(BaseModel):
    """One audit trail entry about the session stored under ``store_key``."""

    occurred_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    action: AuditAction
    store_key: str
    user_id: str = "unknown"
    details: dict[str, DetailValue] = Field(default_factory=dict)


def record_session_event(
    logger: StructuredLogger,
    action: AuditAction,
    store_key: str,
    user_id: Optional[str] = None,
    details: Optional[dict[str, DetailValue]] = None,
    conn: Optional[sqlite3.Connection] = None,
) -> SessionAuditEvent:
    """Log *action* and, when *conn* is given, append it to ``audit_log``.

    A failed insert is logged at WARNING and otherwise ignored: the
    transition being audited has already happened.
    """
    event = SessionAuditEvent(
        action=action,
        store_key=store_key,
        user_id=user_id or "unknown",
        details=details or {},
    )
    logger.info(
        "Session audit: %s", action,
        extra={"event": f"AUDIT_{action}", "audit": event.model_dump(mode="json")},
    )

    if conn is not None:
        try:
            persist_session_event(conn, event)
        except sqlite3.Error as exc:
            logger.warning("Audit event %s not persisted: %s", action, exc)
    return event


def persist_session_event(conn: sqlite3.Connection, event: SessionAuditEvent) -> None:
    conn.execute(
        "INSERT INTO audit_log (occurred_at, action, store_key, user_id, details) "
        "VALUES (?, ?, ?, ?, ?)",
        (
            event.occurred_at.isoformat(),
            event.action.value,
            event.store_key,
            event.user_id,
            json.dumps(event.details),
        ),
    )
    conn.commit()
