"""Audit trail and time source helpers."""

from session_guard.utils.audit import SessionAuditEvent, record_session_event
from session_guard.utils.time_source import epoch_ms

__all__ = [
    "SessionAuditEvent",
    "epoch_ms",
    "record_session_event",
]
