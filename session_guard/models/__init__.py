"""
SessionGuard Data Models.

Pydantic models and string enumerations shared by the services and the
presentation contract.
"""

from session_guard.models.enums import (
    AuditAction,
    RouteAction,
    SessionVerdict,
    SignOutOutcome,
)
from session_guard.models.session_models import (
    RouteDecision,
    SessionAbsent,
    SessionMessage,
    SessionPresent,
    SessionSnapshot,
    SignOutResult,
    message_for,
)

__all__ = [
    "AuditAction",
    "RouteAction",
    "RouteDecision",
    "SessionAbsent",
    "SessionMessage",
    "SessionPresent",
    "SessionSnapshot",
    "SessionVerdict",
    "SignOutOutcome",
    "SignOutResult",
    "message_for",
]
