"""
Shared Enumerations for SessionGuard Models.

All string enumerations for type-safe field constraints.
StrEnum values compare equal to their string equivalents,
so code like ``if verdict == 'AUTHORIZED'`` continues to work.
"""

from __future__ import annotations
from enum import StrEnum


class SessionVerdict(StrEnum):
    """Authorization verdict exposed to the presentation layer.

    ``LOADING`` is the initial state and is never re-entered once the
    startup session query has resolved.
    """

    LOADING = "LOADING"
    AUTHORIZED = "AUTHORIZED"
    UNAUTHORIZED = "UNAUTHORIZED"


class SignOutOutcome(StrEnum):
    """Result of the provider sign-out call."""

    OK = "OK"
    FAILED = "FAILED"


class RouteAction(StrEnum):
    """Render decision derived from a ``SessionVerdict``."""

    SHOW_LOADING = "SHOW_LOADING"
    REDIRECT = "REDIRECT"
    RENDER_PROTECTED = "RENDER_PROTECTED"


class AuditAction(StrEnum):
    """Session lifecycle events written to the audit trail."""

    SESSION_STARTED = "SESSION_STARTED"
    SESSION_ENDED = "SESSION_ENDED"
    SESSION_EXPIRED = "SESSION_EXPIRED"
    FORCED_SIGN_OUT = "FORCED_SIGN_OUT"
