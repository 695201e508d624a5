"""
Sign-Out Coordinator.

Terminates the current session on behalf of the lifetime policy.  The
provider call is best-effort: any failure is logged and reported as
``SignOutOutcome.FAILED``, never raised, because denying local access
must not depend on network reachability.  The start mark is cleared in a
``finally`` block so it is absent afterwards on every path, cancellation
included.

Concurrent callers (the deadline timer and the safety poll, or a
notification racing a timer) share one in-flight sign-out.
"""

from __future__ import annotations

import asyncio
import sqlite3
from typing import Optional

from session_guard.logger import StructuredLogger
from session_guard.models.enums import AuditAction, SignOutOutcome
from session_guard.models.session_models import SignOutResult
from session_guard.services.auth_provider import AuthProvider
from session_guard.services.base_service import BaseService
from session_guard.services.session_clock import SessionClock
from session_guard.utils.audit import record_session_event


class SignOutCoordinator(BaseService):
    """Best-effort provider sign-out with guaranteed local cleanup.

    Parameters
    ----------
    provider:
        External authentication provider.
    clock:
        Session clock whose mark is cleared after every attempt.
    logger:
        Structured logger instance.
    audit_conn:
        Optional SQLite connection for persisting audit events.
    """

    def __init__(
        self,
        provider: AuthProvider,
        clock: SessionClock,
        logger: StructuredLogger,
        audit_conn: Optional[sqlite3.Connection] = None,
    ) -> None:
        super().__init__(logger)
        self._provider: AuthProvider = provider
        self._clock: SessionClock = clock
        self._audit_conn: Optional[sqlite3.Connection] = audit_conn
        self._in_flight: Optional[asyncio.Task[SignOutResult]] = None
        self._user_id: str = "unknown"

    def set_user(self, user_id: Optional[str]) -> None:
        """Record which user the next audit event refers to."""
        self._user_id = user_id or "unknown"

    async def force_sign_out(self, reason: str = "expired") -> SignOutResult:
        """Sign out through the provider, then clear the start mark.

        Joins the in-flight attempt when one is already running.
        """
        if self._in_flight is None or self._in_flight.done():
            self._in_flight = asyncio.ensure_future(self._sign_out(reason))
        return await asyncio.shield(self._in_flight)

    async def _sign_out(self, reason: str) -> SignOutResult:
        result = SignOutResult(outcome=SignOutOutcome.OK)
        try:
            await self._provider.sign_out()
        except Exception as exc:
            self._logger.warning(
                "Provider sign-out failed; clearing local session anyway: %s", exc,
                extra={"event": "SIGN_OUT_FAILED"},
            )
            result = SignOutResult(
                outcome=SignOutOutcome.FAILED,
                error_message=str(exc),
            )
        finally:
            self._clock.clear_start()

        record_session_event(
            logger=self._logger,
            action=AuditAction.FORCED_SIGN_OUT,
            store_key=self._clock.key,
            user_id=self._user_id,
            details={"reason": reason, "outcome": result.outcome.value},
            conn=self._audit_conn,
        )
        return result
