"""
Auth Guard.

The session-lifecycle state machine.  Reconciles the provider's session
facts with the persisted start mark and exposes a ``SessionVerdict`` to
the presentation layer::

    LOADING ──startup query──▶ AUTHORIZED ⇄ UNAUTHORIZED
                         └───▶ UNAUTHORIZED

``LOADING`` is left exactly once, when the startup query resolves.

Transition rules
----------------
* Session present: stamp the mark only if it is absent (a token refresh
  re-reporting the same session must not restart the countdown), then
  authorize.  If the existing mark is already expired, force a sign-out
  and settle ``UNAUTHORIZED`` instead, so ``AUTHORIZED`` is never
  emitted over an expired mark.
* Session absent: clear the mark and settle ``UNAUTHORIZED``.

Notifications are consumed from a ``SessionEventStream`` by one task and
every transition runs under an ``asyncio.Lock``, so the startup result
and notifications never interleave mid-step.  The subscription, the
consumer task and the deadline timers are all released by :meth:`stop`.
"""

from __future__ import annotations

import asyncio
import sqlite3
from typing import Callable, Optional

from session_guard.logger import StructuredLogger
from session_guard.models.enums import AuditAction, SessionVerdict
from session_guard.models.session_models import (
    SessionAbsent,
    SessionMessage,
    SessionPresent,
    SessionSnapshot,
    SignOutResult,
)
from session_guard.services import expiry
from session_guard.services.auth_provider import AuthProvider
from session_guard.services.base_service import BaseService
from session_guard.services.deadline_scheduler import DeadlineScheduler
from session_guard.services.session_clock import SessionClock
from session_guard.services.session_events import SessionEventStream
from session_guard.services.sign_out import SignOutCoordinator
from session_guard.utils.audit import record_session_event

VerdictListener = Callable[[SessionVerdict], None]


class AuthGuard(BaseService):
    """Session-lifecycle state machine guarding protected views.

    Parameters
    ----------
    provider:
        External authentication provider.
    clock:
        Persisted session start mark plus lifetime policy.
    coordinator:
        Forced sign-out entry point.
    logger:
        Structured logger instance.
    audit_conn:
        Optional SQLite connection for persisting audit events.

    Usage::

        async with AuthGuard(provider, clock, coordinator, logger) as guard:
            await guard.wait_settled()
            if guard.verdict is SessionVerdict.AUTHORIZED:
                ...
    """

    def __init__(
        self,
        provider: AuthProvider,
        clock: SessionClock,
        coordinator: SignOutCoordinator,
        logger: StructuredLogger,
        audit_conn: Optional[sqlite3.Connection] = None,
    ) -> None:
        super().__init__(logger)
        self._provider: AuthProvider = provider
        self._clock: SessionClock = clock
        self._coordinator: SignOutCoordinator = coordinator
        self._audit_conn: Optional[sqlite3.Connection] = audit_conn
        self._scheduler: DeadlineScheduler = DeadlineScheduler(
            clock=clock,
            coordinator=coordinator,
            on_signed_out=self._on_forced_sign_out,
            logger=logger,
        )

        self._verdict: SessionVerdict = SessionVerdict.LOADING
        self._loading: bool = True
        self._authed: bool = False
        self._session: Optional[SessionSnapshot] = None

        self._lock: asyncio.Lock = asyncio.Lock()
        self._settled: asyncio.Event = asyncio.Event()
        self._listeners: list[VerdictListener] = []
        self._stream: Optional[SessionEventStream] = None
        self._consumer: Optional[asyncio.Task[None]] = None
        self._running: bool = False

    # ------------------------------------------------------------------
    # Presentation contract
    # ------------------------------------------------------------------

    @property
    def verdict(self) -> SessionVerdict:
        """Current verdict.  Read it on every render; never cache it."""
        return self._verdict

    @property
    def session(self) -> Optional[SessionSnapshot]:
        """Last session reported by the provider, if any."""
        return self._session

    @property
    def scheduler(self) -> DeadlineScheduler:
        return self._scheduler

    def add_listener(self, listener: VerdictListener) -> Callable[[], None]:
        """Call *listener* on every verdict change.  Returns an unsubscribe."""
        self._listeners.append(listener)

        def _remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _remove

    async def wait_settled(self) -> SessionVerdict:
        """Wait until the verdict has left ``LOADING`` or the guard is stopped.

        Returns ``LOADING`` when :meth:`stop` ran before the startup query
        resolved.
        """
        await self._settled.wait()
        return self._verdict

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Subscribe to changes, then resolve the startup session query.

        If the query raises, every acquired resource is released before
        the exception propagates.
        """
        if self._running:
            return
        self._running = True
        if self._loading:
            self._settled.clear()
        self._stream = SessionEventStream(self._provider, self._logger)
        self._consumer = asyncio.get_running_loop().create_task(
            self._consume(self._stream), name="session-change-consumer",
        )
        try:
            session = await self._provider.get_current_session()
        except BaseException:
            await self.stop()
            raise
        await self._on_startup_session(session)

    async def stop(self) -> None:
        """Release the subscription, the consumer task and both timers.

        The verdict is frozen at its last value and no longer tracks the
        session; stop rendering protected content before calling this.
        Pending :meth:`wait_settled` callers are released.
        """
        self._running = False
        self._settled.set()
        self._scheduler.cancel()
        self._listeners.clear()

        stream, self._stream = self._stream, None
        if stream is not None:
            stream.cancel()

        consumer, self._consumer = self._consumer, None
        if consumer is not None and consumer is not asyncio.current_task():
            consumer.cancel()
            try:
                await consumer
            except asyncio.CancelledError:
                pass
        self._logger.debug("Auth guard stopped.")

    async def __aenter__(self) -> "AuthGuard":
        await self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.stop()

    # ------------------------------------------------------------------
    # Inputs
    # ------------------------------------------------------------------

    async def _on_startup_session(self, session: Optional[SessionSnapshot]) -> None:
        async with self._lock:
            if not self._running:
                return
            if session is None:
                self._on_session_absent()
            else:
                self._session = session
                self._authed = True
                self._coordinator.set_user(session.user_id)
                if self._clock.is_expired():
                    await self._expire("startup")
                else:
                    self._stamp_if_absent(session)
            self._loading = False
            self._publish()

    async def _consume(self, stream: SessionEventStream) -> None:
        async for message in stream:
            await self.handle_message(message)

    async def handle_message(self, message: SessionMessage) -> None:
        """Apply one change notification."""
        async with self._lock:
            if not self._running:
                return
            if isinstance(message, SessionPresent):
                await self._on_session_present(message.session)
            elif isinstance(message, SessionAbsent):
                self._on_session_absent()
            self._publish()

    async def _on_session_present(self, session: SessionSnapshot) -> None:
        self._session = session
        self._coordinator.set_user(session.user_id)
        if self._clock.is_expired():
            await self._expire("notification")
            return
        self._authed = True
        self._stamp_if_absent(session)

    def _on_session_absent(self) -> None:
        had_mark = self._clock.read_start() is not None
        user_id = self._session.user_id if self._session else None
        self._session = None
        self._authed = False
        self._clock.clear_start()
        if had_mark:
            record_session_event(
                logger=self._logger,
                action=AuditAction.SESSION_ENDED,
                store_key=self._clock.key,
                user_id=user_id,
                conn=self._audit_conn,
            )

    def _on_forced_sign_out(self, result: SignOutResult) -> None:
        """Timer-driven sign-out finished; deny access regardless of outcome."""
        if not self._running:
            return
        self._authed = False
        self._session = None
        self._publish()

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def _stamp_if_absent(self, session: SessionSnapshot) -> None:
        if self._clock.read_start() is not None:
            return
        start = self._clock.mark_start()
        record_session_event(
            logger=self._logger,
            action=AuditAction.SESSION_STARTED,
            store_key=self._clock.key,
            user_id=session.user_id,
            details={"start_ms": start},
            conn=self._audit_conn,
        )

    async def _expire(self, trigger: str) -> None:
        start = self._clock.read_start()
        now = self._clock.now()
        self._logger.info(
            "Session exceeded its maximum lifetime; forcing sign-out.",
            extra={"event": "SESSION_EXPIRED", "trigger": trigger},
        )
        record_session_event(
            logger=self._logger,
            action=AuditAction.SESSION_EXPIRED,
            store_key=self._clock.key,
            user_id=self._session.user_id if self._session else "unknown",
            details={
                "trigger": trigger,
                "elapsed_ms": expiry.elapsed_ms(start, now) if start is not None else None,
            },
            conn=self._audit_conn,
        )
        self._authed = False
        self._scheduler.cancel()
        await self._coordinator.force_sign_out(reason=trigger)

    def _publish(self) -> None:
        """Recompute the verdict and notify listeners on change."""
        if self._loading:
            return
        expired_at_emission = self._authed and self._clock.is_expired()
        if expired_at_emission:
            self._authed = False
        verdict = SessionVerdict.AUTHORIZED if self._authed else SessionVerdict.UNAUTHORIZED
        self._settled.set()

        if verdict is not self._verdict:
            previous, self._verdict = self._verdict, verdict
            self._logger.info(
                "Session verdict changed: %s -> %s", previous, verdict,
                extra={"event": "VERDICT_CHANGED"},
            )
            if verdict is SessionVerdict.AUTHORIZED:
                self._scheduler.arm()
            else:
                self._scheduler.cancel()
            for listener in list(self._listeners):
                listener(verdict)

        if expired_at_emission:
            # The lifetime ran out between the check and emission.
            self._scheduler.fire_now("emission")
