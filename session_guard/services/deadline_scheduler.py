"""
Deadline Scheduler.

While a session is authorized, two asyncio tasks race to end it:

- a one-shot **deadline** task sleeping for the remaining lifetime;
- a recurring **safety poll** re-checking expiry against the wall clock
  every ``poll_interval_s``.

The poll exists because a suspended host (device sleep) delays the
deadline task's sleep; elapsed wall-clock time, not the number of timer
fires, decides expiry.  Whichever task detects expiry first forces the
sign-out; the scheduler fires at most once per arming and then reports
back through ``on_signed_out``.

:meth:`cancel` releases both tasks.  Nothing fires after it returns.
"""

from __future__ import annotations

import asyncio
from typing import Any, Callable, Coroutine

from session_guard.logger import StructuredLogger
from session_guard.models.session_models import SignOutResult
from session_guard.services.base_service import BaseService
from session_guard.services.session_clock import SessionClock
from session_guard.services.sign_out import SignOutCoordinator

SignedOutCallback = Callable[[SignOutResult], None]


class DeadlineScheduler(BaseService):
    """Arms and cancels the expiry timers of one authorized session.

    Parameters
    ----------
    clock:
        Session clock holding the start mark and lifetime policy.
    coordinator:
        Forced sign-out entry point shared by both timers.
    on_signed_out:
        Called on the event loop after a forced sign-out completes.
    logger:
        Structured logger instance.
    """

    def __init__(
        self,
        clock: SessionClock,
        coordinator: SignOutCoordinator,
        on_signed_out: SignedOutCallback,
        logger: StructuredLogger,
    ) -> None:
        super().__init__(logger)
        self._clock: SessionClock = clock
        self._coordinator: SignOutCoordinator = coordinator
        self._on_signed_out: SignedOutCallback = on_signed_out
        self._tasks: list[asyncio.Task[None]] = []
        self._active: bool = False
        self._fired: bool = False

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def is_armed(self) -> bool:
        """``True`` while the deadline and poll timers are pending."""
        return self._active and any(not task.done() for task in self._tasks)

    @property
    def has_fired(self) -> bool:
        return self._fired

    def arm(self) -> None:
        """Start the timers for the current mark.

        Re-arming cancels the previous timers first.  When the lifetime
        is already used up, a single forced sign-out is scheduled instead
        and no timer is armed.
        """
        self.cancel()
        self._active = True
        self._fired = False

        now = self._clock.now()
        if self._clock.read_start() is None:
            # AuthGuard stamps before authorizing; this only covers a mark
            # cleared in between.
            self._clock.mark_start(now)

        remaining = self._clock.remaining_ms(now)
        if remaining <= 0 or self._clock.is_expired(now):
            self._logger.info(
                "Session lifetime already elapsed; signing out immediately.",
                extra={"event": "SESSION_EXPIRED", "trigger": "arm"},
            )
            self.fire_now("elapsed")
            return

        self._spawn(self._deadline(remaining), name="session-deadline")
        self._spawn(self._safety_poll(), name="session-safety-poll")
        self._logger.debug(
            "Session timers armed: %d ms remaining, poll every %.1f s.",
            remaining,
            self._clock.policy.poll_interval_s,
        )

    def fire_now(self, trigger: str) -> None:
        """Schedule one forced sign-out on the loop without arming timers."""
        self._active = True
        self._fired = False
        self._spawn(self._fire(trigger), name="session-expired")

    def cancel(self) -> None:
        """Cancel every pending timer.

        The task calling ``cancel`` (a timer reporting its own sign-out)
        is left to finish on its own.
        """
        self._active = False
        current = asyncio.current_task()
        for task in self._tasks:
            if task is not current and not task.done():
                task.cancel()
        self._tasks = []

    async def check(self) -> bool:
        """Run one safety-poll evaluation.

        Returns ``True`` when the session was found expired and the forced
        sign-out ran.
        """
        if not self._active or self._fired:
            return False
        if not self._clock.is_expired():
            return False
        self._logger.info(
            "Safety poll detected an expired session.",
            extra={"event": "SESSION_EXPIRED", "trigger": "poll"},
        )
        return await self._fire("poll")

    # ------------------------------------------------------------------
    # Timer bodies
    # ------------------------------------------------------------------

    async def _deadline(self, remaining_ms: int) -> None:
        await asyncio.sleep(remaining_ms / 1000)
        self._logger.info(
            "Session deadline reached.",
            extra={"event": "SESSION_EXPIRED", "trigger": "deadline"},
        )
        await self._fire("deadline")

    async def _safety_poll(self) -> None:
        interval = self._clock.policy.poll_interval_s
        while self._active and not self._fired:
            await asyncio.sleep(interval)
            await self.check()

    async def _fire(self, trigger: str) -> bool:
        if not self._active or self._fired:
            return False
        self._fired = True

        # The losing timer must not fire a second sign-out.
        current = asyncio.current_task()
        for task in self._tasks:
            if task is not current and not task.done():
                task.cancel()

        result = await self._coordinator.force_sign_out(reason=trigger)
        if self._active:
            self._on_signed_out(result)
        return True

    def _spawn(self, coro: Coroutine[Any, Any, Any], name: str) -> None:
        self._tasks.append(asyncio.get_running_loop().create_task(coro, name=name))
