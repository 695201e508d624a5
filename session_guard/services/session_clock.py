"""
Session Clock.

Persists the single timestamp that anchors the absolute-lifetime
countdown: the epoch-millisecond moment the current session was first
observed.  The value is stored as a decimal string under one key of the
device-local ``KeyValueStore``.

Absence of the mark means "no tracked session".  A stored value that is
empty, non-numeric, non-finite or not positive is treated exactly like
absence, so corrupt storage forces a fresh stamp on the next observation
instead of an instant expiry or an unbounded session.
"""

from __future__ import annotations

import math
from typing import Optional

from session_guard.logger import StructuredLogger
from session_guard.services import expiry
from session_guard.services.base_service import BaseService
from session_guard.services.expiry import SessionPolicy
from session_guard.services.settings_store import KeyValueStore
from session_guard.utils.time_source import TimeSource, epoch_ms

DEFAULT_SESSION_START_KEY: str = "wz_session_start_ms"


class SessionClock(BaseService):
    """Read/write access to the persisted session start mark.

    Parameters
    ----------
    store:
        Device-local key-value store.
    logger:
        Structured logger instance.
    policy:
        Lifetime policy used by the expiry helpers.
    key:
        Store key holding the mark.
    now:
        Time source returning epoch milliseconds.
    """

    def __init__(
        self,
        store: KeyValueStore,
        logger: StructuredLogger,
        policy: Optional[SessionPolicy] = None,
        key: str = DEFAULT_SESSION_START_KEY,
        now: TimeSource = epoch_ms,
    ) -> None:
        super().__init__(logger)
        self._store: KeyValueStore = store
        self._policy: SessionPolicy = policy or SessionPolicy()
        self._key: str = key
        self._now: TimeSource = now

    @property
    def key(self) -> str:
        return self._key

    @property
    def policy(self) -> SessionPolicy:
        return self._policy

    def now(self) -> int:
        """Current time according to the injected time source."""
        return self._now()

    # ------------------------------------------------------------------
    # Mark access
    # ------------------------------------------------------------------

    def mark_start(self, now_ms: Optional[int] = None) -> int:
        """Store *now_ms* (default: current time) as the session start.

        Overwrites unconditionally.  Callers check :meth:`read_start`
        first so an in-flight countdown is never reset.
        """
        start = self._now() if now_ms is None else now_ms
        if not self._store.set(self._key, str(start)):
            self._logger.error("Session start mark could not be persisted.")
        return start

    def clear_start(self) -> None:
        """Remove the mark.  Succeeds when already absent."""
        if not self._store.delete(self._key):
            self._logger.error("Session start mark could not be cleared.")

    def read_start(self) -> Optional[int]:
        """Return the stored mark, or ``None`` when absent or corrupt."""
        raw = self._store.get(self._key)
        if not raw:
            return None
        try:
            value = float(raw)
        except ValueError:
            self._logger.warning(
                "Ignoring corrupt session start mark %r.", raw,
                extra={"event": "SESSION_MARK_CORRUPT"},
            )
            return None
        if not math.isfinite(value) or value <= 0:
            self._logger.warning(
                "Ignoring out-of-range session start mark %r.", raw,
                extra={"event": "SESSION_MARK_CORRUPT"},
            )
            return None
        return int(value)

    # ------------------------------------------------------------------
    # Expiry helpers over the stored mark
    # ------------------------------------------------------------------

    def is_expired(self, now_ms: Optional[int] = None) -> bool:
        now = self._now() if now_ms is None else now_ms
        return expiry.is_expired(self.read_start(), now, self._policy.max_ms)

    def remaining_ms(self, now_ms: Optional[int] = None) -> int:
        now = self._now() if now_ms is None else now_ms
        return expiry.remaining_ms(self.read_start(), now, self._policy.max_ms)
