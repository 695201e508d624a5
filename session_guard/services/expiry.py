"""
Session Expiry Evaluation.

Pure functions deciding whether a tracked session has outlived its
absolute lifetime.  No I/O and no clock access: callers pass ``now``.

An absent start (``None``) means no session is tracked, so it is never
expired and its remaining lifetime is the full window.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field

SESSION_MAX_MS: int = 30 * 60 * 1000  # 30 minutes
SAFETY_POLL_INTERVAL_S: float = 30.0


class SessionPolicy(BaseModel):
    """Absolute lifetime and safety-poll cadence.

    Attributes
    ----------
    max_ms:
        Maximum session lifetime in milliseconds, measured from the
        stored start mark.
    poll_interval_s:
        Interval of the recurring expiry re-check.
    """

    max_ms: int = Field(default=SESSION_MAX_MS, gt=0)
    poll_interval_s: float = Field(default=SAFETY_POLL_INTERVAL_S, gt=0)

    model_config = {"frozen": True}


def elapsed_ms(start: int, now: int) -> int:
    """Milliseconds since *start*."""
    return now - start


def is_expired(start: Optional[int], now: int, max_ms: int = SESSION_MAX_MS) -> bool:
    """``True`` once at least *max_ms* has elapsed since *start*.

    The boundary is inclusive: ``elapsed == max_ms`` is expired.
    """
    if start is None:
        return False
    return elapsed_ms(start, now) >= max_ms


def remaining_ms(start: Optional[int], now: int, max_ms: int = SESSION_MAX_MS) -> int:
    """Lifetime left before expiry, never negative."""
    if start is None:
        return max_ms
    return max(0, max_ms - elapsed_ms(start, now))
