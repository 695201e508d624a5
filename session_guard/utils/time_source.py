"""Wall-clock helpers.

Every component reads "now" through an injectable ``TimeSource`` so the
expiry boundary can be tested without sleeping.
"""

from __future__ import annotations

import time
from typing import Callable

TimeSource = Callable[[], int]
"""Zero-argument callable returning epoch milliseconds."""


def epoch_ms() -> int:
    """Current wall-clock time in milliseconds since the epoch."""
    return time.time_ns() // 1_000_000
