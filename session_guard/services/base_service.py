"""Common parent of the lifecycle services."""

from __future__ import annotations

from session_guard.logger import StructuredLogger


class BaseService:
    """Holds the injected ``StructuredLogger`` as ``self._logger``."""

    def __init__(self, logger: StructuredLogger) -> None:
        self._logger: StructuredLogger = logger
