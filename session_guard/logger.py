"""
Structured JSON Logging.

Every SessionGuard component logs through a ``StructuredLogger``.  Records
are written as one JSON object per line to stdout and to a size-rotated
file, so the session lifecycle (stamps, expiries, forced sign-outs) can be
reconstructed from the log alone.

Lifecycle records carry an ``event`` field (``extra={"event": ...}``),
which is promoted to the top level of the JSON object so log shippers can
filter on it directly.  Any other ``extra`` keys land under ``context``.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Optional, TextIO

ROOT_LOGGER_NAME = "session_guard"

# Attributes every LogRecord has; anything else came from ``extra``.
_RECORD_ATTRS: frozenset[str] = frozenset(
    vars(logging.makeLogRecord({})).keys()
) | {"message", "asctime"}


class JSONFormatter(logging.Formatter):
    """One JSON object per record.

    Keys: ``ts`` (ISO-8601 UTC), ``level``, ``logger``, ``msg``, then
    ``event`` and ``context`` when the caller supplied them, and
    ``exc`` for exceptions.
    """

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }

        context = {
            key: value
            for key, value in vars(record).items()
            if key not in _RECORD_ATTRS
        }
        event = context.pop("event", None)
        if event is not None:
            payload["event"] = str(event)
        if context:
            payload["context"] = context

        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)

        return json.dumps(payload, ensure_ascii=False, default=str)


def _qualified(name: str) -> str:
    if name == ROOT_LOGGER_NAME or name.startswith(ROOT_LOGGER_NAME + "."):
        return name
    return f"{ROOT_LOGGER_NAME}.{name}"


class StructuredLogger:
    """Injectable wrapper around a ``logging.Logger``.

    Names are placed under the ``session_guard`` namespace
    (``"guard"`` becomes ``"session_guard.guard"``).  Handlers are attached
    once per name; log file location and rotation default to ``AppConfig``.

    Usage::

        log = StructuredLogger(name="guard")
        log.info("Verdict changed", extra={"event": "VERDICT_CHANGED"})
    """

    def __init__(
        self,
        name: str = ROOT_LOGGER_NAME,
        level: int = logging.INFO,
        stream: Optional[TextIO] = None,
        log_file: Optional[str] = None,
        max_bytes: Optional[int] = None,
        backup_count: Optional[int] = None,
    ) -> None:
        self._logger: logging.Logger = logging.getLogger(_qualified(name))
        self._logger.setLevel(level)
        # Each wrapper owns its handlers; avoid double output via the parent.
        self._logger.propagate = False

        if not self._logger.handlers:
            self._attach_handlers(level, stream, log_file, max_bytes, backup_count)

    def _attach_handlers(
        self,
        level: int,
        stream: Optional[TextIO],
        log_file: Optional[str],
        max_bytes: Optional[int],
        backup_count: Optional[int],
    ) -> None:
        # Lazy import: config logs through the stdlib logger at import time.
        from session_guard.config import get_config

        cfg = get_config()
        formatter = JSONFormatter()

        console = logging.StreamHandler(stream or sys.stdout)
        console.setLevel(level)
        console.setFormatter(formatter)
        self._logger.addHandler(console)

        path = Path(log_file or cfg.LOG_FILE)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            rotating = RotatingFileHandler(
                filename=str(path),
                maxBytes=max_bytes if max_bytes is not None else cfg.LOG_MAX_BYTES,
                backupCount=backup_count if backup_count is not None else cfg.LOG_BACKUP_COUNT,
                encoding="utf-8",
            )
        except OSError as exc:
            self._logger.warning(
                "Log file %s unavailable (%s); logging to console only.", path, exc,
            )
            return
        rotating.setLevel(level)
        rotating.setFormatter(formatter)
        self._logger.addHandler(rotating)

    @property
    def logger(self) -> logging.Logger:
        return self._logger

    @property
    def name(self) -> str:
        return self._logger.name

    def debug(self, msg: str, *args: object, **kwargs: Any) -> None:
        self._logger.debug(msg, *args, **kwargs)

    def info(self, msg: str, *args: object, **kwargs: Any) -> None:
        self._logger.info(msg, *args, **kwargs)

    def warning(self, msg: str, *args: object, **kwargs: Any) -> None:
        self._logger.warning(msg, *args, **kwargs)

    def error(self, msg: str, *args: object, **kwargs: Any) -> None:
        self._logger.error(msg, *args, **kwargs)

    def exception(self, msg: str, *args: object, **kwargs: Any) -> None:
        self._logger.exception(msg, *args, **kwargs)

    def critical(self, msg: str, *args: object, **kwargs: Any) -> None:
        self._logger.critical(msg, *args, **kwargs)


def get_logger(name: str = ROOT_LOGGER_NAME) -> StructuredLogger:
    """Shorthand for ``StructuredLogger(name=name)`` with config defaults."""
    return StructuredLogger(name=name)
