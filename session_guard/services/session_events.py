"""
Session Change Event Stream.

Turns the provider's callback subscription into a cancellable async
stream of ``SessionPresent`` / ``SessionAbsent`` messages.  Callbacks only
enqueue; a single consumer iterates the stream, so no transition ever runs
inside a provider callback (including the notification the provider emits
while a forced sign-out is in flight).

Messages are delivered in the order the provider invoked the callback.
"""

from __future__ import annotations

import asyncio
from typing import Optional, Union

from session_guard.logger import StructuredLogger
from session_guard.models.session_models import (
    SessionMessage,
    SessionSnapshot,
    message_for,
)
from session_guard.services.auth_provider import AuthProvider, SessionSubscription

_CLOSED = object()


class SessionEventStream:
    """Async iterator over provider session-change messages.

    The subscription is acquired in ``__init__`` and released by
    :meth:`cancel`, which also ends any pending iteration.

    Usage::

        stream = SessionEventStream(provider, logger)
        try:
            async for message in stream:
                ...
        finally:
            stream.cancel()
    """

    def __init__(self, provider: AuthProvider, logger: StructuredLogger) -> None:
        self._logger: StructuredLogger = logger
        self._queue: asyncio.Queue[Union[SessionMessage, object]] = asyncio.Queue()
        self._cancelled: bool = False
        self._subscription: Optional[SessionSubscription] = provider.on_session_change(
            self._on_change,
        )

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def _on_change(self, session: Optional[SessionSnapshot]) -> None:
        if self._cancelled:
            return
        self._queue.put_nowait(message_for(session))

    def cancel(self) -> None:
        """Unsubscribe from the provider and end iteration.  Idempotent."""
        if self._cancelled:
            return
        self._cancelled = True
        subscription, self._subscription = self._subscription, None
        try:
            if subscription is not None:
                subscription.cancel()
        finally:
            self._queue.put_nowait(_CLOSED)
            self._logger.debug("Session change subscription cancelled.")

    def __aiter__(self) -> "SessionEventStream":
        return self

    async def __anext__(self) -> SessionMessage:
        item = await self._queue.get()
        if item is _CLOSED:
            raise StopAsyncIteration
        return item  # type: ignore[return-value]
