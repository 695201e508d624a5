"""
Authentication Provider Port.

SessionGuard depends on exactly three capabilities of the external
authentication provider:

- a one-shot, asynchronous current-session query;
- a change-notification subscription, cancellable;
- an asynchronous sign-out call that may fail.

``AuthProvider`` is that boundary as a ``Protocol``.
``SupabaseAuthProvider`` implements it over the async Supabase client,
translating SDK sessions into ``SessionSnapshot`` models.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Callable, Optional, Protocol

from supabase import AsyncClient

from session_guard.logger import StructuredLogger
from session_guard.models.session_models import SessionSnapshot

SessionHandler = Callable[[Optional[SessionSnapshot]], None]


class SessionSubscription(Protocol):
    """Handle returned by ``AuthProvider.on_session_change``."""

    def cancel(self) -> None: ...


class AuthProvider(Protocol):
    """External authentication capability consumed by ``AuthGuard``."""

    async def get_current_session(self) -> Optional[SessionSnapshot]: ...

    def on_session_change(self, handler: SessionHandler) -> SessionSubscription: ...

    async def sign_out(self) -> None: ...


# ---------------------------------------------------------------------------
# Supabase adapter
# ---------------------------------------------------------------------------

def snapshot_from_supabase(session: Any) -> Optional[SessionSnapshot]:
    """Reduce a Supabase ``Session`` to a ``SessionSnapshot``.

    Returns ``None`` for a missing session or one without a user.
    """
    if session is None:
        return None
    user = getattr(session, "user", None)
    if user is None:
        return None

    expires_at: Optional[datetime] = None
    raw_expiry = getattr(session, "expires_at", None)
    if raw_expiry:
        expires_at = datetime.fromtimestamp(int(raw_expiry), tz=timezone.utc)

    return SessionSnapshot(
        user_id=str(user.id),
        email=getattr(user, "email", None),
        expires_at=expires_at,
    )


class _SupabaseSubscription:
    """Wraps the gotrue ``Subscription`` so cancel is idempotent."""

    def __init__(self, subscription: Any) -> None:
        self._subscription = subscription
        self._cancelled: bool = False

    def cancel(self) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        self._subscription.unsubscribe()


class SupabaseAuthProvider:
    """``AuthProvider`` backed by ``supabase.AsyncClient.auth``.

    Parameters
    ----------
    client:
        Initialised async Supabase client.
    logger:
        Structured logger instance.
    """

    def __init__(self, client: AsyncClient, logger: StructuredLogger) -> None:
        self._client: AsyncClient = client
        self._logger: StructuredLogger = logger

    async def get_current_session(self) -> Optional[SessionSnapshot]:
        """Current session, or ``None`` when there is none or it cannot be read.

        The SDK raises where the provider contract reports "no session"
        (e.g. a failed token refresh), so the failure is logged and mapped.
        """
        try:
            session = await self._client.auth.get_session()
        except Exception as exc:
            self._logger.warning(
                "Session query failed; treating as signed out: %s", exc,
                extra={"event": "SESSION_QUERY_FAILED"},
            )
            return None
        return snapshot_from_supabase(session)

    def on_session_change(self, handler: SessionHandler) -> SessionSubscription:
        def _on_auth_state_change(event: str, session: Any) -> None:
            self._logger.debug("Supabase auth event: %s", event)
            handler(snapshot_from_supabase(session))

        subscription = self._client.auth.on_auth_state_change(_on_auth_state_change)
        return _SupabaseSubscription(subscription)

    async def sign_out(self) -> None:
        await self._client.auth.sign_out()


class OfflineAuthProvider:
    """Provider used when Supabase is not configured.

    Reports no session and never notifies, so the guard settles
    ``UNAUTHORIZED`` and protected content stays locked.
    """

    class _NullSubscription:
        def cancel(self) -> None:
            return None

    async def get_current_session(self) -> Optional[SessionSnapshot]:
        return None

    def on_session_change(self, handler: SessionHandler) -> SessionSubscription:
        return self._NullSubscription()

    async def sign_out(self) -> None:
        return None
