"""
Session Lifecycle Models.

Pydantic models for the boundary between the authentication provider,
the ``AuthGuard`` state machine and the presentation layer.

Provider sessions are reduced to a ``SessionSnapshot`` so that nothing
downstream depends on the provider SDK's own types, and change
notifications travel as the tagged variant ``SessionMessage``.
"""

from __future__ import annotations

from datetime import datetime
from typing import Literal, Optional, Union

from pydantic import BaseModel

from session_guard.models.enums import RouteAction, SignOutOutcome


class SessionSnapshot(BaseModel):
    """Provider-independent view of an active provider session.

    Attributes
    ----------
    user_id:
        The provider's user identifier (Supabase UUID).
    email:
        The user's e-mail address, when the provider reports one.
    expires_at:
        Access-token expiry reported by the provider.  Informational
        only; the absolute lifetime is tracked locally.
    """

    user_id: str
    email: Optional[str] = None
    expires_at: Optional[datetime] = None

    model_config = {"frozen": True, "from_attributes": True}


# ---------------------------------------------------------------------------
# Change-notification messages
# ---------------------------------------------------------------------------

class SessionPresent(BaseModel):
    """The provider reports an active session."""

    kind: Literal["present"] = "present"
    session: SessionSnapshot

    model_config = {"frozen": True}


class SessionAbsent(BaseModel):
    """The provider reports that no session is active."""

    kind: Literal["absent"] = "absent"

    model_config = {"frozen": True}


SessionMessage = Union[SessionPresent, SessionAbsent]


def message_for(session: Optional[SessionSnapshot]) -> SessionMessage:
    """Wrap a provider session fact in its tagged message."""
    if session is None:
        return SessionAbsent()
    return SessionPresent(session=session)


# ---------------------------------------------------------------------------
# Sign-out result
# ---------------------------------------------------------------------------

class SignOutResult(BaseModel):
    """Outcome of a forced sign-out.

    The local mark is cleared on both outcomes; ``FAILED`` only records
    that the provider call itself did not go through.
    """

    outcome: SignOutOutcome
    error_message: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.outcome is SignOutOutcome.OK


# ---------------------------------------------------------------------------
# Route decision
# ---------------------------------------------------------------------------

class RouteDecision(BaseModel):
    """What the presentation layer should render for the current verdict.

    Attributes
    ----------
    action:
        Loading indicator, redirect, or protected content.
    redirect_to:
        Landing path for ``REDIRECT`` decisions.
    replace:
        ``True`` when the redirect must replace the current history entry.
    message:
        Text shown while loading.
    """

    action: RouteAction
    redirect_to: Optional[str] = None
    replace: bool = False
    message: Optional[str] = None

    model_config = {"frozen": True}
