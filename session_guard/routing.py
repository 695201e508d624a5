"""
Protected Route.

Maps the live ``SessionVerdict`` to the decision the presentation layer
renders: a loading indicator, a redirect to the unauthenticated landing
point, or the protected content.  Decisions are recomputed on every call;
the verdict can flip to ``UNAUTHORIZED`` at any time when the session
lifetime runs out.
"""

from __future__ import annotations

from typing import Callable

from session_guard.models.enums import RouteAction, SessionVerdict
from session_guard.models.session_models import RouteDecision
from session_guard.services.auth_guard import AuthGuard

LOADING_MESSAGE: str = "Loading..."


def decide(verdict: SessionVerdict, landing_path: str = "/") -> RouteDecision:
    """Render decision for *verdict*."""
    if verdict is SessionVerdict.LOADING:
        return RouteDecision(action=RouteAction.SHOW_LOADING, message=LOADING_MESSAGE)
    if verdict is SessionVerdict.UNAUTHORIZED:
        return RouteDecision(
            action=RouteAction.REDIRECT,
            redirect_to=landing_path,
            replace=True,
        )
    return RouteDecision(action=RouteAction.RENDER_PROTECTED)


class ProtectedRoute:
    """Gate for protected views backed by an ``AuthGuard``.

    Parameters
    ----------
    guard:
        The running session guard.
    landing_path:
        Where unauthorized users are redirected.
    """

    def __init__(self, guard: AuthGuard, landing_path: str = "/") -> None:
        self._guard: AuthGuard = guard
        self._landing_path: str = landing_path

    def decide(self) -> RouteDecision:
        return decide(self._guard.verdict, self._landing_path)

    def watch(self, on_decision: Callable[[RouteDecision], None]) -> Callable[[], None]:
        """Push a new decision to *on_decision* on every verdict change.

        Returns a callable that stops the updates.
        """
        return self._guard.add_listener(
            lambda verdict: on_decision(decide(verdict, self._landing_path)),
        )
