"""
Session Lifecycle Services Package.

Contains the session clock, expiry evaluation, forced sign-out, deadline
timers and the ``AuthGuard`` state machine.

The ``create_services()`` factory wires them together and returns a typed
dict that the entry point and the presentation layer consume without
knowing the internal dependency graph.
"""

from __future__ import annotations

import sqlite3
from typing import Optional, TypedDict

from session_guard.config import AppConfig
from session_guard.logger import get_logger
from session_guard.services.auth_guard import AuthGuard
from session_guard.services.auth_provider import AuthProvider
from session_guard.services.session_clock import SessionClock
from session_guard.services.settings_store import KeyValueStore
from session_guard.services.sign_out import SignOutCoordinator
from session_guard.utils.time_source import TimeSource, epoch_ms


class ServiceContainer(TypedDict):
    """Typed container for the session lifecycle services."""

    session_clock: SessionClock
    sign_out_coordinator: SignOutCoordinator
    auth_guard: AuthGuard


def create_services(
    config: AppConfig,
    provider: AuthProvider,
    store: KeyValueStore,
    audit_conn: Optional[sqlite3.Connection] = None,
    now: TimeSource = epoch_ms,
) -> ServiceContainer:
    """
    Wire the lifecycle services together.

    This is the single composition root for the service layer.  The entry
    point calls it once at startup; tests call it with an in-memory store
    and a fake provider.

    Args:
        config: Application configuration (lifetime policy, store key).
        provider: External authentication provider.
        store: Device-local key-value store holding the start mark.
        audit_conn: Optional SQLite connection for the audit trail.
        now: Time source returning epoch milliseconds.

    Returns:
        ServiceContainer mapping service names to fully-wired instances.
    """
    logger = get_logger("services")

    session_clock = SessionClock(
        store=store,
        logger=logger,
        policy=config.session_policy(),
        key=config.SESSION_START_KEY,
        now=now,
    )
    sign_out_coordinator = SignOutCoordinator(
        provider=provider,
        clock=session_clock,
        logger=logger,
        audit_conn=audit_conn,
    )
    auth_guard = AuthGuard(
        provider=provider,
        clock=session_clock,
        coordinator=sign_out_coordinator,
        logger=logger,
        audit_conn=audit_conn,
    )

    return ServiceContainer(
        session_clock=session_clock,
        sign_out_coordinator=sign_out_coordinator,
        auth_guard=auth_guard,
    )
