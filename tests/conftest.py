"""
SessionGuard - Pytest Configuration
Shared fixtures for all tests.
"""

from __future__ import annotations

import pytest

from session_guard.logger import StructuredLogger
from session_guard.models.session_models import SessionSnapshot
from session_guard.services.auth_guard import AuthGuard
from session_guard.services.expiry import SessionPolicy
from session_guard.services.session_clock import SessionClock
from session_guard.services.settings_store import InMemorySettingsStore
from session_guard.services.sign_out import SignOutCoordinator
from tests.fakes import FakeAuthProvider, FakeClock


@pytest.fixture
def logger(request, tmp_path) -> StructuredLogger:
    """Logger writing to a per-test file."""
    return StructuredLogger(
        name=f"test.{request.node.nodeid}",
        log_file=str(tmp_path / "session_guard.log"),
    )


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store() -> InMemorySettingsStore:
    return InMemorySettingsStore()


@pytest.fixture
def policy() -> SessionPolicy:
    return SessionPolicy()


@pytest.fixture
def session_clock(store, logger, policy, fake_clock) -> SessionClock:
    return SessionClock(store=store, logger=logger, policy=policy, now=fake_clock)


@pytest.fixture
def user_session() -> SessionSnapshot:
    return SessionSnapshot(user_id="user-123", email="user@example.com")


@pytest.fixture
def provider(user_session) -> FakeAuthProvider:
    return FakeAuthProvider(session=user_session)


@pytest.fixture
def coordinator(provider, session_clock, logger) -> SignOutCoordinator:
    return SignOutCoordinator(provider=provider, clock=session_clock, logger=logger)


@pytest.fixture
def guard(provider, session_clock, coordinator, logger) -> AuthGuard:
    return AuthGuard(
        provider=provider,
        clock=session_clock,
        coordinator=coordinator,
        logger=logger,
    )
