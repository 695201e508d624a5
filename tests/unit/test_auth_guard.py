"""
Unit tests for the AuthGuard state machine.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock, Mock

import pytest

from session_guard.database import DatabaseManager
from session_guard.models.enums import SessionVerdict
from session_guard.models.session_models import SessionAbsent, SessionPresent
from session_guard.schema import initialize_schema
from session_guard.services.auth_guard import AuthGuard
from session_guard.services.auth_provider import SupabaseAuthProvider
from session_guard.services.expiry import SessionPolicy
from session_guard.services.session_clock import SessionClock
from session_guard.services.sign_out import SignOutCoordinator
from tests.fakes import MINUTE_MS, T0, FakeAuthProvider, settle


# ══════════════════════════════════════════════════════════════════════════════
# STARTUP
# ══════════════════════════════════════════════════════════════════════════════


class TestStartup:
    """Rule 1: resolving the startup session query."""

    @pytest.mark.asyncio
    async def test_starts_loading(self, guard):
        assert guard.verdict is SessionVerdict.LOADING

    @pytest.mark.asyncio
    async def test_session_without_mark_is_stamped_and_authorized(self, guard, session_clock):
        async with guard:
            assert guard.verdict is SessionVerdict.AUTHORIZED
            assert session_clock.read_start() == T0
            assert guard.scheduler.is_armed is True

    @pytest.mark.asyncio
    async def test_valid_mark_is_kept(self, guard, session_clock):
        session_clock.mark_start(T0 - 10 * MINUTE_MS)
        async with guard:
            assert guard.verdict is SessionVerdict.AUTHORIZED
            assert session_clock.read_start() == T0 - 10 * MINUTE_MS

    @pytest.mark.asyncio
    async def test_expired_mark_forces_sign_out(self, guard, session_clock, provider):
        session_clock.mark_start(T0 - 31 * MINUTE_MS)
        seen = []
        guard.add_listener(seen.append)

        async with guard:
            await settle()
            assert guard.verdict is SessionVerdict.UNAUTHORIZED
            assert provider.sign_out_calls == 1
            assert session_clock.read_start() is None
            assert SessionVerdict.AUTHORIZED not in seen

    @pytest.mark.asyncio
    async def test_no_session_is_unauthorized(self, guard, provider, session_clock):
        provider.session = None
        session_clock.mark_start(T0 - MINUTE_MS)

        async with guard:
            assert guard.verdict is SessionVerdict.UNAUTHORIZED
            assert session_clock.read_start() is None
            assert provider.sign_out_calls == 0
            assert guard.scheduler.is_armed is False

    @pytest.mark.asyncio
    async def test_wait_settled_returns_verdict(self, guard):
        async with guard:
            assert await guard.wait_settled() is SessionVerdict.AUTHORIZED

    @pytest.mark.asyncio
    async def test_query_failure_releases_subscription(self, guard, provider):
        provider.get_current_session = AsyncMock(side_effect=RuntimeError("boom"))

        with pytest.raises(RuntimeError):
            await guard.start()

        assert provider.handlers == []
        assert guard.verdict is SessionVerdict.LOADING

    @pytest.mark.asyncio
    async def test_unreadable_supabase_session_settles_unauthorized(
        self, session_clock, logger
    ):
        client = MagicMock()
        client.auth.get_session = AsyncMock(side_effect=ConnectionError("refresh failed"))
        provider = SupabaseAuthProvider(client, logger)
        coordinator = SignOutCoordinator(provider=provider, clock=session_clock, logger=logger)
        guard = AuthGuard(
            provider=provider, clock=session_clock, coordinator=coordinator, logger=logger,
        )
        session_clock.mark_start(T0 - MINUTE_MS)

        async with guard:
            assert guard.verdict is SessionVerdict.UNAUTHORIZED
            assert session_clock.read_start() is None

    @pytest.mark.asyncio
    async def test_notifications_during_loading_keep_loading(
        self, guard, provider, session_clock, fake_clock
    ):
        provider.gate = asyncio.Event()
        starting = asyncio.ensure_future(guard.start())
        await settle()

        provider.emit(provider.session)
        await settle()
        assert guard.verdict is SessionVerdict.LOADING
        assert session_clock.read_start() == T0

        fake_clock.advance(MINUTE_MS)
        provider.gate.set()
        await starting
        try:
            assert guard.verdict is SessionVerdict.AUTHORIZED
            assert session_clock.read_start() == T0
        finally:
            await guard.stop()


# ══════════════════════════════════════════════════════════════════════════════
# NOTIFICATIONS
# ══════════════════════════════════════════════════════════════════════════════


class TestNotifications:
    """Rules 2 and 3: change notifications are idempotent."""

    @pytest.mark.asyncio
    async def test_refresh_does_not_reset_countdown(
        self, guard, provider, session_clock, fake_clock
    ):
        async with guard:
            seen = []
            guard.add_listener(seen.append)
            fake_clock.advance(5 * MINUTE_MS)

            provider.emit(provider.session)
            await settle()

            assert session_clock.read_start() == T0
            assert guard.verdict is SessionVerdict.AUTHORIZED
            assert seen == []

    @pytest.mark.asyncio
    async def test_consecutive_present_notifications_stamp_once(
        self, guard, provider, session_clock, fake_clock, user_session
    ):
        provider.session = None
        async with guard:
            session_clock.mark_start = Mock(wraps=session_clock.mark_start)

            fake_clock.advance(MINUTE_MS)
            provider.emit(user_session)
            await settle()
            fake_clock.advance(MINUTE_MS)
            provider.emit(user_session)
            await settle()

            session_clock.mark_start.assert_called_once()
            assert session_clock.read_start() == T0 + MINUTE_MS
            assert guard.verdict is SessionVerdict.AUTHORIZED
            assert guard.session == user_session

    @pytest.mark.asyncio
    async def test_absent_notification_clears_mark(self, guard, provider, session_clock):
        async with guard:
            seen = []
            guard.add_listener(seen.append)

            provider.emit(None)
            await settle()

            assert guard.verdict is SessionVerdict.UNAUTHORIZED
            assert session_clock.read_start() is None
            assert seen == [SessionVerdict.UNAUTHORIZED]
            assert guard.scheduler.is_armed is False

    @pytest.mark.asyncio
    async def test_repeated_absent_notifications_are_harmless(self, guard, provider):
        async with guard:
            seen = []
            guard.add_listener(seen.append)
            provider.emit(None)
            provider.emit(None)
            await settle()

            assert seen == [SessionVerdict.UNAUTHORIZED]
            assert provider.sign_out_calls == 0

    @pytest.mark.asyncio
    async def test_sign_in_after_sign_out_restarts_countdown(
        self, guard, provider, session_clock, fake_clock, user_session
    ):
        async with guard:
            await guard.handle_message(SessionAbsent())
            fake_clock.advance(2 * MINUTE_MS)
            await guard.handle_message(SessionPresent(session=user_session))

            assert guard.verdict is SessionVerdict.AUTHORIZED
            assert session_clock.read_start() == T0 + 2 * MINUTE_MS

    @pytest.mark.asyncio
    async def test_session_ended_audit_names_the_user(
        self, provider, session_clock, coordinator, logger
    ):
        db = DatabaseManager(sqlite_path=":memory:", logger=logger)
        initialize_schema(db.sqlite, logger)
        guard = AuthGuard(
            provider=provider,
            clock=session_clock,
            coordinator=coordinator,
            logger=logger,
            audit_conn=db.sqlite,
        )

        async with guard:
            provider.emit(None)
            await settle()

        rows = db.sqlite.execute(
            "SELECT action, user_id FROM audit_log ORDER BY id"
        ).fetchall()
        assert [(r["action"], r["user_id"]) for r in rows] == [
            ("SESSION_STARTED", "user-123"),
            ("SESSION_ENDED", "user-123"),
        ]
        db.close()

    @pytest.mark.asyncio
    async def test_never_authorizes_over_expired_mark(
        self, guard, provider, session_clock, fake_clock
    ):
        async with guard:
            seen = []
            guard.add_listener(seen.append)
            fake_clock.advance(31 * MINUTE_MS)

            provider.emit(provider.session)
            await settle()

            assert seen == [SessionVerdict.UNAUTHORIZED]
            assert provider.sign_out_calls == 1
            assert session_clock.read_start() is None


# ══════════════════════════════════════════════════════════════════════════════
# EXPIRY
# ══════════════════════════════════════════════════════════════════════════════


class TestExpiry:
    """Forced sign-out driven by the timers."""

    @pytest.mark.asyncio
    async def test_poll_at_29_and_31_minutes(self, guard, provider, session_clock, fake_clock):
        async with guard:
            fake_clock.advance(29 * MINUTE_MS)
            assert await guard.scheduler.check() is False
            assert provider.sign_out_calls == 0
            assert guard.verdict is SessionVerdict.AUTHORIZED

            fake_clock.advance(2 * MINUTE_MS)
            assert await guard.scheduler.check() is True
            await settle()

            assert provider.sign_out_calls == 1
            assert session_clock.read_start() is None
            assert guard.verdict is SessionVerdict.UNAUTHORIZED

    @pytest.mark.asyncio
    async def test_provider_failure_still_denies_access(
        self, guard, provider, session_clock, fake_clock
    ):
        provider.sign_out_error = ConnectionError("offline")
        async with guard:
            fake_clock.advance(31 * MINUTE_MS)
            await guard.scheduler.check()

            assert guard.verdict is SessionVerdict.UNAUTHORIZED
            assert session_clock.read_start() is None
            assert provider.sign_out_calls == 1

    @pytest.mark.asyncio
    async def test_lifetime_running_out_before_emission_signs_out(
        self, guard, provider, session_clock, fake_clock, user_session
    ):
        async with guard:
            seen = []
            guard.add_listener(seen.append)
            # First reading is 1 ms short of the limit; the next one reaches it.
            fake_clock.now_ms = T0 + 30 * MINUTE_MS - 1
            fake_clock.step = 1

            await guard.handle_message(SessionPresent(session=user_session))
            fake_clock.step = 0
            await settle()

            assert seen == [SessionVerdict.UNAUTHORIZED]
            assert guard.verdict is SessionVerdict.UNAUTHORIZED
            assert provider.sign_out_calls == 1
            assert session_clock.read_start() is None

    @pytest.mark.asyncio
    async def test_deadline_timer_drives_verdict(self, provider, store, logger, fake_clock):
        clock = SessionClock(
            store=store,
            logger=logger,
            policy=SessionPolicy(max_ms=20, poll_interval_s=60.0),
            now=fake_clock,
        )
        coordinator = SignOutCoordinator(provider=provider, clock=clock, logger=logger)
        guard = AuthGuard(provider=provider, clock=clock, coordinator=coordinator, logger=logger)

        async with guard:
            assert guard.verdict is SessionVerdict.AUTHORIZED
            await asyncio.sleep(0.1)

            assert guard.verdict is SessionVerdict.UNAUTHORIZED
            assert provider.sign_out_calls == 1
            assert clock.read_start() is None


# ══════════════════════════════════════════════════════════════════════════════
# TEARDOWN
# ══════════════════════════════════════════════════════════════════════════════


class TestTeardown:
    @pytest.mark.asyncio
    async def test_no_sign_out_after_stop(self, store, logger, fake_clock, user_session):
        provider = FakeAuthProvider(session=user_session)
        clock = SessionClock(
            store=store,
            logger=logger,
            policy=SessionPolicy(max_ms=30, poll_interval_s=0.01),
            now=fake_clock,
        )
        coordinator = SignOutCoordinator(provider=provider, clock=clock, logger=logger)
        guard = AuthGuard(provider=provider, clock=clock, coordinator=coordinator, logger=logger)

        await guard.start()
        assert guard.verdict is SessionVerdict.AUTHORIZED
        await guard.stop()

        fake_clock.advance(MINUTE_MS)
        await asyncio.sleep(0.1)

        assert provider.sign_out_calls == 0
        assert provider.handlers == []
        assert provider.cancelled == 1
        assert guard.scheduler.is_armed is False

    @pytest.mark.asyncio
    async def test_listeners_are_released_on_stop(self, guard, provider):
        seen = []
        async with guard:
            guard.add_listener(seen.append)
        provider.emit(None)
        await settle()

        assert seen == []

    @pytest.mark.asyncio
    async def test_listener_unsubscribe(self, guard, provider):
        seen = []
        async with guard:
            remove = guard.add_listener(seen.append)
            remove()
            remove()
            provider.emit(None)
            await settle()

        assert seen == []

    @pytest.mark.asyncio
    async def test_stop_during_loading_releases_waiters(self, guard, provider):
        provider.gate = asyncio.Event()
        starting = asyncio.ensure_future(guard.start())
        waiter = asyncio.ensure_future(guard.wait_settled())
        await settle()

        await guard.stop()

        assert await asyncio.wait_for(waiter, timeout=1) is SessionVerdict.LOADING
        provider.gate.set()
        await starting
        assert guard.verdict is SessionVerdict.LOADING
        assert provider.sign_out_calls == 0

    @pytest.mark.asyncio
    async def test_stop_is_idempotent(self, guard):
        await guard.start()
        await guard.stop()
        await guard.stop()
