"""
SessionGuard Entry Point.

Bootstraps the dependency graph via constructor injection, initialises
the local SQLite schema, connects to Supabase, and runs the ``AuthGuard``
until interrupted.  Every verdict change is logged together with the
render decision a protected view would take.

Usage::

    python main.py
"""

from __future__ import annotations

import asyncio
import atexit
import sys
from pathlib import Path

from session_guard.config import get_config
from session_guard.database import DatabaseManager
from session_guard.logger import StructuredLogger, get_logger
from session_guard.models.session_models import RouteDecision
from session_guard.routing import ProtectedRoute
from session_guard.schema import initialize_schema
from session_guard.services import create_services
from session_guard.services.auth_provider import (
    AuthProvider,
    OfflineAuthProvider,
    SupabaseAuthProvider,
)
from session_guard.services.settings_store import SqliteSettingsStore


async def run() -> None:
    """Wire dependencies and run the guard until cancelled."""
    logger: StructuredLogger = get_logger("main")
    logger.info("Starting SessionGuard...")

    # ------------------------------------------------------------------
    # 1. Configuration (from .env / environment variables)
    # ------------------------------------------------------------------
    config = get_config()

    # ------------------------------------------------------------------
    # 2. Local store + schema
    # ------------------------------------------------------------------
    db = DatabaseManager(
        sqlite_path=Path(config.SQLITE_PATH),
        logger=StructuredLogger(name="database"),
    )
    # close() is idempotent; the atexit hook covers unclean exits.
    atexit.register(db.close)
    initialize_schema(db.sqlite, StructuredLogger(name="schema"))

    # ------------------------------------------------------------------
    # 3. Authentication provider (offline when not configured)
    # ------------------------------------------------------------------
    provider: AuthProvider
    if await db.connect_supabase(
        config.SUPABASE_URL, config.SUPABASE_ANON_KEY.get_secret_value(),
    ):
        provider = SupabaseAuthProvider(db.supabase, get_logger("provider"))
    else:
        provider = OfflineAuthProvider()

    # ------------------------------------------------------------------
    # 4. Services + protected route
    # ------------------------------------------------------------------
    services = create_services(
        config=config,
        provider=provider,
        store=SqliteSettingsStore(db=db, logger=get_logger("settings_store")),
        audit_conn=db.sqlite,
    )
    guard = services["auth_guard"]
    route = ProtectedRoute(guard, landing_path=config.LANDING_PATH)

    def _log_decision(decision: RouteDecision) -> None:
        logger.info(
            "Route decision: %s", decision.action,
            extra={"redirect_to": decision.redirect_to or ""},
        )

    # ------------------------------------------------------------------
    # 5. Run until interrupted
    # ------------------------------------------------------------------
    try:
        async with guard:
            route.watch(_log_decision)
            await guard.wait_settled()
            _log_decision(route.decide())
            await asyncio.Event().wait()
    finally:
        db.close()
        logger.info("SessionGuard shut down.")


def main() -> None:
    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        pass
    except Exception as exc:
        sys.stderr.write(f"FATAL: {type(exc).__name__}: {exc}\n")
        sys.exit(1)


if __name__ == "__main__":
    main()
