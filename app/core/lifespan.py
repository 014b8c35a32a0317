"""Application lifespan: startup and shutdown.

Startup: verify the database is reachable (the only fatal condition),
bootstrap the admin account, sweep expired sessions and start the periodic
sweeper. Shutdown: stop the sweeper and dispose of the engine the app owns.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI
from sqlalchemy.orm import Session, sessionmaker

from app.core.config import Settings
from app.core.database import check_db_connected
from app.services.accounts import ensure_admin_user
from app.services.sessions import SessionStore

logger = logging.getLogger(__name__)


def initialize_database(
    session_factory: sessionmaker[Session],
    settings: Settings,
    store: SessionStore,
) -> None:
    """Check connectivity, ensure the admin account and remove expired sessions."""
    db = session_factory()
    try:
        if not check_db_connected(db):
            raise RuntimeError("Database is unreachable; check DATABASE_URL.")
        ensure_admin_user(db, settings)
        store.sweep(db)
    finally:
        db.close()
    logger.info("Database initialized successfully")


def sweep_sessions_once(session_factory: sessionmaker[Session], store: SessionStore) -> int:
    db = session_factory()
    try:
        return store.sweep(db)
    finally:
        db.close()


async def run_periodic_sweep(
    session_factory: sessionmaker[Session],
    store: SessionStore,
    interval_seconds: float,
) -> None:
    """Sweep expired sessions forever, off the event loop. Failures are logged and retried next tick."""
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            await asyncio.to_thread(sweep_sessions_once, session_factory, store)
        except Exception as e:
            logger.exception("Periodic session sweep failed: %s", e)


@asynccontextmanager
async def create_lifespan(app: FastAPI) -> AsyncIterator[None]:
    settings: Settings = app.state.settings
    session_factory = app.state.session_factory
    store: SessionStore = app.state.session_store

    # ---- Startup ----
    await asyncio.to_thread(initialize_database, session_factory, settings, store)

    sweep_task = None
    if settings.SESSION_SWEEP_INTERVAL_MINUTES > 0:
        sweep_task = asyncio.create_task(
            run_periodic_sweep(
                session_factory,
                store,
                settings.SESSION_SWEEP_INTERVAL_MINUTES * 60,
            )
        )

    yield

    # ---- Shutdown ----
    if sweep_task is not None:
        sweep_task.cancel()
        try:
            await sweep_task
        except asyncio.CancelledError:
            pass
        logger.info("Session sweeper stopped")

    engine = getattr(app.state, "engine", None)
    if engine is not None:
        engine.dispose()
        logger.info("Database engine disposed")
