"""
campushub.database.engine — Database Connection & Async Helper
===============================================================

SQLAlchemy + psycopg2 is synchronous while FastAPI handlers are ``async``.
Services are therefore plain sync functions that take an :class:`Engine`
and open their own :class:`Session`; async callers hand them to a thread
with :func:`run_db`::

    engine = create_db_engine()          # reads DATABASE_URL from .env
    init_db(engine)                      # CREATE TABLE IF NOT EXISTS …

    reg = await run_db(register, engine, actor, event_id)

Every mutation that touches more than one row (seat counter + registration,
status + points ledger + member balance) runs inside **one** session
transaction so a failure leaves no partial effects.
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Callable
from contextlib import contextmanager
from typing import ParamSpec, TypeVar

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session

from campushub.database.models import Base

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")


# ---------------------------------------------------------------------------
# Engine creation
# ---------------------------------------------------------------------------
def create_db_engine(url: str | None = None) -> Engine:
    """Build a SQLAlchemy :class:`Engine` from *url* or ``DATABASE_URL``.

    Pool sizing follows a small community deployment: five persistent
    connections, ten overflow, a 10 s checkout timeout and hourly recycle.

    Raises
    ------
    RuntimeError
        If neither *url* nor ``DATABASE_URL`` is set.
    """
    url = url or os.getenv("DATABASE_URL")
    if not url:
        raise RuntimeError(
            "DATABASE_URL is not set.  "
            "Copy .env.example → .env and set a valid PostgreSQL URL."
        )

    engine = create_engine(
        url,
        echo=False,
        pool_size=5,
        max_overflow=10,
        pool_pre_ping=True,
        pool_timeout=10,
        pool_recycle=3600,
    )
    logger.info("Database engine created → %s", engine.url.host)
    return engine


# ---------------------------------------------------------------------------
# Schema initialization
# ---------------------------------------------------------------------------
def init_db(engine: Engine) -> None:
    """Create all tables and seed default settings.

    Safe on every startup.  In production the schema is owned by Alembic
    (``alembic upgrade head``); ``create_all`` covers dev/test databases.
    """
    Base.metadata.create_all(engine)
    logger.info("Database tables verified / created.")

    from campushub.database.seed import seed_default_settings

    seed_default_settings(engine)


# ---------------------------------------------------------------------------
# Session helper
# ---------------------------------------------------------------------------
@contextmanager
def get_session(engine: Engine):
    """Yield a :class:`Session` that commits on success and rolls back on
    exception.

    Objects stay readable after the block exits (``expire_on_commit=False``)
    so services can return them to callers.
    """
    session = Session(engine, expire_on_commit=False)
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


# ---------------------------------------------------------------------------
# Async bridge
# ---------------------------------------------------------------------------
async def run_db(func: Callable[P, T], *args: P.args, **kwargs: P.kwargs) -> T:
    """Run a **synchronous** database function on a background thread.

    Wraps :func:`asyncio.to_thread` so the event loop never blocks on a
    query::

        result = await run_db(top_n, engine, 10)
    """
    return await asyncio.to_thread(func, *args, **kwargs)
