"""
tests/conftest.py — Shared Test Fixtures
=========================================
"""

from __future__ import annotations

import os

# ---------------------------------------------------------------------------
# Ensure a valid JWT_SECRET is always set for test runs.
# This must happen before any import of campushub.api.deps which validates
# the secret at module-load time.
# ---------------------------------------------------------------------------
_TEST_JWT_SECRET = "test-secret-for-pytest-only-" + "x" * 40
os.environ.setdefault("JWT_SECRET", _TEST_JWT_SECRET)

from datetime import datetime  # noqa: E402
from unittest.mock import MagicMock  # noqa: E402

import pytest  # noqa: E402
from sqlalchemy import Engine, create_engine, event  # noqa: E402
from sqlalchemy.dialects.postgresql import JSONB as PG_JSONB  # noqa: E402
from sqlalchemy.orm import Session  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from campushub.database.models import (  # noqa: E402
    Badge,
    Base,
    Department,
    Event,
    Member,
)
from campushub.database.seed import seed_default_settings  # noqa: E402
from campushub.engine.capabilities import Actor  # noqa: E402

# ---------------------------------------------------------------------------
# Make JSONB and BigInteger columns work in SQLite for testing.
# ---------------------------------------------------------------------------
_sqlite_compat_registered = False


def _register_sqlite_compat():
    """Register SQLite compilation for PG JSONB and BigInteger (idempotent)."""
    global _sqlite_compat_registered
    if _sqlite_compat_registered:
        return
    from sqlalchemy import BigInteger
    from sqlalchemy.ext.compiler import compiles

    @compiles(PG_JSONB, "sqlite")
    def _compile_jsonb_as_text(type_, compiler, **kw):
        return "TEXT"

    @compiles(BigInteger, "sqlite")
    def _compile_bigint_as_integer(type_, compiler, **kw):
        return "INTEGER"

    _sqlite_compat_registered = True


_register_sqlite_compat()


@pytest.fixture
def db_engine() -> Engine:
    """In-memory SQLite engine with all CampusHub tables and default settings.

    pysqlite manages transactions itself and breaks SAVEPOINT; the two
    listeners hand BEGIN back to SQLAlchemy so ``begin_nested()`` works.
    """
    engine = create_engine(
        "sqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine, "connect")
    def _disable_pysqlite_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    Base.metadata.create_all(engine)
    seed_default_settings(engine)
    return engine


@pytest.fixture
def engine(db_engine):
    return db_engine


# ---------------------------------------------------------------------------
# Row factories
# ---------------------------------------------------------------------------
def make_member(
    engine: Engine,
    name: str = "Ada",
    *,
    email: str | None = None,
    role: str = "member",
    points: int = 0,
    level: int | None = None,
    is_active: bool = True,
) -> int:
    """Insert a member and return its id."""
    from campushub.engine.points import level_for_points

    with Session(engine) as session:
        member = Member(
            name=name,
            email=email or f"{name.lower().replace(' ', '.')}@campus.test",
            role=role,
            points=points,
            level=level if level is not None else level_for_points(points),
            is_active=is_active,
        )
        session.add(member)
        session.commit()
        return member.id


def make_event(
    engine: Engine,
    organizer_id: int,
    *,
    title: str = "Intro to Flutter",
    capacity: int = 2,
    status: str = "upcoming",
    starts_at: datetime | None = None,
    occupied: int = 0,
) -> int:
    with Session(engine) as session:
        ev = Event(
            title=title,
            capacity=capacity,
            occupied=occupied,
            status=status,
            starts_at=starts_at,
            organizer_id=organizer_id,
        )
        session.add(ev)
        session.commit()
        return ev.id


def make_department(engine: Engine, name: str = "technical") -> int:
    with Session(engine) as session:
        dept = Department(name=name, display_name=name.title())
        session.add(dept)
        session.commit()
        return dept.id


def make_badge(engine: Engine, name: str = "First Steps", points: int = 50, **kw) -> int:
    with Session(engine) as session:
        badge = Badge(name=name, icon="\U0001f331", points=points, **kw)
        session.add(badge)
        session.commit()
        return badge.id


def get_row(engine: Engine, model: type, pk):
    """Fresh, detached copy of one row."""
    with Session(engine) as session:
        obj = session.get(model, pk)
        if obj is not None:
            session.expunge(obj)
        return obj


# ---------------------------------------------------------------------------
# Actors
# ---------------------------------------------------------------------------
@pytest.fixture
def admin(engine) -> Actor:
    return Actor(make_member(engine, "Grace Admin", role="admin"), "admin")


@pytest.fixture
def leader(engine) -> Actor:
    return Actor(make_member(engine, "Linus Leader", role="leader"), "leader")


@pytest.fixture
def alice(engine) -> Actor:
    return Actor(make_member(engine, "Alice"), "member")


@pytest.fixture
def bob(engine) -> Actor:
    return Actor(make_member(engine, "Bob"), "member")


# ---------------------------------------------------------------------------
# API helpers
# ---------------------------------------------------------------------------
def make_token(member_id: int, role: str = "member") -> str:
    """Create a signed JWT for *member_id*."""
    import jwt

    from campushub.api.deps import JWT_ALGORITHM, JWT_SECRET

    return jwt.encode({"sub": str(member_id), "role": role}, JWT_SECRET, algorithm=JWT_ALGORITHM)


def auth(actor: Actor) -> dict:
    return {"Authorization": f"Bearer {make_token(actor.member_id, actor.role)}"}


@pytest.fixture
def notifier():
    return MagicMock()


@pytest.fixture
def client(engine, notifier):
    """FastAPI TestClient wired to the in-memory database.

    Used without a ``with`` block so the production lifespan never runs.
    """
    from fastapi.testclient import TestClient

    from campushub.api.deps import get_cache, get_engine, get_notifier
    from campushub.api.main import app
    from campushub.engine.cache import ConfigCache

    cache = ConfigCache(engine)
    cache.load_all()

    app.dependency_overrides[get_engine] = lambda: engine
    app.dependency_overrides[get_cache] = lambda: cache
    app.dependency_overrides[get_notifier] = lambda: notifier
    yield TestClient(app, raise_server_exceptions=False)
    app.dependency_overrides.clear()
