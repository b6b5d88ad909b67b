"""
tests/test_concurrent_registration.py — Seat Counter Under Concurrency
========================================================================
Runs real threads against a file-backed SQLite database.  Every
transaction starts with ``BEGIN IMMEDIATE`` so writers queue on the
database lock instead of failing with ``SQLITE_BUSY``; the seat counter
must still never pass capacity or drop below zero.
"""

from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor

import pytest
from sqlalchemy import Engine, create_engine, event, func, select
from sqlalchemy.orm import Session

from campushub.database.models import Base, Event, Registration
from campushub.database.seed import seed_default_settings
from campushub.engine.capabilities import Actor
from campushub.errors import EventFull
from campushub.services import registration_service as rs
from conftest import get_row, make_event, make_member


@pytest.fixture
def file_engine(tmp_path) -> Engine:
    engine = create_engine(
        f"sqlite:///{tmp_path / 'campushub.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )

    @event.listens_for(engine, "connect")
    def _disable_pysqlite_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    Base.metadata.create_all(engine)
    seed_default_settings(engine)
    yield engine
    engine.dispose()


def _run_together(calls):
    """Start every call at the same moment; return results or raised errors."""
    barrier = threading.Barrier(len(calls))

    def run(call):
        barrier.wait()
        try:
            return call()
        except Exception as exc:  # noqa: BLE001
            return exc

    with ThreadPoolExecutor(max_workers=len(calls)) as pool:
        return list(pool.map(run, calls))


def _active(engine, event_id) -> int:
    with Session(engine) as session:
        return session.scalar(
            select(func.count())
            .select_from(Registration)
            .where(Registration.event_id == event_id, Registration.status != "cancelled")
        )


class TestConcurrentRegister:
    def test_two_members_one_seat(self, file_engine):
        organizer = make_member(file_engine, "Organizer", role="admin")
        ev = make_event(file_engine, organizer, capacity=1)
        members = [Actor(make_member(file_engine, name)) for name in ("Ann", "Ben")]

        results = _run_together([lambda m=m: rs.register(file_engine, m, ev) for m in members])

        assert sum(isinstance(r, Registration) for r in results) == 1
        assert sum(isinstance(r, EventFull) for r in results) == 1
        assert get_row(file_engine, Event, ev).occupied == 1

    def test_crowd_never_exceeds_capacity(self, file_engine):
        organizer = make_member(file_engine, "Organizer", role="admin")
        ev = make_event(file_engine, organizer, capacity=3)
        members = [Actor(make_member(file_engine, f"Member {i}")) for i in range(8)]

        results = _run_together([lambda m=m: rs.register(file_engine, m, ev) for m in members])

        winners = [r for r in results if isinstance(r, Registration)]
        assert len(winners) == 3
        assert all(isinstance(r, (Registration, EventFull)) for r in results)
        assert get_row(file_engine, Event, ev).occupied == 3
        assert _active(file_engine, ev) == 3


class TestConcurrentRegisterAndCancel:
    def test_counter_matches_active_registrations(self, file_engine):
        organizer = make_member(file_engine, "Organizer", role="admin")
        ev = make_event(file_engine, organizer, capacity=2)
        members = [Actor(make_member(file_engine, f"Member {i}")) for i in range(6)]

        first_round = _run_together([lambda m=m: rs.register(file_engine, m, ev) for m in members])
        holders = {
            r.member_id: r.id for r in first_round if isinstance(r, Registration)
        }
        assert len(holders) == 2

        calls = []
        for m in members:
            if m.member_id in holders:
                calls.append(lambda m=m: rs.cancel(file_engine, m, holders[m.member_id]))
            else:
                calls.append(lambda m=m: rs.register(file_engine, m, ev))
        second_round = _run_together(calls)

        assert not [
            r for r in second_round
            if isinstance(r, Exception) and not isinstance(r, EventFull)
        ]
        occupied = get_row(file_engine, Event, ev).occupied
        assert 0 <= occupied <= 2
        assert occupied == _active(file_engine, ev)
