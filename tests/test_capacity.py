"""
tests/test_capacity.py — Event Capacity Ledger
================================================
Seat reservation and release run as conditional UPDATEs against the
``events.occupied`` counter.
"""

from __future__ import annotations

import pytest
from sqlalchemy.orm import Session

from campushub.database.models import Event, Registration
from campushub.errors import EventFull, EventNotFound
from campushub.services.capacity_service import release_seat, reserve_seat
from conftest import get_row, make_event, make_member


@pytest.fixture
def event_id(engine):
    return make_event(engine, make_member(engine, "Organizer"), capacity=2)


class TestReserveSeat:
    def test_reserve_until_full(self, engine, event_id):
        with Session(engine) as session:
            first = reserve_seat(session, event_id)
            second = reserve_seat(session, event_id)
            session.commit()
        assert (first.occupied, second.occupied) == (1, 2)
        assert second.seats_available == 0
        assert get_row(engine, Event, event_id).occupied == 2

    def test_full_event_rejects(self, engine, event_id):
        with Session(engine) as session:
            reserve_seat(session, event_id)
            reserve_seat(session, event_id)
            with pytest.raises(EventFull):
                reserve_seat(session, event_id)
            session.commit()
        assert get_row(engine, Event, event_id).occupied == 2

    def test_unknown_event(self, engine):
        with Session(engine) as session:
            with pytest.raises(EventNotFound):
                reserve_seat(session, 424242)

    def test_rolled_back_reservation_frees_the_seat(self, engine, event_id):
        with Session(engine) as session:
            reserve_seat(session, event_id)
            session.rollback()
        assert get_row(engine, Event, event_id).occupied == 0


class TestReleaseSeat:
    def test_release_decrements(self, engine, event_id):
        with Session(engine) as session:
            reserve_seat(session, event_id)
            assert release_seat(session, event_id) == 0
            session.commit()

    def test_release_on_empty_counter_recounts(self, engine, event_id, caplog):
        """A release below zero means drift: the counter is rebuilt from registrations."""
        member_id = make_member(engine, "Holder")
        with Session(engine) as session:
            session.add(Registration(event_id=event_id, member_id=member_id, status="confirmed"))
            session.commit()

        with Session(engine) as session:
            assert release_seat(session, event_id) == 1
            session.commit()

        assert get_row(engine, Event, event_id).occupied == 1
        assert "recounting from registrations" in caplog.text
