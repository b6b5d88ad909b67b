"""
tests/test_registration_service.py — Registration State Machine
=================================================================
Covers seat accounting, the one-active-registration rule, idempotent
attendance awards and capability checks.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from unittest.mock import patch

import pytest
from sqlalchemy import select
from sqlalchemy.orm import Session

from campushub.database.models import AttendedEvent, Event, Member, PointAward, Registration
from campushub.engine.capabilities import Actor
from campushub.errors import (
    AlreadyRegistered,
    EventClosed,
    EventFull,
    EventNotFound,
    Forbidden,
    InvalidTransition,
    RegistrationNotFound,
    ValidationError,
)
from campushub.services import registration_service as rs
from conftest import get_row, make_event, make_member


@pytest.fixture
def event_id(engine, admin):
    return make_event(engine, admin.member_id, capacity=2)


def _occupied(engine, event_id) -> int:
    return get_row(engine, Event, event_id).occupied


def _points(engine, member_id) -> int:
    return get_row(engine, Member, member_id).points


# ===========================================================================
# register
# ===========================================================================
class TestRegister:
    def test_creates_registered_row_and_takes_a_seat(self, engine, event_id, alice):
        reg = rs.register(engine, alice, event_id)
        assert reg.status == "registered"
        assert reg.member_id == alice.member_id
        assert reg.created_at is not None
        assert _occupied(engine, event_id) == 1

    def test_third_member_rejected_when_capacity_two(self, engine, event_id, alice, bob):
        rs.register(engine, alice, event_id)
        rs.register(engine, bob, event_id)
        carol = Actor(make_member(engine, "Carol"))
        with pytest.raises(EventFull):
            rs.register(engine, carol, event_id)
        assert _occupied(engine, event_id) == 2

    def test_duplicate_registration_rejected(self, engine, event_id, alice):
        rs.register(engine, alice, event_id)
        with pytest.raises(AlreadyRegistered):
            rs.register(engine, alice, event_id)
        assert _occupied(engine, event_id) == 1

    def test_duplicate_caught_by_index_rolls_back_seat(self, engine, event_id, alice):
        """A competing row landing after the pre-check is rejected by the index."""
        real_reserve = rs.reserve_seat

        def reserve_then_compete(session, ev_id):
            grant = real_reserve(session, ev_id)
            session.add(Registration(event_id=ev_id, member_id=alice.member_id, status="registered"))
            session.flush()
            return grant

        with patch.object(rs, "reserve_seat", side_effect=reserve_then_compete):
            with pytest.raises(AlreadyRegistered):
                rs.register(engine, alice, event_id)

        assert _occupied(engine, event_id) == 0
        with Session(engine) as session:
            assert session.scalars(select(Registration)).all() == []

    def test_cancelled_or_completed_event_is_closed(self, engine, admin, alice):
        for status in ("cancelled", "completed"):
            ev = make_event(engine, admin.member_id, title=f"E-{status}", status=status)
            with pytest.raises(EventClosed):
                rs.register(engine, alice, ev)

    def test_unknown_event(self, engine, alice):
        with pytest.raises(EventNotFound):
            rs.register(engine, alice, 9999)

    def test_invalid_method(self, engine, event_id, alice):
        with pytest.raises(ValidationError):
            rs.register(engine, alice, event_id, "carrier-pigeon")

    def test_questions_are_stored(self, engine, event_id, alice):
        answers = [{"question": "Dietary needs?", "answer": "none"}]
        reg = rs.register(engine, alice, event_id, questions=answers)
        assert get_row(engine, Registration, reg.id).questions == answers


# ===========================================================================
# cancel
# ===========================================================================
class TestCancel:
    def test_owner_cancel_releases_seat_and_keeps_tombstone(self, engine, event_id, alice):
        reg = rs.register(engine, alice, event_id)
        outcome = rs.cancel(engine, alice, reg.id, reason="exam clash")

        assert outcome.changed is True
        assert _occupied(engine, event_id) == 0
        row = get_row(engine, Registration, reg.id)
        assert row.status == "cancelled"
        assert row.cancellation_reason == "exam clash"
        assert row.cancelled_at is not None

    def test_cancel_then_register_again(self, engine, event_id, alice):
        first = rs.register(engine, alice, event_id)
        rs.cancel(engine, alice, first.id)
        second = rs.register(engine, alice, event_id)

        assert second.id != first.id
        assert _occupied(engine, event_id) == 1
        assert [r.status for r in rs.list_for_member(engine, alice.member_id)] == [
            "registered", "cancelled",
        ]

    def test_cancel_is_idempotent(self, engine, event_id, alice):
        reg = rs.register(engine, alice, event_id)
        rs.cancel(engine, alice, reg.id)
        again = rs.cancel(engine, alice, reg.id)
        assert again.changed is False
        assert _occupied(engine, event_id) == 0

    def test_other_member_cannot_cancel(self, engine, event_id, alice, bob):
        reg = rs.register(engine, alice, event_id)
        with pytest.raises(Forbidden):
            rs.cancel(engine, bob, reg.id)
        assert _occupied(engine, event_id) == 1

    def test_leader_can_cancel_for_member(self, engine, event_id, alice, leader):
        reg = rs.register(engine, alice, event_id)
        assert rs.cancel(engine, leader, reg.id).changed is True

    def test_attended_registration_cannot_be_cancelled(self, engine, event_id, alice, admin):
        reg = rs.register(engine, alice, event_id)
        rs.mark_attended(engine, admin, reg.id, attendance_points=50)
        with pytest.raises(InvalidTransition):
            rs.cancel(engine, alice, reg.id)
        assert _occupied(engine, event_id) == 1

    def test_unknown_registration(self, engine, alice):
        with pytest.raises(RegistrationNotFound):
            rs.cancel(engine, alice, 31337)


# ===========================================================================
# confirm / attend / no-show
# ===========================================================================
class TestAttendance:
    def test_confirm_then_attend_awards_points(self, engine, event_id, alice, leader):
        reg = rs.register(engine, alice, event_id)
        assert rs.confirm(engine, leader, reg.id).registration.status == "confirmed"

        outcome = rs.mark_attended(engine, leader, reg.id, attendance_points=50)
        assert outcome.changed is True
        assert outcome.awarded == 50
        assert outcome.registration.attended is True
        assert outcome.registration.check_in_time is not None
        assert _points(engine, alice.member_id) == 50
        assert get_row(engine, AttendedEvent, (alice.member_id, event_id)) is not None

    def test_double_attend_awards_once(self, engine, event_id, alice, admin):
        reg = rs.register(engine, alice, event_id)
        rs.mark_attended(engine, admin, reg.id, attendance_points=50)
        again = rs.mark_attended(engine, admin, reg.id, attendance_points=50)

        assert again.changed is False
        assert again.awarded == 0
        assert _points(engine, alice.member_id) == 50
        with Session(engine) as session:
            awards = session.scalars(
                select(PointAward).where(PointAward.member_id == alice.member_id)
            ).all()
        assert len(awards) == 1
        assert awards[0].source_key == f"registration:{reg.id}"

    def test_member_cannot_mark_attendance(self, engine, event_id, alice):
        reg = rs.register(engine, alice, event_id)
        with pytest.raises(Forbidden):
            rs.mark_attended(engine, alice, reg.id, attendance_points=50)
        assert _points(engine, alice.member_id) == 0

    def test_negative_attendance_points_rejected(self, engine, event_id, alice, admin):
        reg = rs.register(engine, alice, event_id)
        with pytest.raises(ValidationError):
            rs.mark_attended(engine, admin, reg.id, attendance_points=-1)

    def test_attendance_crossing_level(self, engine, event_id, admin):
        near = Actor(make_member(engine, "Nearly", points=180))
        reg = rs.register(engine, near, event_id)
        rs.mark_attended(engine, admin, reg.id, attendance_points=50)
        member = get_row(engine, Member, near.member_id)
        assert (member.points, member.level) == (230, 2)

    def test_no_show_keeps_seat(self, engine, event_id, alice, leader):
        reg = rs.register(engine, alice, event_id)
        outcome = rs.mark_no_show(engine, leader, reg.id)
        assert outcome.registration.status == "no-show"
        assert _occupied(engine, event_id) == 1
        with pytest.raises(InvalidTransition):
            rs.mark_attended(engine, leader, reg.id, attendance_points=50)


class TestSweepNoShows:
    def test_sweeps_pending_rows_of_started_event(self, engine, admin, alice, bob):
        ev = make_event(
            engine, admin.member_id, capacity=5,
            starts_at=datetime.now(UTC) + timedelta(days=1),
        )
        a = rs.register(engine, alice, ev)
        b = rs.register(engine, bob, ev)
        rs.mark_attended(engine, admin, a.id, attendance_points=10)

        later = datetime.now(UTC) + timedelta(days=2)
        assert rs.sweep_no_shows(engine, admin, ev, now=later) == 1
        assert get_row(engine, Registration, b.id).status == "no-show"
        assert get_row(engine, Registration, a.id).status == "attended"

    def test_future_event_rejected(self, engine, admin, alice):
        ev = make_event(
            engine, admin.member_id,
            starts_at=datetime.now(UTC) + timedelta(days=3),
        )
        rs.register(engine, alice, ev)
        with pytest.raises(ValidationError):
            rs.sweep_no_shows(engine, admin, ev)

    def test_requires_operator(self, engine, admin, alice):
        ev = make_event(engine, admin.member_id, status="completed")
        with pytest.raises(Forbidden):
            rs.sweep_no_shows(engine, alice, ev)


# ===========================================================================
# feedback & queries
# ===========================================================================
class TestFeedback:
    def test_owner_rates(self, engine, event_id, alice):
        reg = rs.register(engine, alice, event_id)
        updated = rs.add_feedback(engine, alice, reg.id, 5, "Great session")
        assert (updated.rating, updated.feedback) == (5, "Great session")

    @pytest.mark.parametrize("rating", [0, 6, True, 3.5, "4"])
    def test_rating_out_of_range_rejected(self, engine, event_id, alice, rating):
        reg = rs.register(engine, alice, event_id)
        with pytest.raises(ValidationError):
            rs.add_feedback(engine, alice, reg.id, rating)

    def test_only_owner_may_rate(self, engine, event_id, alice, admin):
        reg = rs.register(engine, alice, event_id)
        with pytest.raises(Forbidden):
            rs.add_feedback(engine, admin, reg.id, 4)


class TestListRegistrations:
    def test_operator_filters_by_event_and_status(self, engine, event_id, alice, bob, leader):
        a = rs.register(engine, alice, event_id)
        rs.register(engine, bob, event_id)
        rs.cancel(engine, alice, a.id)

        active = rs.list_registrations(engine, leader, event_id=event_id, status="registered")
        assert [r.member_id for r in active] == [bob.member_id]

    def test_member_cannot_list(self, engine, alice):
        with pytest.raises(Forbidden):
            rs.list_registrations(engine, alice)
