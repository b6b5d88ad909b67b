"""
tests/test_admin_service.py — Audited Catalogue Writes & Read Models
======================================================================
"""

from __future__ import annotations

import pytest
from sqlalchemy import select
from sqlalchemy.orm import Session

from campushub.database.models import AdminLog, Member
from campushub.errors import (
    AlreadyInDepartment,
    BadgeNotFound,
    DepartmentNotFound,
    EventNotFound,
    Forbidden,
    MemberNotFound,
    ValidationError,
)
from campushub.services import admin_service, event_service
from campushub.services import registration_service as rs
from conftest import get_row, make_member


class TestEvents:
    def test_create_event_is_audited(self, engine, admin):
        ev = admin_service.create_event(engine, admin, title="  DevFest  ", capacity=120)
        assert ev.title == "DevFest"
        assert ev.occupied == 0
        assert ev.organizer_id == admin.member_id
        with Session(engine) as session:
            log = session.scalars(select(AdminLog)).one()
        assert (log.action_type, log.target_table, log.target_id) == ("CREATE", "events", str(ev.id))

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"capacity": 0},
            {"capacity": -3},
            {"status": "postponed"},
            {"registration_method": "fax"},
            {"title": " "},
        ],
    )
    def test_invalid_event(self, engine, admin, kwargs):
        with pytest.raises(ValidationError):
            admin_service.create_event(engine, admin, **({"title": "T", "capacity": 10} | kwargs))

    def test_capacity_cannot_drop_below_occupied(self, engine, admin, alice, bob):
        ev = admin_service.create_event(engine, admin, title="Tight", capacity=5)
        rs.register(engine, alice, ev.id)
        rs.register(engine, bob, ev.id)
        with pytest.raises(ValidationError, match="below the 2 seats"):
            admin_service.update_event(engine, admin, ev.id, capacity=1)
        assert admin_service.update_event(engine, admin, ev.id, capacity=2).capacity == 2

    def test_occupied_is_not_editable(self, engine, admin):
        ev = admin_service.create_event(engine, admin, title="Locked", capacity=5)
        with pytest.raises(ValidationError, match="not editable"):
            admin_service.update_event(engine, admin, ev.id, occupied=3)

    def test_update_unknown_event(self, engine, admin):
        with pytest.raises(EventNotFound):
            admin_service.update_event(engine, admin, 404, title="x")

    def test_leader_cannot_create(self, engine, leader):
        with pytest.raises(Forbidden):
            admin_service.create_event(engine, leader, title="T", capacity=1)


class TestMembers:
    def test_create_member_normalises_email(self, engine, admin):
        m = admin_service.create_member(engine, admin, name="Kim", email="Kim@Campus.TEST")
        assert m.email == "kim@campus.test"
        assert (m.points, m.level) == (0, 1)

    def test_duplicate_email(self, engine, admin):
        admin_service.create_member(engine, admin, name="Kim", email="kim@campus.test")
        with pytest.raises(ValidationError, match="already exists"):
            admin_service.create_member(engine, admin, name="Kim 2", email="KIM@campus.test")

    def test_points_not_editable(self, engine, admin, alice):
        with pytest.raises(ValidationError):
            admin_service.update_member(engine, admin, alice.member_id, points=1000)

    def test_invalid_role(self, engine, admin, alice):
        with pytest.raises(ValidationError):
            admin_service.update_member(engine, admin, alice.member_id, role="overlord")

    def test_deactivate(self, engine, admin, alice):
        m = admin_service.update_member(engine, admin, alice.member_id, is_active=False)
        assert m.is_active is False

    def test_list_members_by_points(self, engine, admin, alice, bob):
        make_member(engine, "Top", points=500)
        make_member(engine, "Gone", points=900, is_active=False)
        names = [m.name for m in admin_service.list_members(engine)]
        assert names[0] == "Top"
        assert "Gone" not in names
        everyone = admin_service.list_members(engine, active_only=False)
        assert everyone[0].name == "Gone"

    def test_list_members_filters(self, engine, admin, leader, alice):
        assert [m.id for m in admin_service.list_members(engine, role="leader")] == [leader.member_id]
        assert [m.id for m in admin_service.list_members(engine, search="ALICE")] == [alice.member_id]
        with pytest.raises(ValidationError):
            admin_service.list_members(engine, role="overlord")


class TestCatalogue:
    def test_department_slug(self, engine, admin):
        dept = admin_service.create_department(engine, admin, name="Design")
        assert (dept.name, dept.display_name) == ("design", "Design")
        with pytest.raises(ValidationError):
            admin_service.create_department(engine, admin, name="DESIGN")

    def test_badge_default_points(self, engine, admin):
        badge = admin_service.create_badge(engine, admin, name="Speaker", default_points=30)
        assert badge.points == 30
        assert [b.name for b in admin_service.list_badges(engine)] == ["Speaker"]

    def test_badge_invalid_rarity(self, engine, admin):
        with pytest.raises(ValidationError):
            admin_service.create_badge(
                engine, admin, name="Odd", default_points=10, rarity="mythic",
            )

    def test_audit_log_filter(self, engine, admin):
        admin_service.create_department(engine, admin, name="ops")
        admin_service.create_badge(engine, admin, name="Helper", default_points=5)
        rows = admin_service.list_audit_log(engine, admin, target_table="badges")
        assert [r.target_table for r in rows] == ["badges"]

    def test_update_department(self, engine, admin):
        dept = admin_service.create_department(engine, admin, name="media")
        edited = admin_service.update_department(
            engine, admin, dept.id, display_name="Media & Design", color="#ff5500",
        )
        assert (edited.name, edited.display_name, edited.color) == ("media", "Media & Design", "#ff5500")

    @pytest.mark.parametrize("fields", [{"color": "red"}, {"display_name": " "}, {"name": "renamed"}])
    def test_invalid_department_update(self, engine, admin, fields):
        dept = admin_service.create_department(engine, admin, name="events")
        with pytest.raises(ValidationError):
            admin_service.update_department(engine, admin, dept.id, **fields)

    def test_list_departments_hides_inactive(self, engine, admin):
        admin_service.create_department(engine, admin, name="technical")
        old = admin_service.create_department(engine, admin, name="archive")
        admin_service.update_department(engine, admin, old.id, is_active=False)
        assert [d.name for d in admin_service.list_departments(engine)] == ["technical"]
        assert len(admin_service.list_departments(engine, active_only=False)) == 2

    def test_add_department_member(self, engine, admin, alice):
        dept = admin_service.create_department(engine, admin, name="technical")
        member = admin_service.add_department_member(engine, admin, dept.id, alice.member_id)
        assert member.department == "technical"
        assert get_row(engine, Member, alice.member_id).department == "technical"
        with pytest.raises(AlreadyInDepartment):
            admin_service.add_department_member(engine, admin, dept.id, alice.member_id)

        log = admin_service.list_audit_log(engine, admin, target_table="members")[0]
        assert log.reason == "joined department technical"

    def test_add_member_to_unknown_or_inactive_department(self, engine, admin, alice):
        with pytest.raises(DepartmentNotFound):
            admin_service.add_department_member(engine, admin, 999, alice.member_id)
        dept = admin_service.create_department(engine, admin, name="closed")
        admin_service.update_department(engine, admin, dept.id, is_active=False)
        with pytest.raises(ValidationError):
            admin_service.add_department_member(engine, admin, dept.id, alice.member_id)
        open_dept = admin_service.create_department(engine, admin, name="open")
        with pytest.raises(MemberNotFound):
            admin_service.add_department_member(engine, admin, open_dept.id, 12345)

    def test_update_badge(self, engine, admin):
        badge = admin_service.create_badge(engine, admin, name="Speaker", default_points=30)
        edited = admin_service.update_badge(engine, admin, badge.id, rarity="epic", points=80)
        assert (edited.rarity, edited.points) == ("epic", 80)
        admin_service.update_badge(engine, admin, badge.id, is_active=False)
        assert admin_service.list_badges(engine) == []

    @pytest.mark.parametrize("fields", [{"points": -5}, {"category": "misc"}, {"name": ""}])
    def test_invalid_badge_update(self, engine, admin, fields):
        badge = admin_service.create_badge(engine, admin, name="Helper", default_points=5)
        with pytest.raises(ValidationError):
            admin_service.update_badge(engine, admin, badge.id, **fields)

    def test_update_unknown_badge(self, engine, admin):
        with pytest.raises(BadgeNotFound):
            admin_service.update_badge(engine, admin, 31337, points=1)

    def test_members_cannot_edit_catalogue(self, engine, alice):
        with pytest.raises(Forbidden):
            admin_service.update_badge(engine, alice, 1, points=1)
        with pytest.raises(Forbidden):
            admin_service.add_department_member(engine, alice, 1, alice.member_id)


class TestEventReadModels:
    def test_stats(self, engine, admin, alice, bob, leader):
        ev = admin_service.create_event(engine, admin, title="Stats", capacity=4)
        a = rs.register(engine, alice, ev.id)
        b = rs.register(engine, bob, ev.id)
        rs.mark_attended(engine, leader, a.id, attendance_points=10)
        rs.cancel(engine, bob, b.id)

        stats = event_service.event_stats(engine, leader, ev.id)
        assert stats.total_registrations == 2
        assert stats.active_registrations == 1
        assert stats.cancelled == 1
        assert stats.available_spots == 3
        assert stats.registration_rate == 25.0
        assert stats.attendance_rate == 100.0

    def test_stats_requires_operator(self, engine, admin, alice):
        ev = admin_service.create_event(engine, admin, title="Private", capacity=4)
        with pytest.raises(Forbidden):
            event_service.event_stats(engine, alice, ev.id)

    def test_list_events_filters_status(self, engine, admin):
        admin_service.create_event(engine, admin, title="Open", capacity=4)
        admin_service.create_event(engine, admin, title="Done", capacity=4, status="completed")
        titles = [e.title for e in event_service.list_events(engine, status="upcoming")]
        assert titles == ["Open"]

    def test_member_profile(self, engine, admin, alice, leader):
        ev = admin_service.create_event(engine, admin, title="Profiled", capacity=4)
        reg = rs.register(engine, alice, ev.id)
        rs.mark_attended(engine, leader, reg.id, attendance_points=10)

        profile = event_service.member_profile(engine, alice.member_id)
        assert profile.member.points == 10
        assert profile.attended_event_ids == [ev.id]
        assert profile.badges == []

    def test_unknown_member_profile(self, engine):
        with pytest.raises(MemberNotFound):
            event_service.member_profile(engine, 1234)
