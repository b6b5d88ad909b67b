"""
tests/test_reconciliation.py — Seat Counter Reconciliation
============================================================
"""

from __future__ import annotations

from unittest.mock import patch

import pytest
from sqlalchemy import select, update
from sqlalchemy.orm import Session

from campushub.database.models import AdminLog, Event
from campushub.errors import Forbidden
from campushub.services import reconciliation_service
from campushub.services import registration_service as rs
from campushub.services.reconciliation_service import reconcile_occupancy
from conftest import get_row, make_event


def _set_occupied(engine, event_id: int, value: int) -> None:
    with Session(engine) as session:
        session.execute(update(Event).where(Event.id == event_id).values(occupied=value))
        session.commit()


class TestReconcileOccupancy:
    def test_consistent_counters_untouched(self, engine, admin, alice):
        ev = make_event(engine, admin.member_id, capacity=3)
        rs.register(engine, alice, ev)
        report = reconcile_occupancy(engine)
        assert report["checked"] == 1
        assert report["corrected"] == 0
        assert report["overbooked"] == []

    def test_drift_corrected_and_audited(self, engine, admin, alice, bob):
        ev = make_event(engine, admin.member_id, capacity=5)
        rs.register(engine, alice, ev)
        reg = rs.register(engine, bob, ev)
        rs.mark_no_show(engine, admin, reg.id)
        _set_occupied(engine, ev, 4)

        report = reconcile_occupancy(engine, admin)

        assert report["corrections"] == [
            {"event_id": ev, "stored": 4, "actual": 2, "occupied": 2, "diff": -2},
        ]
        assert get_row(engine, Event, ev).occupied == 2
        with Session(engine) as session:
            log = session.scalars(select(AdminLog)).one()
        assert log.action_type == "RECONCILE"
        assert log.after_snapshot == {"occupied": 2, "actual": 2}

    def test_cancelled_rows_do_not_count(self, engine, admin, alice):
        ev = make_event(engine, admin.member_id, capacity=2)
        reg = rs.register(engine, alice, ev)
        rs.cancel(engine, alice, reg.id)
        _set_occupied(engine, ev, 1)

        reconcile_occupancy(engine)
        assert get_row(engine, Event, ev).occupied == 0

    def test_non_admin_cannot_trigger(self, engine, leader):
        with pytest.raises(Forbidden):
            reconcile_occupancy(engine, leader)

    def test_each_event_recounted_under_its_row_lock(self, engine, admin, alice):
        first = make_event(engine, admin.member_id, title="First", capacity=2)
        second = make_event(engine, admin.member_id, title="Second", capacity=2)
        rs.register(engine, alice, second)
        _set_occupied(engine, second, 2)

        with patch.object(
            reconciliation_service, "recount_occupied", wraps=reconciliation_service.recount_occupied,
        ) as recount:
            report = reconcile_occupancy(engine)

        assert [c.args[1] for c in recount.call_args_list] == [first, second]
        assert report["corrected"] == 1
        assert get_row(engine, Event, second).occupied == 1
