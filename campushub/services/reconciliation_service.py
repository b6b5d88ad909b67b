"""
campushub.services.reconciliation_service — Seat Counter Reconciliation
========================================================================

Validates ``events.occupied`` against the registrations that actually hold
a seat and corrects drift.

How it works:
    1. Lock the event row, then ``COUNT(*)`` its non-cancelled
       registrations.  No-show registrations keep their seat, so they are
       counted.
    2. Compare against the stored ``occupied`` counter.
    3. On mismatch, overwrite the counter with the true count (clamped to
       ``capacity``; an overbooked event is logged as an error).
    4. Log every correction and return a report for the admin API.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime

from sqlalchemy import Engine, func, select, update
from sqlalchemy.orm import Session

from campushub.database.engine import get_session
from campushub.database.models import AdminActionType, Event, Registration, RegistrationStatus
from campushub.engine.capabilities import Actor, Capability, require
from campushub.errors import EventNotFound
from campushub.services.admin_service import log_admin_action

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class OccupancyCount:
    event_id: int
    stored: int
    actual: int
    occupied: int
    capacity: int

    @property
    def drifted(self) -> bool:
        return self.stored != self.occupied

    @property
    def overbooked(self) -> bool:
        return self.actual > self.capacity


def _fix(session: Session, event_id: int, stored: int, actual: int, capacity: int) -> OccupancyCount:
    target = min(actual, capacity)
    if actual > capacity:
        logger.error(
            "Event %d holds %d active registrations for %d seats; counter clamped",
            event_id, actual, capacity,
        )
    if stored != target:
        session.execute(
            update(Event)
            .where(Event.id == event_id)
            .values(occupied=target)
            .execution_options(synchronize_session=False)
        )
    return OccupancyCount(
        event_id=event_id, stored=stored, actual=actual, occupied=target, capacity=capacity,
    )


def recount_occupied(session: Session, event_id: int) -> OccupancyCount:
    """Recompute one event's counter inside the caller's transaction."""
    row = session.execute(
        select(Event.occupied, Event.capacity)
        .where(Event.id == event_id)
        .with_for_update()
    ).one_or_none()
    if row is None:
        raise EventNotFound(event_id)

    actual = session.scalar(
        select(func.count())
        .select_from(Registration)
        .where(
            Registration.event_id == event_id,
            Registration.status != RegistrationStatus.CANCELLED.value,
        )
    ) or 0
    result = _fix(session, event_id, row.occupied, actual, row.capacity)
    if result.drifted:
        logger.warning(
            "Event %d occupied counter corrected %d → %d",
            event_id, result.stored, result.occupied,
        )
    return result


def reconcile_occupancy(engine: Engine, actor: Actor | None = None) -> dict:
    """Validate every event's seat counter and fix drift.

    Each event is recounted under its own row lock (see
    :func:`recount_occupied`), so a registration committing mid-run cannot
    be overwritten by a stale count.  Locks are taken in id order.

    When an *actor* triggers the run it must be an admin, and each
    correction is written to ``admin_log``.  Scheduled runs pass no actor.

    Returns ``{"checked": N, "corrected": M, "corrections": [...],
    "overbooked": [...]}``.
    """
    if actor is not None:
        require(actor, Capability.ADMIN, action="reconcile seat counters")
    corrections: list[dict] = []
    overbooked: list[int] = []

    with get_session(engine) as session:
        event_ids = list(session.scalars(select(Event.id).order_by(Event.id)).all())

        for event_id in event_ids:
            result = recount_occupied(session, event_id)
            if result.overbooked:
                overbooked.append(event_id)
            if result.drifted:
                corrections.append({
                    "event_id": event_id,
                    "stored": result.stored,
                    "actual": result.actual,
                    "occupied": result.occupied,
                    "diff": result.occupied - result.stored,
                })
                if actor is not None:
                    log_admin_action(
                        session,
                        actor_id=actor.member_id,
                        action_type=AdminActionType.RECONCILE,
                        target_table="events",
                        target_id=str(event_id),
                        before={"occupied": result.stored},
                        after={"occupied": result.occupied, "actual": result.actual},
                    )

    if corrections:
        logger.warning(
            "Occupancy reconciliation: corrected %d/%d events: %s",
            len(corrections), len(event_ids), corrections,
        )
    else:
        logger.info("Occupancy reconciliation: all %d events match", len(event_ids))

    return {
        "checked": len(event_ids),
        "corrected": len(corrections),
        "corrections": corrections,
        "overbooked": overbooked,
        "timestamp": datetime.now(UTC).isoformat(),
    }
