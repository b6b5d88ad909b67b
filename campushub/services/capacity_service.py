"""
campushub.services.capacity_service — Event Capacity Ledger
=============================================================

The only writer of ``Event.occupied``.  Both operations are a single
conditional UPDATE, so two concurrent registrations can never both see a
free seat and both take it::

    UPDATE events SET occupied = occupied + 1
     WHERE id = :id AND occupied < capacity

Callers pass their own :class:`Session`; the seat change commits or rolls
back together with the registration row that caused it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from campushub.database.models import Event
from campushub.errors import EventFull, EventNotFound

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class SeatGrant:
    """Counter state right after a successful reservation."""

    event_id: int
    occupied: int
    capacity: int

    @property
    def seats_available(self) -> int:
        return self.capacity - self.occupied


def _counter(session: Session, event_id: int) -> tuple[int, int] | None:
    row = session.execute(
        select(Event.occupied, Event.capacity).where(Event.id == event_id)
    ).one_or_none()
    return None if row is None else (row.occupied, row.capacity)


def reserve_seat(session: Session, event_id: int) -> SeatGrant:
    """Take one seat on *event_id*.

    Raises
    ------
    EventNotFound
        If the event does not exist.
    EventFull
        If ``occupied`` already equals ``capacity``.
    """
    result = session.execute(
        update(Event)
        .where(Event.id == event_id, Event.occupied < Event.capacity)
        .values(occupied=Event.occupied + 1)
        .execution_options(synchronize_session=False)
    )
    counter = _counter(session, event_id)
    if counter is None:
        raise EventNotFound(event_id)
    if result.rowcount == 0:
        raise EventFull()

    occupied, capacity = counter
    logger.debug("Seat reserved on event %d (%d/%d)", event_id, occupied, capacity)
    return SeatGrant(event_id=event_id, occupied=occupied, capacity=capacity)


def release_seat(session: Session, event_id: int) -> int:
    """Give back one seat on *event_id* and return the new occupied count.

    Never drives the counter below zero.  A release against an empty
    counter means the counter drifted; it is logged and recomputed from
    the event's active registrations.
    """
    result = session.execute(
        update(Event)
        .where(Event.id == event_id, Event.occupied > 0)
        .values(occupied=Event.occupied - 1)
        .execution_options(synchronize_session=False)
    )
    counter = _counter(session, event_id)
    if counter is None:
        raise EventNotFound(event_id)

    if result.rowcount == 0:
        logger.warning(
            "Seat release on event %d found occupied=0, recounting from registrations",
            event_id,
        )
        from campushub.services.reconciliation_service import recount_occupied

        return recount_occupied(session, event_id).occupied

    return counter[0]
