"""
campushub.services.event_service — Event & Member Read Models
==============================================================

Read-only queries behind the public catalogue: event listing, per-event
registration statistics, and member profiles with earned badges, attended
events and completed tasks.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from sqlalchemy import Engine, func, select
from sqlalchemy.orm import Session, selectinload

from campushub.database.models import (
    AttendedEvent,
    CompletedTask,
    Event,
    Member,
    MemberBadge,
    Registration,
    RegistrationStatus,
)
from campushub.engine.capabilities import Actor, Capability, require
from campushub.errors import EventNotFound, MemberNotFound


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------
def get_event(engine: Engine, event_id: int) -> Event:
    with Session(engine) as session:
        event = session.get(Event, event_id)
        if event is None:
            raise EventNotFound(event_id)
        session.expunge(event)
        return event


def list_events(
    engine: Engine,
    *,
    status: str | None = None,
    event_type: str | None = None,
) -> list[Event]:
    with Session(engine) as session:
        stmt = select(Event).order_by(Event.starts_at.asc(), Event.id.asc())
        if status is not None:
            stmt = stmt.where(Event.status == status)
        if event_type is not None:
            stmt = stmt.where(Event.event_type == event_type)
        events = list(session.scalars(stmt).all())
        session.expunge_all()
        return events


@dataclass(frozen=True, slots=True)
class EventStats:
    event_id: int
    capacity: int
    occupied: int
    total_registrations: int
    active_registrations: int
    attended: int
    cancelled: int
    no_shows: int

    @property
    def available_spots(self) -> int:
        return max(self.capacity - self.occupied, 0)

    @property
    def registration_rate(self) -> float:
        return round(self.occupied / self.capacity * 100, 2)

    @property
    def attendance_rate(self) -> float:
        if self.active_registrations == 0:
            return 0.0
        return round(self.attended / self.active_registrations * 100, 2)


def event_stats(engine: Engine, actor: Actor, event_id: int) -> EventStats:
    """Registration counts for one event.  Admin/leader only."""
    require(actor, Capability.OPERATOR, action="view event statistics")
    with Session(engine) as session:
        event = session.get(Event, event_id)
        if event is None:
            raise EventNotFound(event_id)
        counts = dict(session.execute(
            select(Registration.status, func.count())
            .where(Registration.event_id == event_id)
            .group_by(Registration.status)
        ).all())

    total = sum(counts.values())
    cancelled = counts.get(RegistrationStatus.CANCELLED.value, 0)
    return EventStats(
        event_id=event_id,
        capacity=event.capacity,
        occupied=event.occupied,
        total_registrations=total,
        active_registrations=total - cancelled,
        attended=counts.get(RegistrationStatus.ATTENDED.value, 0),
        cancelled=cancelled,
        no_shows=counts.get(RegistrationStatus.NO_SHOW.value, 0),
    )


# ---------------------------------------------------------------------------
# Member profiles
# ---------------------------------------------------------------------------
@dataclass
class MemberProfile:
    member: Member
    badges: list[MemberBadge] = field(default_factory=list)
    attended_event_ids: list[int] = field(default_factory=list)
    completed_task_ids: list[int] = field(default_factory=list)


def member_profile(engine: Engine, member_id: int) -> MemberProfile:
    with Session(engine) as session:
        member = session.get(Member, member_id)
        if member is None:
            raise MemberNotFound(member_id)
        badges = list(session.scalars(
            select(MemberBadge)
            .where(MemberBadge.member_id == member_id)
            .options(selectinload(MemberBadge.badge))
            .order_by(MemberBadge.earned_at, MemberBadge.badge_id)
        ).all())
        attended = list(session.scalars(
            select(AttendedEvent.event_id)
            .where(AttendedEvent.member_id == member_id)
            .order_by(AttendedEvent.event_id)
        ).all())
        completed = list(session.scalars(
            select(CompletedTask.task_id)
            .where(CompletedTask.member_id == member_id)
            .order_by(CompletedTask.task_id)
        ).all())
        session.expunge_all()

    return MemberProfile(
        member=member,
        badges=badges,
        attended_event_ids=attended,
        completed_task_ids=completed,
    )
