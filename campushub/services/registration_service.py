"""
campushub.services.registration_service — Registration State Machine
=====================================================================

Lifecycle of one member's claim on one event's seat::

    registered → confirmed → attended
    registered | confirmed → cancelled   (seat released, row kept)
    registered | confirmed → no-show     (seat stays consumed)

Every transition is a conditional UPDATE on the current status, so two
concurrent callers can never both perform it.  The loser re-reads the row
and either reports a no-op (already in the target state) or raises
:class:`~campushub.errors.InvalidTransition`.

Seat changes, ledger awards and the status change share one transaction.
Cancelled registrations are retained with ``cancelled_at`` as an audit
trail; only non-cancelled rows count toward the one-active-registration
rule and toward ``Event.occupied``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import Engine, delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from campushub.constants import MAX_RATING, MIN_RATING, registration_source_key
from campushub.database.engine import get_session
from campushub.database.models import (
    AttendedEvent,
    AwardReason,
    Event,
    EventStatus,
    Member,
    Registration,
    RegistrationMethod,
    RegistrationStatus,
)
from campushub.engine.capabilities import Actor, Capability, require
from campushub.engine.lifecycle import registration_sources
from campushub.errors import (
    AlreadyRegistered,
    EventClosed,
    EventNotFound,
    InvalidTransition,
    MemberNotFound,
    RegistrationNotFound,
    ValidationError,
)
from campushub.services.capacity_service import release_seat, reserve_seat
from campushub.services.points_service import award_points

logger = logging.getLogger(__name__)

CLOSED_EVENT_STATES = frozenset({EventStatus.CANCELLED, EventStatus.COMPLETED})


@dataclass(frozen=True, slots=True)
class RegistrationOutcome:
    """Result of a lifecycle call.  ``changed`` is False for a no-op retry."""

    registration: Registration
    changed: bool
    awarded: int = 0


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------
def _load(session: Session, registration_id: int) -> Registration:
    reg = session.scalars(
        select(Registration)
        .where(Registration.id == registration_id)
        .execution_options(populate_existing=True)
    ).one_or_none()
    if reg is None:
        raise RegistrationNotFound(registration_id)
    return reg


def _transition(
    session: Session,
    registration_id: int,
    target: RegistrationStatus,
    **values: Any,
) -> tuple[Registration, bool]:
    """Move a registration to *target* if its current status allows it.

    Returns ``(registration, changed)``.  ``changed`` is False when the row
    was already in *target*.
    """
    sources = [s.value if isinstance(s, RegistrationStatus) else s
               for s in registration_sources(target)]
    result = session.execute(
        update(Registration)
        .where(Registration.id == registration_id, Registration.status.in_(sources))
        .values(status=target.value, **values)
        .execution_options(synchronize_session=False)
    )
    reg = _load(session, registration_id)
    if result.rowcount == 1:
        return reg, True
    if reg.status == target.value:
        return reg, False
    raise InvalidTransition("registration", reg.status, target.value)


def _now() -> datetime:
    return datetime.now(UTC)


def _as_utc(value: datetime) -> datetime:
    return value if value.tzinfo is not None else value.replace(tzinfo=UTC)


# ---------------------------------------------------------------------------
# Register
# ---------------------------------------------------------------------------
def register(
    engine: Engine,
    actor: Actor,
    event_id: int,
    method: str = RegistrationMethod.INTERNAL.value,
    *,
    questions: list[dict] | None = None,
    external_registration_id: str | None = None,
) -> Registration:
    """Claim a seat on *event_id* for the calling member.

    Raises
    ------
    EventNotFound, EventClosed, AlreadyRegistered, EventFull
    """
    if method not in {m.value for m in RegistrationMethod}:
        raise ValidationError(f"Invalid registration method '{method}'")

    with get_session(engine) as session:
        event = session.get(Event, event_id)
        if event is None:
            raise EventNotFound(event_id)
        if event.status in CLOSED_EVENT_STATES:
            raise EventClosed(f"Event is {event.status}")
        if session.get(Member, actor.member_id) is None:
            raise MemberNotFound(actor.member_id)

        existing = session.scalar(
            select(Registration.id).where(
                Registration.event_id == event_id,
                Registration.member_id == actor.member_id,
                Registration.status != RegistrationStatus.CANCELLED.value,
            )
        )
        if existing is not None:
            raise AlreadyRegistered()

        grant = reserve_seat(session, event_id)

        reg = Registration(
            event_id=event_id,
            member_id=actor.member_id,
            method=method,
            questions=questions,
            external_registration_id=external_registration_id,
            status=RegistrationStatus.REGISTERED.value,
        )
        try:
            with session.begin_nested():   # SAVEPOINT
                session.add(reg)
                session.flush()
        except IntegrityError as exc:
            # A concurrent request won the pair; the seat taken above is
            # rolled back with the outer transaction.
            raise AlreadyRegistered() from exc
        session.refresh(reg)

    logger.info(
        "Member %d registered for event %d (registration %d, %d/%d seats)",
        actor.member_id, event_id, reg.id, grant.occupied, grant.capacity,
    )
    return reg


# ---------------------------------------------------------------------------
# Transitions
# ---------------------------------------------------------------------------
def confirm(engine: Engine, actor: Actor, registration_id: int) -> RegistrationOutcome:
    require(actor, Capability.OPERATOR, action="confirm registrations")
    with get_session(engine) as session:
        reg, changed = _transition(session, registration_id, RegistrationStatus.CONFIRMED)
    if changed:
        logger.info("Registration %d confirmed by %d", registration_id, actor.member_id)
    return RegistrationOutcome(reg, changed)


def cancel(
    engine: Engine,
    actor: Actor,
    registration_id: int,
    reason: str | None = None,
) -> RegistrationOutcome:
    """Cancel a registration and release its seat.

    Cancelling an already-cancelled registration is a successful no-op.
    """
    with get_session(engine) as session:
        reg = _load(session, registration_id)
        require(
            actor, Capability.OWNER, Capability.OPERATOR,
            owner_id=reg.member_id, action="cancel this registration",
        )
        reg, changed = _transition(
            session, registration_id, RegistrationStatus.CANCELLED,
            cancelled_at=_now(),
            cancellation_reason=reason,
        )
        if changed:
            remaining = release_seat(session, reg.event_id)
            session.execute(
                delete(AttendedEvent).where(
                    AttendedEvent.member_id == reg.member_id,
                    AttendedEvent.event_id == reg.event_id,
                )
            )

    if changed:
        logger.info(
            "Registration %d cancelled by %d (event %d now %d occupied)",
            registration_id, actor.member_id, reg.event_id, remaining,
        )
    return RegistrationOutcome(reg, changed)


def mark_attended(
    engine: Engine,
    actor: Actor,
    registration_id: int,
    *,
    attendance_points: int,
) -> RegistrationOutcome:
    """Check a member in and credit *attendance_points* exactly once."""
    require(actor, Capability.OPERATOR, action="mark attendance")
    if attendance_points < 0:
        raise ValidationError("attendance_points must not be negative")

    awarded = 0
    with get_session(engine) as session:
        reg, changed = _transition(
            session, registration_id, RegistrationStatus.ATTENDED,
            attended=True,
            check_in_time=_now(),
        )
        if changed:
            award = award_points(
                session, reg.member_id, attendance_points, AwardReason.ATTENDANCE,
                source_key=registration_source_key(reg.id),
                actor_id=actor.member_id,
            )
            awarded = award.applied_delta if award is not None else 0
            if session.get(AttendedEvent, (reg.member_id, reg.event_id)) is None:
                session.add(AttendedEvent(member_id=reg.member_id, event_id=reg.event_id))

    if changed:
        logger.info(
            "Registration %d attended (member %d, +%d pts)",
            registration_id, reg.member_id, awarded,
        )
    return RegistrationOutcome(reg, changed, awarded)


def mark_no_show(engine: Engine, actor: Actor, registration_id: int) -> RegistrationOutcome:
    """Record that the member did not turn up.  The seat stays consumed."""
    require(actor, Capability.OPERATOR, action="mark no-shows")
    with get_session(engine) as session:
        reg, changed = _transition(session, registration_id, RegistrationStatus.NO_SHOW)
    if changed:
        logger.info("Registration %d marked no-show", registration_id)
    return RegistrationOutcome(reg, changed)


def sweep_no_shows(
    engine: Engine,
    actor: Actor,
    event_id: int,
    *,
    now: datetime | None = None,
) -> int:
    """Mark every still-pending registration of a past event as no-show."""
    require(actor, Capability.OPERATOR, action="mark no-shows")
    now = now or _now()

    with get_session(engine) as session:
        event = session.get(Event, event_id)
        if event is None:
            raise EventNotFound(event_id)
        started = event.starts_at is not None and _as_utc(event.starts_at) <= now
        if event.status != EventStatus.COMPLETED and not started:
            raise ValidationError("Event has not started yet")

        pending = [s.value for s in registration_sources(RegistrationStatus.NO_SHOW)]
        result = session.execute(
            update(Registration)
            .where(Registration.event_id == event_id, Registration.status.in_(pending))
            .values(status=RegistrationStatus.NO_SHOW.value)
            .execution_options(synchronize_session=False)
        )
        count = result.rowcount

    logger.info("Event %d: %d registrations swept to no-show", event_id, count)
    return count


# ---------------------------------------------------------------------------
# Feedback
# ---------------------------------------------------------------------------
def add_feedback(
    engine: Engine,
    actor: Actor,
    registration_id: int,
    rating: int,
    text: str | None = None,
) -> Registration:
    """Attach a 1–5 rating and optional comment.  Owner only, any state."""
    if isinstance(rating, bool) or not isinstance(rating, int) or not (
        MIN_RATING <= rating <= MAX_RATING
    ):
        raise ValidationError(f"rating must be an integer between {MIN_RATING} and {MAX_RATING}")

    with get_session(engine) as session:
        reg = _load(session, registration_id)
        require(actor, Capability.OWNER, owner_id=reg.member_id, action="leave feedback")
        reg.rating = rating
        reg.feedback = text
        session.flush()
        session.refresh(reg)
    return reg


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------
def list_for_member(engine: Engine, member_id: int) -> list[Registration]:
    """All of a member's registrations, including cancelled ones, newest first."""
    with Session(engine) as session:
        rows = list(session.scalars(
            select(Registration)
            .where(Registration.member_id == member_id)
            .order_by(Registration.created_at.desc(), Registration.id.desc())
        ).all())
        session.expunge_all()
        return rows


def list_registrations(
    engine: Engine,
    actor: Actor,
    *,
    event_id: int | None = None,
    status: str | None = None,
) -> list[Registration]:
    require(actor, Capability.OPERATOR, action="list registrations")
    with Session(engine) as session:
        stmt = select(Registration).order_by(Registration.id)
        if event_id is not None:
            stmt = stmt.where(Registration.event_id == event_id)
        if status is not None:
            stmt = stmt.where(Registration.status == status)
        rows = list(session.scalars(stmt).all())
        session.expunge_all()
        return rows
