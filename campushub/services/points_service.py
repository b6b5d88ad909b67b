"""
campushub.services.points_service — Points Ledger
===================================================

The only writer of ``Member.points`` and ``Member.level``.  Every balance
movement appends a :class:`~campushub.database.models.PointAward` row and
updates the member in the **same** transaction, so the ledger and the
balance can never disagree.

Idempotency: awards triggered by a lifecycle transition carry a
``source_key`` (``registration:<id>``, ``task:<id>``, ``badge:<id>``).  The
partial unique index ``ix_point_awards_idempotent`` on
``(member_id, source_key)`` rejects a second award for the same source; the
insert runs in a SAVEPOINT so the rejection leaves the outer transaction
usable.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import Engine, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from campushub.constants import badge_source_key
from campushub.database.engine import get_session
from campushub.database.models import (
    AdminActionType,
    AwardReason,
    Badge,
    Member,
    MemberBadge,
    PointAward,
)
from campushub.engine.capabilities import Actor, Capability, require
from campushub.engine.points import apply_delta
from campushub.errors import (
    BadgeAlreadyGranted,
    BadgeNotFound,
    MemberNotFound,
    ValidationError,
)
from campushub.services.admin_service import log_admin_action, row_to_dict

logger = logging.getLogger(__name__)


def _lock_member(session: Session, member_id: int) -> Member:
    member = session.scalars(
        select(Member)
        .where(Member.id == member_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    ).one_or_none()
    if member is None:
        raise MemberNotFound(member_id)
    return member


def award_points(
    session: Session,
    member_id: int,
    delta: int,
    reason: AwardReason | str,
    *,
    source_key: str | None = None,
    note: str | None = None,
    actor_id: int | None = None,
) -> PointAward | None:
    """Apply *delta* to a member's balance inside the caller's transaction.

    Returns the ledger row, or ``None`` if an award with the same
    ``source_key`` already exists for the member (nothing is changed).

    Raises
    ------
    MemberNotFound
        If the member does not exist.
    """
    member = _lock_member(session, member_id)
    change = apply_delta(member.points, delta)

    award = PointAward(
        member_id=member_id,
        reason=AwardReason(reason).value,
        delta=delta,
        applied_delta=change.applied_delta,
        balance_after=change.points,
        level_after=change.level,
        source_key=source_key,
        note=note,
        actor_id=actor_id,
    )
    try:
        with session.begin_nested():   # SAVEPOINT
            session.add(award)
            session.flush()
    except IntegrityError:
        logger.warning(
            "Double award prevented: member %d already credited for %s",
            member_id, source_key,
        )
        return None

    member.points = change.points
    member.level = change.level
    session.flush()
    session.refresh(award)

    logger.info(
        "Member %d %+d pts (%s) → %d pts, level %d%s",
        member_id, change.applied_delta, award.reason, change.points, change.level,
        " [level up]" if change.leveled_up else "",
    )
    return award


# ---------------------------------------------------------------------------
# Admin-facing operations
# ---------------------------------------------------------------------------
def adjust_points(
    engine: Engine,
    actor: Actor,
    member_id: int,
    delta: int,
    note: str | None = None,
) -> PointAward:
    """Manually credit or debit a member.  Admin only, audit-logged."""
    require(actor, Capability.ADMIN, action="adjust points")
    if delta == 0:
        raise ValidationError("delta must be non-zero")

    with get_session(engine) as session:
        before = row_to_dict(session.get(Member, member_id))
        award = award_points(
            session, member_id, delta, AwardReason.MANUAL_ADJUSTMENT,
            note=note, actor_id=actor.member_id,
        )
        log_admin_action(
            session,
            actor_id=actor.member_id,
            action_type=AdminActionType.MANUAL_AWARD,
            target_table="members",
            target_id=str(member_id),
            before=before,
            after=row_to_dict(session.get(Member, member_id)),
            reason=note,
        )
    return award


@dataclass(frozen=True, slots=True)
class BadgeGrant:
    member_id: int
    badge_id: int
    points_awarded: int
    points: int
    level: int


def grant_badge(engine: Engine, actor: Actor, member_id: int, badge_id: int) -> BadgeGrant:
    """Give *badge_id* to *member_id* and credit the badge's points.

    Raises
    ------
    BadgeNotFound
        Unknown or inactive badge.
    BadgeAlreadyGranted
        The member already holds it.
    """
    require(actor, Capability.ADMIN, action="grant badges")

    with get_session(engine) as session:
        badge = session.get(Badge, badge_id)
        if badge is None or not badge.is_active:
            raise BadgeNotFound(badge_id)
        if session.get(Member, member_id) is None:
            raise MemberNotFound(member_id)
        if session.get(MemberBadge, (member_id, badge_id)) is not None:
            raise BadgeAlreadyGranted()

        try:
            with session.begin_nested():
                session.add(MemberBadge(
                    member_id=member_id, badge_id=badge_id, granted_by=actor.member_id,
                ))
                session.flush()
        except IntegrityError as exc:
            raise BadgeAlreadyGranted() from exc

        award = award_points(
            session, member_id, badge.points, AwardReason.BADGE_GRANT,
            source_key=badge_source_key(badge_id),
            note=badge.name,
            actor_id=actor.member_id,
        )
        log_admin_action(
            session,
            actor_id=actor.member_id,
            action_type=AdminActionType.BADGE_GRANT,
            target_table="member_badges",
            target_id=f"{member_id}:{badge_id}",
            before=None,
            after={"member_id": member_id, "badge_id": badge_id, "points": badge.points},
        )
        member = session.get(Member, member_id)
        result = BadgeGrant(
            member_id=member_id,
            badge_id=badge_id,
            points_awarded=award.applied_delta if award else 0,
            points=member.points,
            level=member.level,
        )

    logger.info("Badge %d granted to member %d by %d", badge_id, member_id, actor.member_id)
    return result


def award_history(engine: Engine, member_id: int, limit: int = 50) -> list[PointAward]:
    """Most recent ledger rows for a member, newest first."""
    with Session(engine) as session:
        if session.get(Member, member_id) is None:
            raise MemberNotFound(member_id)
        rows = list(session.scalars(
            select(PointAward)
            .where(PointAward.member_id == member_id)
            .order_by(PointAward.created_at.desc(), PointAward.id.desc())
            .limit(limit)
        ).all())
        session.expunge_all()
        return rows
