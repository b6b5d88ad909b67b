"""
campushub.services.leaderboard_service — Rank & Leaderboard Queries
=====================================================================

Rank is a read-time aggregate, never a stored column::

    rank_of(m) = 1 + count(members with points > m.points)

Members with equal points therefore share a rank.  ``top_n`` lists active
members by points descending; ties are broken by member id ascending so
the order is stable between calls, and each entry carries its position in
the list.
"""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import Engine, func, select
from sqlalchemy.orm import Session

from campushub.database.models import Member, MemberBadge
from campushub.errors import MemberNotFound, ValidationError


@dataclass(frozen=True, slots=True)
class LeaderboardEntry:
    position: int
    member_id: int
    name: str
    department: str
    points: int
    level: int
    badge_count: int


def rank_of(engine: Engine, member_id: int) -> int:
    """Return *member_id*'s 1-based rank among all members."""
    with Session(engine) as session:
        points = session.scalar(select(Member.points).where(Member.id == member_id))
        if points is None:
            raise MemberNotFound(member_id)
        ahead = session.scalar(
            select(func.count()).select_from(Member).where(Member.points > points)
        )
    return (ahead or 0) + 1


def top_n(engine: Engine, n: int) -> list[LeaderboardEntry]:
    """Return the *n* highest-scoring active members."""
    if n < 1:
        raise ValidationError("limit must be at least 1")

    badge_counts = (
        select(MemberBadge.member_id, func.count().label("badge_count"))
        .group_by(MemberBadge.member_id)
        .subquery()
    )
    stmt = (
        select(
            Member.id,
            Member.name,
            Member.department,
            Member.points,
            Member.level,
            func.coalesce(badge_counts.c.badge_count, 0).label("badge_count"),
        )
        .outerjoin(badge_counts, badge_counts.c.member_id == Member.id)
        .where(Member.is_active.is_(True))
        .order_by(Member.points.desc(), Member.id.asc())
        .limit(n)
    )
    with Session(engine) as session:
        rows = session.execute(stmt).all()

    return [
        LeaderboardEntry(
            position=i,
            member_id=row.id,
            name=row.name,
            department=row.department,
            points=row.points,
            level=row.level,
            badge_count=row.badge_count,
        )
        for i, row in enumerate(rows, start=1)
    ]
