"""
campushub.api.routes.members — Leaderboard, rank, profiles and awards
=======================================================================
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel

from campushub.api.deps import get_cache, get_current_actor, get_current_admin, get_engine
from campushub.constants import (
    LEADERBOARD_DEFAULT_LIMIT_KEY,
    LEADERBOARD_MAX_LIMIT_KEY,
    POINTS_PER_LEVEL,
)
from campushub.database.models import Member, PointAward
from campushub.engine.cache import ConfigCache
from campushub.engine.capabilities import Actor
from campushub.engine.points import level_for_points
from campushub.services import admin_service, event_service, leaderboard_service, points_service

router = APIRouter(tags=["members"])


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------
class MemberCreate(BaseModel):
    name: str
    email: str
    role: str = "member"
    department: str = "none"


class MemberUpdate(BaseModel):
    name: str | None = None
    role: str | None = None
    department: str | None = None
    is_active: bool | None = None


class PointsAdjustment(BaseModel):
    delta: int
    note: str | None = None


class BadgeGrantBody(BaseModel):
    badge_id: int


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def _member_dict(m: Member) -> dict:
    next_level_at = level_for_points(m.points) * POINTS_PER_LEVEL
    return {
        "id": m.id,
        "name": m.name,
        "email": m.email,
        "role": m.role,
        "department": m.department,
        "points": m.points,
        "level": m.level,
        "points_to_next_level": next_level_at - m.points,
        "is_active": m.is_active,
        "created_at": m.created_at.isoformat() if m.created_at else None,
    }


def _award_dict(a: PointAward) -> dict:
    return {
        "id": a.id,
        "reason": a.reason,
        "delta": a.delta,
        "applied_delta": a.applied_delta,
        "balance_after": a.balance_after,
        "level_after": a.level_after,
        "source_key": a.source_key,
        "note": a.note,
        "actor_id": a.actor_id,
        "created_at": a.created_at.isoformat() if a.created_at else None,
    }


# ---------------------------------------------------------------------------
# Public reads
# ---------------------------------------------------------------------------
@router.get("/leaderboard")
def leaderboard(
    limit: int | None = Query(default=None, ge=1),
    engine=Depends(get_engine),
    cache: ConfigCache = Depends(get_cache),
):
    """Top members by points.  *limit* is capped at the configured maximum."""
    default_limit = cache.get_int(LEADERBOARD_DEFAULT_LIMIT_KEY, 10)
    max_limit = cache.get_int(LEADERBOARD_MAX_LIMIT_KEY, 100)
    n = min(limit or default_limit, max_limit)
    entries = leaderboard_service.top_n(engine, n)
    return {
        "data": [
            {
                "rank": e.position,
                "member_id": e.member_id,
                "name": e.name,
                "department": e.department,
                "points": e.points,
                "level": e.level,
                "badge_count": e.badge_count,
            }
            for e in entries
        ],
    }


@router.get("/members")
def list_members(
    role: str | None = Query(default=None),
    department: str | None = Query(default=None),
    search: str | None = Query(default=None),
    include_inactive: bool = Query(default=False),
    actor: Actor = Depends(get_current_actor),
    engine=Depends(get_engine),
):
    """Member directory.  Inactive members are listed for admins only."""
    members = admin_service.list_members(
        engine,
        active_only=not (include_inactive and actor.is_admin),
        role=role,
        department=department,
        search=search,
    )
    return {"data": [_member_dict(m) for m in members]}


@router.get("/members/{member_id}")
def member_profile(member_id: int, engine=Depends(get_engine)):
    profile = event_service.member_profile(engine, member_id)
    return {
        "data": {
            **_member_dict(profile.member),
            "badges": [
                {
                    "badge_id": mb.badge_id,
                    "name": mb.badge.name,
                    "icon": mb.badge.icon,
                    "rarity": mb.badge.rarity,
                    "earned_at": mb.earned_at.isoformat() if mb.earned_at else None,
                }
                for mb in profile.badges
            ],
            "attended_event_ids": profile.attended_event_ids,
            "completed_task_ids": profile.completed_task_ids,
        },
    }


@router.get("/members/{member_id}/rank")
def member_rank(member_id: int, engine=Depends(get_engine)):
    return {"data": {"member_id": member_id, "rank": leaderboard_service.rank_of(engine, member_id)}}


@router.get("/members/{member_id}/awards")
def member_awards(
    member_id: int,
    limit: int = Query(default=50, ge=1, le=500),
    engine=Depends(get_engine),
):
    awards = points_service.award_history(engine, member_id, limit)
    return {"data": [_award_dict(a) for a in awards]}


# ---------------------------------------------------------------------------
# Admin writes
# ---------------------------------------------------------------------------
@router.post("/members", status_code=201)
def create_member(
    body: MemberCreate,
    actor: Actor = Depends(get_current_admin),
    engine=Depends(get_engine),
):
    member = admin_service.create_member(
        engine, actor,
        name=body.name,
        email=body.email,
        role=body.role,
        department=body.department,
    )
    return {"data": _member_dict(member)}


@router.patch("/members/{member_id}")
def update_member(
    member_id: int,
    body: MemberUpdate,
    actor: Actor = Depends(get_current_admin),
    engine=Depends(get_engine),
):
    kwargs = body.model_dump(exclude_none=True)
    if not kwargs:
        raise HTTPException(400, "No fields to update")
    member = admin_service.update_member(engine, actor, member_id, **kwargs)
    return {"data": _member_dict(member)}


@router.post("/members/{member_id}/points")
def adjust_points(
    member_id: int,
    body: PointsAdjustment,
    actor: Actor = Depends(get_current_actor),
    engine=Depends(get_engine),
):
    award = points_service.adjust_points(engine, actor, member_id, body.delta, body.note)
    return {"data": _award_dict(award)}


@router.post("/members/{member_id}/badges", status_code=201)
def grant_badge(
    member_id: int,
    body: BadgeGrantBody,
    actor: Actor = Depends(get_current_actor),
    engine=Depends(get_engine),
):
    grant = points_service.grant_badge(engine, actor, member_id, body.badge_id)
    return {
        "data": {
            "member_id": grant.member_id,
            "badge_id": grant.badge_id,
            "points_awarded": grant.points_awarded,
            "points": grant.points,
            "level": grant.level,
        },
    }
