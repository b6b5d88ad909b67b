"""
campushub.api.routes.admin — Admin endpoints (JWT-protected)
==============================================================
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel

from campushub.api.deps import get_cache, get_current_admin, get_engine
from campushub.constants import DEFAULT_BADGE_POINTS, DEFAULT_BADGE_POINTS_KEY
from campushub.database.models import Badge, Department
from campushub.engine.cache import ConfigCache
from campushub.engine.capabilities import Actor
from campushub.services import admin_service, reconciliation_service, settings_service

router = APIRouter(prefix="/admin", tags=["admin"])


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------
class SettingUpdate(BaseModel):
    key: str
    value: Any
    category: str | None = None
    description: str | None = None


class DepartmentCreate(BaseModel):
    name: str
    display_name: str | None = None
    color: str = "#1a73e8"


class DepartmentUpdate(BaseModel):
    display_name: str | None = None
    color: str | None = None
    is_active: bool | None = None


class DepartmentMemberBody(BaseModel):
    member_id: int


class BadgeCreate(BaseModel):
    name: str
    description: str | None = None
    icon: str = "\U0001f3c6"
    category: str = "achievement"
    rarity: str = "common"
    points: int | None = None


class BadgeUpdate(BaseModel):
    name: str | None = None
    description: str | None = None
    icon: str | None = None
    category: str | None = None
    rarity: str | None = None
    points: int | None = None
    is_active: bool | None = None


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------
@router.get("/settings")
def list_settings(
    admin: Actor = Depends(get_current_admin),
    engine=Depends(get_engine),
):
    return {"settings": settings_service.get_all_settings(engine)}


@router.put("/settings")
def update_settings(
    body: list[SettingUpdate],
    admin: Actor = Depends(get_current_admin),
    engine=Depends(get_engine),
    cache: ConfigCache = Depends(get_cache),
):
    count = settings_service.bulk_upsert(
        engine,
        admin,
        [s.model_dump(exclude_none=True) | {"value": s.value} for s in body],
        cache=cache,
    )
    return {"updated": count}


# ---------------------------------------------------------------------------
# Audit log
# ---------------------------------------------------------------------------
@router.get("/audit")
def audit_log(
    target_table: str | None = Query(default=None),
    limit: int = Query(default=50, ge=1, le=500),
    admin: Actor = Depends(get_current_admin),
    engine=Depends(get_engine),
):
    rows = admin_service.list_audit_log(engine, admin, target_table=target_table, limit=limit)
    return {
        "entries": [
            {
                "id": r.id,
                "actor_id": r.actor_id,
                "action_type": r.action_type,
                "target_table": r.target_table,
                "target_id": r.target_id,
                "before": r.before_snapshot,
                "after": r.after_snapshot,
                "reason": r.reason,
                "timestamp": r.timestamp.isoformat() if r.timestamp else None,
            }
            for r in rows
        ],
    }


# ---------------------------------------------------------------------------
# Reconciliation
# ---------------------------------------------------------------------------
@router.post("/reconcile/occupancy")
def reconcile_occupancy(
    admin: Actor = Depends(get_current_admin),
    engine=Depends(get_engine),
):
    return reconciliation_service.reconcile_occupancy(engine, admin)


# ---------------------------------------------------------------------------
# Catalogue
# ---------------------------------------------------------------------------
def _department_dict(d: Department) -> dict:
    return {
        "id": d.id,
        "name": d.name,
        "display_name": d.display_name,
        "color": d.color,
        "is_active": d.is_active,
    }


def _badge_dict(b: Badge) -> dict:
    return {
        "id": b.id,
        "name": b.name,
        "description": b.description,
        "icon": b.icon,
        "category": b.category,
        "rarity": b.rarity,
        "points": b.points,
        "is_active": b.is_active,
    }


@router.get("/departments")
def list_departments(
    include_inactive: bool = Query(default=False),
    admin: Actor = Depends(get_current_admin),
    engine=Depends(get_engine),
):
    departments = admin_service.list_departments(engine, active_only=not include_inactive)
    return {"departments": [_department_dict(d) for d in departments]}


@router.post("/departments", status_code=201)
def create_department(
    body: DepartmentCreate,
    admin: Actor = Depends(get_current_admin),
    engine=Depends(get_engine),
):
    dept = admin_service.create_department(
        engine, admin, name=body.name, display_name=body.display_name, color=body.color,
    )
    return {"id": dept.id, "name": dept.name, "display_name": dept.display_name}


@router.get("/departments/{department_id}")
def get_department(
    department_id: int,
    admin: Actor = Depends(get_current_admin),
    engine=Depends(get_engine),
):
    return _department_dict(admin_service.get_department(engine, department_id))


@router.patch("/departments/{department_id}")
def update_department(
    department_id: int,
    body: DepartmentUpdate,
    admin: Actor = Depends(get_current_admin),
    engine=Depends(get_engine),
):
    kwargs = body.model_dump(exclude_none=True)
    if not kwargs:
        raise HTTPException(400, "No fields to update")
    return _department_dict(admin_service.update_department(engine, admin, department_id, **kwargs))


@router.post("/departments/{department_id}/members")
def add_department_member(
    department_id: int,
    body: DepartmentMemberBody,
    admin: Actor = Depends(get_current_admin),
    engine=Depends(get_engine),
):
    member = admin_service.add_department_member(engine, admin, department_id, body.member_id)
    return {"member_id": member.id, "department": member.department}


@router.get("/badges")
def list_badges(
    admin: Actor = Depends(get_current_admin),
    engine=Depends(get_engine),
):
    return {"badges": [_badge_dict(b) for b in admin_service.list_badges(engine)]}


@router.post("/badges", status_code=201)
def create_badge(
    body: BadgeCreate,
    admin: Actor = Depends(get_current_admin),
    engine=Depends(get_engine),
    cache: ConfigCache = Depends(get_cache),
):
    badge = admin_service.create_badge(
        engine, admin,
        name=body.name,
        description=body.description,
        icon=body.icon,
        category=body.category,
        rarity=body.rarity,
        points=body.points,
        default_points=cache.get_int(DEFAULT_BADGE_POINTS_KEY, DEFAULT_BADGE_POINTS),
    )
    return {"id": badge.id, "name": badge.name, "points": badge.points}


@router.patch("/badges/{badge_id}")
def update_badge(
    badge_id: int,
    body: BadgeUpdate,
    admin: Actor = Depends(get_current_admin),
    engine=Depends(get_engine),
):
    kwargs = body.model_dump(exclude_none=True)
    if not kwargs:
        raise HTTPException(400, "No fields to update")
    return {"badge": _badge_dict(admin_service.update_badge(engine, admin, badge_id, **kwargs))}
