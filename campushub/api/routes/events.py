"""
campushub.api.routes.events — Event catalogue endpoints
=========================================================
"""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel

from campushub.api.deps import get_current_actor, get_current_admin, get_engine
from campushub.database.models import Event
from campushub.engine.capabilities import Actor
from campushub.services import admin_service, event_service, registration_service

router = APIRouter(prefix="/events", tags=["events"])


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------
class EventCreate(BaseModel):
    title: str
    capacity: int
    description: str | None = None
    location: str | None = None
    event_type: str = "workshop"
    starts_at: datetime | None = None
    status: str = "upcoming"
    registration_method: str = "internal"
    registration_url: str | None = None


class EventUpdate(BaseModel):
    title: str | None = None
    capacity: int | None = None
    description: str | None = None
    location: str | None = None
    event_type: str | None = None
    starts_at: datetime | None = None
    status: str | None = None
    registration_method: str | None = None
    registration_url: str | None = None


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def _event_dict(e: Event) -> dict:
    return {
        "id": e.id,
        "title": e.title,
        "description": e.description,
        "location": e.location,
        "event_type": e.event_type,
        "starts_at": e.starts_at.isoformat() if e.starts_at else None,
        "capacity": e.capacity,
        "occupied": e.occupied,
        "seats_available": e.seats_available,
        "is_full": e.is_full,
        "status": e.status,
        "registration_method": e.registration_method,
        "registration_url": e.registration_url,
        "organizer_id": e.organizer_id,
        "created_at": e.created_at.isoformat() if e.created_at else None,
    }


# ---------------------------------------------------------------------------
# Public reads
# ---------------------------------------------------------------------------
@router.get("")
def list_events(
    status: str | None = Query(default=None),
    event_type: str | None = Query(default=None),
    engine=Depends(get_engine),
):
    events = event_service.list_events(engine, status=status, event_type=event_type)
    return {"data": [_event_dict(e) for e in events]}


@router.get("/{event_id}")
def get_event(event_id: int, engine=Depends(get_engine)):
    return {"data": _event_dict(event_service.get_event(engine, event_id))}


# ---------------------------------------------------------------------------
# Admin / leader
# ---------------------------------------------------------------------------
@router.post("", status_code=201)
def create_event(
    body: EventCreate,
    actor: Actor = Depends(get_current_admin),
    engine=Depends(get_engine),
):
    event = admin_service.create_event(engine, actor, **body.model_dump())
    return {"data": _event_dict(event)}


@router.patch("/{event_id}")
def update_event(
    event_id: int,
    body: EventUpdate,
    actor: Actor = Depends(get_current_admin),
    engine=Depends(get_engine),
):
    kwargs = body.model_dump(exclude_none=True)
    if not kwargs:
        raise HTTPException(400, "No fields to update")
    event = admin_service.update_event(engine, actor, event_id, **kwargs)
    return {"data": _event_dict(event)}


@router.get("/{event_id}/stats")
def event_stats(
    event_id: int,
    actor: Actor = Depends(get_current_actor),
    engine=Depends(get_engine),
):
    stats = event_service.event_stats(engine, actor, event_id)
    return {
        "data": {
            "event_id": stats.event_id,
            "capacity": stats.capacity,
            "occupied": stats.occupied,
            "total_registrations": stats.total_registrations,
            "active_registrations": stats.active_registrations,
            "attended": stats.attended,
            "cancelled": stats.cancelled,
            "no_shows": stats.no_shows,
            "available_spots": stats.available_spots,
            "registration_rate": stats.registration_rate,
            "attendance_rate": stats.attendance_rate,
        },
    }


@router.post("/{event_id}/no-shows")
def sweep_no_shows(
    event_id: int,
    actor: Actor = Depends(get_current_actor),
    engine=Depends(get_engine),
):
    count = registration_service.sweep_no_shows(engine, actor, event_id)
    return {"data": {"event_id": event_id, "marked_no_show": count}}
