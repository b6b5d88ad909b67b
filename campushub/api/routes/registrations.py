"""
campushub.api.routes.registrations — Event registration endpoints
===================================================================
"""

from __future__ import annotations

from fastapi import APIRouter, BackgroundTasks, Depends, Query
from pydantic import BaseModel

from campushub.api.deps import get_cache, get_current_actor, get_engine, get_notifier
from campushub.constants import ATTENDANCE_POINTS_KEY, DEFAULT_ATTENDANCE_POINTS
from campushub.database.models import Registration
from campushub.engine.cache import ConfigCache
from campushub.engine.capabilities import Actor
from campushub.services import registration_service
from campushub.services.notification_service import Notifier, NotificationKind, dispatch

router = APIRouter(prefix="/registrations", tags=["registrations"])


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------
class QuestionAnswer(BaseModel):
    question: str
    answer: str = ""


class RegistrationCreate(BaseModel):
    event_id: int
    method: str = "internal"
    questions: list[QuestionAnswer] | None = None
    external_registration_id: str | None = None


class CancelBody(BaseModel):
    reason: str | None = None


class FeedbackBody(BaseModel):
    rating: int
    feedback: str | None = None


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def _registration_dict(r: Registration) -> dict:
    return {
        "id": r.id,
        "event_id": r.event_id,
        "member_id": r.member_id,
        "method": r.method,
        "status": r.status,
        "attended": r.attended,
        "check_in_time": r.check_in_time.isoformat() if r.check_in_time else None,
        "questions": r.questions,
        "external_registration_id": r.external_registration_id,
        "rating": r.rating,
        "feedback": r.feedback,
        "cancellation_reason": r.cancellation_reason,
        "cancelled_at": r.cancelled_at.isoformat() if r.cancelled_at else None,
        "created_at": r.created_at.isoformat() if r.created_at else None,
    }


# ---------------------------------------------------------------------------
# Member endpoints
# ---------------------------------------------------------------------------
@router.post("", status_code=201)
def create_registration(
    body: RegistrationCreate,
    background: BackgroundTasks,
    actor: Actor = Depends(get_current_actor),
    engine=Depends(get_engine),
    notifier: Notifier = Depends(get_notifier),
):
    reg = registration_service.register(
        engine,
        actor,
        body.event_id,
        body.method,
        questions=[q.model_dump() for q in body.questions] if body.questions else None,
        external_registration_id=body.external_registration_id,
    )
    background.add_task(
        dispatch, notifier, NotificationKind.REGISTERED, reg.member_id,
        {"registration_id": reg.id, "event_id": reg.event_id},
    )
    return {"data": _registration_dict(reg)}


@router.get("/my")
def my_registrations(
    actor: Actor = Depends(get_current_actor),
    engine=Depends(get_engine),
):
    regs = registration_service.list_for_member(engine, actor.member_id)
    return {"data": [_registration_dict(r) for r in regs]}


@router.put("/{registration_id}/cancel")
def cancel_registration(
    registration_id: int,
    background: BackgroundTasks,
    body: CancelBody | None = None,
    actor: Actor = Depends(get_current_actor),
    engine=Depends(get_engine),
    notifier: Notifier = Depends(get_notifier),
):
    outcome = registration_service.cancel(
        engine, actor, registration_id, reason=body.reason if body else None,
    )
    if outcome.changed:
        reg = outcome.registration
        background.add_task(
            dispatch, notifier, NotificationKind.CANCELLED, reg.member_id,
            {"registration_id": reg.id, "event_id": reg.event_id},
        )
    return {"data": None}


@router.put("/{registration_id}/feedback")
def add_feedback(
    registration_id: int,
    body: FeedbackBody,
    actor: Actor = Depends(get_current_actor),
    engine=Depends(get_engine),
):
    reg = registration_service.add_feedback(
        engine, actor, registration_id, body.rating, body.feedback,
    )
    return {"data": _registration_dict(reg)}


# ---------------------------------------------------------------------------
# Admin / leader endpoints
# ---------------------------------------------------------------------------
@router.get("")
def list_registrations(
    event_id: int | None = Query(default=None),
    status: str | None = Query(default=None),
    actor: Actor = Depends(get_current_actor),
    engine=Depends(get_engine),
):
    regs = registration_service.list_registrations(
        engine, actor, event_id=event_id, status=status,
    )
    return {"data": [_registration_dict(r) for r in regs]}


@router.put("/{registration_id}/confirm")
def confirm_registration(
    registration_id: int,
    actor: Actor = Depends(get_current_actor),
    engine=Depends(get_engine),
):
    outcome = registration_service.confirm(engine, actor, registration_id)
    return {"data": _registration_dict(outcome.registration)}


@router.put("/{registration_id}/attend")
def mark_attended(
    registration_id: int,
    background: BackgroundTasks,
    actor: Actor = Depends(get_current_actor),
    engine=Depends(get_engine),
    cache: ConfigCache = Depends(get_cache),
    notifier: Notifier = Depends(get_notifier),
):
    outcome = registration_service.mark_attended(
        engine, actor, registration_id,
        attendance_points=cache.get_int(ATTENDANCE_POINTS_KEY, DEFAULT_ATTENDANCE_POINTS),
    )
    reg = outcome.registration
    if outcome.changed:
        background.add_task(
            dispatch, notifier, NotificationKind.ATTENDED, reg.member_id,
            {"registration_id": reg.id, "event_id": reg.event_id, "points": outcome.awarded},
        )
    return {"data": _registration_dict(reg), "awarded": outcome.awarded}


@router.put("/{registration_id}/no-show")
def mark_no_show(
    registration_id: int,
    actor: Actor = Depends(get_current_actor),
    engine=Depends(get_engine),
):
    outcome = registration_service.mark_no_show(engine, actor, registration_id)
    return {"data": _registration_dict(outcome.registration)}
