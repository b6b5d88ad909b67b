"""
campushub.api.routes.tasks — Departmental task endpoints
==========================================================
"""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, BackgroundTasks, Depends, Query
from pydantic import BaseModel, Field

from campushub.api.deps import get_cache, get_current_actor, get_engine, get_notifier
from campushub.constants import DEFAULT_TASK_POINTS, DEFAULT_TASK_POINTS_KEY
from campushub.database.models import Task, TaskComment
from campushub.engine.cache import ConfigCache
from campushub.engine.capabilities import Actor
from campushub.services import task_service
from campushub.services.notification_service import Notifier, NotificationKind, dispatch

router = APIRouter(prefix="/tasks", tags=["tasks"])


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------
class TaskCreate(BaseModel):
    title: str
    department_id: int
    assignee_ids: list[int] = Field(default_factory=list)
    description: str | None = None
    priority: str = "medium"
    due_date: datetime | None = None
    points: int | None = None
    related_event_id: int | None = None


class TaskUpdate(BaseModel):
    title: str | None = None
    description: str | None = None
    priority: str | None = None
    due_date: datetime | None = None
    points: int | None = None
    related_event_id: int | None = None
    assignee_ids: list[int] | None = None


class ProgressBody(BaseModel):
    progress: int


class CommentBody(BaseModel):
    text: str


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def _comment_dict(c: TaskComment) -> dict:
    return {
        "id": c.id,
        "author_id": c.author_id,
        "text": c.text,
        "created_at": c.created_at.isoformat() if c.created_at else None,
    }


def _task_dict(t: Task, *, with_comments: bool = False) -> dict:
    data = {
        "id": t.id,
        "title": t.title,
        "description": t.description,
        "department_id": t.department_id,
        "creator_id": t.creator_id,
        "assignee_ids": t.assignee_ids,
        "priority": t.priority,
        "status": t.status,
        "points": t.points,
        "progress": t.progress,
        "related_event_id": t.related_event_id,
        "due_date": t.due_date.isoformat() if t.due_date else None,
        "start_date": t.start_date.isoformat() if t.start_date else None,
        "completed_date": t.completed_date.isoformat() if t.completed_date else None,
        "created_at": t.created_at.isoformat() if t.created_at else None,
    }
    if with_comments:
        data["comments"] = [_comment_dict(c) for c in t.comments]
    return data


# ---------------------------------------------------------------------------
# CRUD
# ---------------------------------------------------------------------------
@router.post("", status_code=201)
def create_task(
    body: TaskCreate,
    actor: Actor = Depends(get_current_actor),
    engine=Depends(get_engine),
    cache: ConfigCache = Depends(get_cache),
):
    task = task_service.create_task(
        engine,
        actor,
        title=body.title,
        department_id=body.department_id,
        assignee_ids=body.assignee_ids,
        description=body.description,
        priority=body.priority,
        due_date=body.due_date,
        points=body.points,
        related_event_id=body.related_event_id,
        default_points=cache.get_int(DEFAULT_TASK_POINTS_KEY, DEFAULT_TASK_POINTS),
    )
    return {"data": _task_dict(task, with_comments=True)}


@router.get("")
def list_tasks(
    department_id: int | None = Query(default=None),
    status: str | None = Query(default=None),
    priority: str | None = Query(default=None),
    assignee_id: int | None = Query(default=None),
    actor: Actor = Depends(get_current_actor),
    engine=Depends(get_engine),
):
    tasks = task_service.list_tasks(
        engine, actor,
        department_id=department_id,
        status=status,
        priority=priority,
        assignee_id=assignee_id,
    )
    return {"data": [_task_dict(t) for t in tasks]}


@router.get("/{task_id}")
def get_task(
    task_id: int,
    actor: Actor = Depends(get_current_actor),
    engine=Depends(get_engine),
):
    return {"data": _task_dict(task_service.get_task(engine, task_id), with_comments=True)}


@router.patch("/{task_id}")
def update_task(
    task_id: int,
    body: TaskUpdate,
    actor: Actor = Depends(get_current_actor),
    engine=Depends(get_engine),
):
    """Edit an unfinished task.  Only fields present in the body change."""
    task = task_service.update_task(engine, actor, task_id, **body.model_dump(exclude_unset=True))
    return {"data": _task_dict(task, with_comments=True)}


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------
@router.put("/{task_id}/start")
def start_task(task_id: int, actor: Actor = Depends(get_current_actor), engine=Depends(get_engine)):
    return {"data": _task_dict(task_service.start(engine, actor, task_id).task)}


@router.put("/{task_id}/review")
def submit_task(task_id: int, actor: Actor = Depends(get_current_actor), engine=Depends(get_engine)):
    return {"data": _task_dict(task_service.submit_for_review(engine, actor, task_id).task)}


@router.put("/{task_id}/complete")
def complete_task(
    task_id: int,
    background: BackgroundTasks,
    actor: Actor = Depends(get_current_actor),
    engine=Depends(get_engine),
    notifier: Notifier = Depends(get_notifier),
):
    outcome = task_service.complete(engine, actor, task_id)
    for member_id, points in outcome.awarded.items():
        background.add_task(
            dispatch, notifier, NotificationKind.TASK_COMPLETED, member_id,
            {"task_id": task_id, "points": points},
        )
    return {
        "data": _task_dict(outcome.task),
        "awarded": {str(k): v for k, v in outcome.awarded.items()},
    }


@router.put("/{task_id}/cancel")
def cancel_task(task_id: int, actor: Actor = Depends(get_current_actor), engine=Depends(get_engine)):
    return {"data": _task_dict(task_service.cancel_task(engine, actor, task_id).task)}


@router.put("/{task_id}/progress")
def update_progress(
    task_id: int,
    body: ProgressBody,
    actor: Actor = Depends(get_current_actor),
    engine=Depends(get_engine),
):
    return {"data": _task_dict(task_service.update_progress(engine, actor, task_id, body.progress))}


@router.post("/{task_id}/comments", status_code=201)
def add_comment(
    task_id: int,
    body: CommentBody,
    actor: Actor = Depends(get_current_actor),
    engine=Depends(get_engine),
):
    return {"data": _comment_dict(task_service.comment(engine, actor, task_id, body.text))}
