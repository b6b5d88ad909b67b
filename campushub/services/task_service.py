"""
campushub.services.task_service — Task Lifecycle
==================================================

Departmental work items move through::

    todo → in-progress → review → completed
    in-progress → completed
    todo | in-progress | review → cancelled

Status changes require the ``ASSIGNEE`` or ``ADMIN`` capability and run as
conditional updates on the current status.  Completion credits every
assignee once (``source_key = task:<id>``), so a retried or concurrent
``complete`` never double-awards.  Unfinished tasks can be edited, and
reassigned by an admin.  Comments are append-only and open to any member
in any state.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import Engine, select, update
from sqlalchemy.orm import Session, selectinload

from campushub.constants import DEFAULT_TASK_POINTS, task_source_key
from campushub.database.engine import get_session
from campushub.database.models import (
    AdminActionType,
    AwardReason,
    CompletedTask,
    Department,
    Event,
    Member,
    Task,
    TaskComment,
    TaskPriority,
    TaskStatus,
)
from campushub.engine.capabilities import Actor, Capability, require
from campushub.engine.lifecycle import TERMINAL_TASK_STATES, task_sources
from campushub.errors import (
    ConsistencyViolation,
    InvalidTransition,
    MemberNotFound,
    TaskNotFound,
    ValidationError,
)
from campushub.services.admin_service import log_admin_action, row_to_dict
from campushub.services.points_service import award_points

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class TaskOutcome:
    """Result of a lifecycle call.  ``awarded`` maps member id → points credited."""

    task: Task
    changed: bool
    awarded: dict[int, int] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------
def _load(session: Session, task_id: int) -> Task:
    task = session.scalars(
        select(Task)
        .where(Task.id == task_id)
        .options(selectinload(Task.assignees), selectinload(Task.comments))
        .execution_options(populate_existing=True)
    ).one_or_none()
    if task is None:
        raise TaskNotFound(task_id)
    return task


def _guard(session: Session, actor: Actor, task_id: int, action: str) -> Task:
    task = _load(session, task_id)
    require(
        actor, Capability.ASSIGNEE, Capability.ADMIN,
        assignee_ids=task.assignee_ids, action=action,
    )
    return task


def _transition(
    session: Session,
    task_id: int,
    target: TaskStatus,
    **values: Any,
) -> tuple[Task, bool]:
    sources = [str(s) for s in task_sources(target)]
    result = session.execute(
        update(Task)
        .where(Task.id == task_id, Task.status.in_(sources))
        .values(status=target.value, **values)
        .execution_options(synchronize_session=False)
    )
    task = _load(session, task_id)
    if result.rowcount == 1:
        return task, True
    if task.status == target.value:
        return task, False
    raise InvalidTransition("task", task.status, target.value)


def _now() -> datetime:
    return datetime.now(UTC)


# ---------------------------------------------------------------------------
# Create
# ---------------------------------------------------------------------------
def create_task(
    engine: Engine,
    actor: Actor,
    *,
    title: str,
    department_id: int,
    assignee_ids: list[int],
    description: str | None = None,
    priority: str = TaskPriority.MEDIUM.value,
    due_date: datetime | None = None,
    points: int | None = None,
    related_event_id: int | None = None,
    default_points: int = DEFAULT_TASK_POINTS,
) -> Task:
    """Create a task in ``todo``.  Admin only, audit-logged.

    *default_points* applies when *points* is None.
    """
    require(actor, Capability.ADMIN, action="create tasks")

    if not title or not title.strip():
        raise ValidationError("title must not be blank")
    if priority not in {p.value for p in TaskPriority}:
        raise ValidationError(f"Invalid priority '{priority}'")
    value = default_points if points is None else points
    if value < 0:
        raise ValidationError("points must not be negative")
    unique_ids = sorted(set(assignee_ids))
    if not unique_ids:
        raise ValidationError("A task needs at least one assignee")

    with get_session(engine) as session:
        if session.get(Department, department_id) is None:
            raise ValidationError(f"Unknown department {department_id}")
        if related_event_id is not None and session.get(Event, related_event_id) is None:
            raise ValidationError(f"Unknown event {related_event_id}")
        members = list(session.scalars(select(Member).where(Member.id.in_(unique_ids))).all())
        missing = set(unique_ids) - {m.id for m in members}
        if missing:
            raise ValidationError(f"Unknown assignees: {sorted(missing)}")

        task = Task(
            title=title.strip(),
            description=description,
            department_id=department_id,
            creator_id=actor.member_id,
            priority=priority,
            status=TaskStatus.TODO.value,
            due_date=due_date,
            points=value,
            related_event_id=related_event_id,
            assignees=members,
        )
        session.add(task)
        session.flush()
        log_admin_action(
            session,
            actor_id=actor.member_id,
            action_type=AdminActionType.CREATE,
            target_table="tasks",
            target_id=str(task.id),
            before=None,
            after={**row_to_dict(task), "assignee_ids": unique_ids},
        )
        task = _load(session, task.id)

    logger.info("Task %d created by %d for %s", task.id, actor.member_id, unique_ids)
    return task


# ---------------------------------------------------------------------------
# Transitions
# ---------------------------------------------------------------------------
def start(engine: Engine, actor: Actor, task_id: int) -> TaskOutcome:
    with get_session(engine) as session:
        _guard(session, actor, task_id, "start this task")
        task, changed = _transition(session, task_id, TaskStatus.IN_PROGRESS, start_date=_now())
    return TaskOutcome(task, changed)


def submit_for_review(engine: Engine, actor: Actor, task_id: int) -> TaskOutcome:
    with get_session(engine) as session:
        _guard(session, actor, task_id, "submit this task")
        task, changed = _transition(session, task_id, TaskStatus.REVIEW)
    return TaskOutcome(task, changed)


def complete(engine: Engine, actor: Actor, task_id: int) -> TaskOutcome:
    """Finish a task and credit each assignee with its points exactly once."""
    awarded: dict[int, int] = {}
    with get_session(engine) as session:
        _guard(session, actor, task_id, "complete this task")
        task, changed = _transition(
            session, task_id, TaskStatus.COMPLETED,
            completed_date=_now(),
            progress=100,
        )
        if changed:
            if not task.assignees:
                raise ConsistencyViolation(f"Task {task_id} has no assignees to credit")
            for member in task.assignees:
                award = award_points(
                    session, member.id, task.points, AwardReason.TASK_COMPLETION,
                    source_key=task_source_key(task_id),
                    note=task.title,
                    actor_id=actor.member_id,
                )
                awarded[member.id] = award.applied_delta if award is not None else 0
                if session.get(CompletedTask, (member.id, task_id)) is None:
                    session.add(CompletedTask(member_id=member.id, task_id=task_id))
            session.flush()
            task = _load(session, task_id)

    if changed:
        logger.info("Task %d completed by %d, awards: %s", task_id, actor.member_id, awarded)
    return TaskOutcome(task, changed, awarded)


def cancel_task(engine: Engine, actor: Actor, task_id: int) -> TaskOutcome:
    with get_session(engine) as session:
        _guard(session, actor, task_id, "cancel this task")
        task, changed = _transition(session, task_id, TaskStatus.CANCELLED)
    if changed:
        logger.info("Task %d cancelled by %d", task_id, actor.member_id)
    return TaskOutcome(task, changed)


def update_progress(engine: Engine, actor: Actor, task_id: int, progress: int) -> Task:
    """Set progress (0–100) on a task that is not yet finished."""
    if isinstance(progress, bool) or not isinstance(progress, int) or not 0 <= progress <= 100:
        raise ValidationError("progress must be an integer between 0 and 100")

    with get_session(engine) as session:
        _guard(session, actor, task_id, "update this task")
        result = session.execute(
            update(Task)
            .where(Task.id == task_id, Task.status.not_in([str(s) for s in TERMINAL_TASK_STATES]))
            .values(progress=progress)
            .execution_options(synchronize_session=False)
        )
        task = _load(session, task_id)
        if result.rowcount == 0:
            raise InvalidTransition("task", task.status, "progress update")
    return task


# ---------------------------------------------------------------------------
# Edit
# ---------------------------------------------------------------------------
TASK_EDITABLE = frozenset({"title", "description", "priority", "due_date", "related_event_id"})
TASK_ADMIN_FIELDS = frozenset({"points", "assignee_ids"})


def update_task(engine: Engine, actor: Actor, task_id: int, **fields: Any) -> Task:
    """Edit a task that is not finished yet.

    Assignees and admins may change the descriptive fields.  ``points`` and
    ``assignee_ids`` are admin only.  The task row is locked first, so a
    concurrent ``complete`` credits either the old or the new assignees,
    never a mix.
    """
    unknown = set(fields) - TASK_EDITABLE - TASK_ADMIN_FIELDS
    if unknown:
        raise ValidationError(f"Fields not editable: {', '.join(sorted(unknown))}")
    if not fields:
        raise ValidationError("Nothing to update")
    edited = sorted(fields)

    with get_session(engine) as session:
        status = session.scalar(select(Task.status).where(Task.id == task_id).with_for_update())
        if status is None:
            raise TaskNotFound(task_id)
        task = _guard(session, actor, task_id, "edit this task")
        if fields.keys() & TASK_ADMIN_FIELDS:
            require(actor, Capability.ADMIN, action="reassign or re-score tasks")
        if status in TERMINAL_TASK_STATES:
            raise InvalidTransition("task", status, "edit")

        if "title" in fields:
            title = fields["title"]
            if not title or not title.strip():
                raise ValidationError("title must not be blank")
            fields["title"] = title.strip()
        if "priority" in fields and fields["priority"] not in {p.value for p in TaskPriority}:
            raise ValidationError(f"Invalid priority '{fields['priority']}'")
        if "points" in fields and (fields["points"] is None or fields["points"] < 0):
            raise ValidationError("points must not be negative")
        event_id = fields.get("related_event_id")
        if event_id is not None and session.get(Event, event_id) is None:
            raise ValidationError(f"Unknown event {event_id}")

        before = {**row_to_dict(task), "assignee_ids": task.assignee_ids}
        assignee_ids = fields.pop("assignee_ids", None)
        for key, value in fields.items():
            setattr(task, key, value)
        if assignee_ids is not None:
            unique_ids = sorted(set(assignee_ids))
            if not unique_ids:
                raise ValidationError("A task needs at least one assignee")
            members = list(session.scalars(select(Member).where(Member.id.in_(unique_ids))).all())
            missing = set(unique_ids) - {m.id for m in members}
            if missing:
                raise ValidationError(f"Unknown assignees: {sorted(missing)}")
            task.assignees = members
        session.flush()
        log_admin_action(
            session,
            actor_id=actor.member_id,
            action_type=AdminActionType.UPDATE,
            target_table="tasks",
            target_id=str(task_id),
            before=before,
            after={**row_to_dict(task), "assignee_ids": task.assignee_ids},
        )
        task = _load(session, task_id)

    logger.info("Task %d edited by %d: %s", task_id, actor.member_id, edited)
    return task


# ---------------------------------------------------------------------------
# Comments
# ---------------------------------------------------------------------------
def comment(engine: Engine, actor: Actor, task_id: int, text: str) -> TaskComment:
    if not text or not text.strip():
        raise ValidationError("Comment text must not be blank")

    with get_session(engine) as session:
        if session.get(Task, task_id) is None:
            raise TaskNotFound(task_id)
        if session.get(Member, actor.member_id) is None:
            raise MemberNotFound(actor.member_id)
        note = TaskComment(task_id=task_id, author_id=actor.member_id, text=text.strip())
        session.add(note)
        session.flush()
        session.refresh(note)
    return note


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------
def get_task(engine: Engine, task_id: int) -> Task:
    with Session(engine) as session:
        task = _load(session, task_id)
        session.expunge_all()
        return task


def list_tasks(
    engine: Engine,
    actor: Actor,
    *,
    department_id: int | None = None,
    status: str | None = None,
    priority: str | None = None,
    assignee_id: int | None = None,
) -> list[Task]:
    """Filtered task list.  Non-admins only see tasks assigned to them."""
    if not actor.is_admin:
        assignee_id = actor.member_id

    with Session(engine) as session:
        stmt = (
            select(Task)
            .options(selectinload(Task.assignees))
            .order_by(Task.created_at.desc(), Task.id.desc())
        )
        if department_id is not None:
            stmt = stmt.where(Task.department_id == department_id)
        if status is not None:
            stmt = stmt.where(Task.status == status)
        if priority is not None:
            stmt = stmt.where(Task.priority == priority)
        if assignee_id is not None:
            stmt = stmt.where(Task.assignees.any(Member.id == assignee_id))
        tasks = list(session.scalars(stmt).all())
        session.expunge_all()
        return tasks
