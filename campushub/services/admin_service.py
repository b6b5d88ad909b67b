"""
campushub.services.admin_service — Admin Mutation Service Layer
================================================================

Audited create/update of the catalogue: events, members, departments and
badges.  Every write follows the pattern:
  1. Begin transaction
  2. Read "before" snapshot
  3. Apply change
  4. Write admin_log with before/after JSON
  5. Commit

``Member.points``/``level`` and ``Event.occupied`` are never writable here;
they belong to the points ledger and the capacity ledger respectively.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable
from datetime import datetime
from typing import Any

from sqlalchemy import Engine, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from campushub.database.models import (
    AdminActionType,
    AdminLog,
    Badge,
    BadgeCategory,
    BadgeRarity,
    Department,
    Event,
    EventStatus,
    Member,
    RegistrationMethod,
    Role,
)
from campushub.engine.capabilities import Actor, Capability, require
from campushub.errors import (
    AlreadyInDepartment,
    BadgeNotFound,
    DepartmentNotFound,
    EventNotFound,
    MemberNotFound,
    NotFound,
    ValidationError,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Generic audit helpers
# ---------------------------------------------------------------------------

def row_to_dict(obj: Any) -> dict | None:
    """Convert a SQLAlchemy model instance to a JSON-serializable dict."""
    if obj is None:
        return None
    result = {}
    for col in obj.__table__.columns:
        val = getattr(obj, col.key, None)
        if isinstance(val, datetime):
            val = val.isoformat()
        result[col.name] = val
    return result


def log_admin_action(
    session: Session,
    *,
    actor_id: int,
    action_type: str,
    target_table: str,
    target_id: str | None,
    before: dict | None,
    after: dict | None,
    reason: str | None = None,
) -> None:
    """Insert a row into admin_log within the current transaction."""
    session.add(AdminLog(
        actor_id=actor_id,
        action_type=action_type,
        target_table=target_table,
        target_id=target_id,
        before_snapshot=before,
        after_snapshot=after,
        reason=reason,
    ))


def _audited_create(
    engine: Engine,
    row: Any,
    *,
    table_name: str,
    actor_id: int,
    duplicate_message: str = "Record already exists",
) -> Any:
    """Generic audited CREATE: add -> flush -> log -> commit -> return."""
    with Session(engine, expire_on_commit=False) as session:
        session.add(row)
        try:
            session.flush()
        except IntegrityError as exc:
            session.rollback()
            raise ValidationError(duplicate_message) from exc
        log_admin_action(
            session,
            actor_id=actor_id,
            action_type=AdminActionType.CREATE,
            target_table=table_name,
            target_id=str(row.id),
            before=None,
            after=row_to_dict(row),
        )
        session.commit()
        session.refresh(row)
        session.expunge(row)
        logger.info("Admin %d created %s %s", actor_id, table_name, row.id)
        return row


def _audited_update(
    engine: Engine,
    model_cls: type,
    pk: int,
    *,
    table_name: str,
    actor_id: int,
    not_found: type[NotFound],
    allowed_keys: frozenset[str],
    check: Callable[[Any], None] | None = None,
    **kwargs: Any,
) -> Any:
    """Generic audited UPDATE: get -> before -> apply kwargs -> check -> log -> commit."""
    unknown = set(kwargs) - allowed_keys
    if unknown:
        raise ValidationError(f"Fields not editable: {', '.join(sorted(unknown))}")

    with Session(engine, expire_on_commit=False) as session:
        obj = session.get(model_cls, pk, with_for_update=True)
        if obj is None:
            raise not_found(pk)
        before = row_to_dict(obj)
        for key, value in kwargs.items():
            setattr(obj, key, value)
        if check is not None:
            check(obj)
        session.flush()
        log_admin_action(
            session,
            actor_id=actor_id,
            action_type=AdminActionType.UPDATE,
            target_table=table_name,
            target_id=str(obj.id),
            before=before,
            after=row_to_dict(obj),
        )
        session.commit()
        session.refresh(obj)
        session.expunge(obj)
        logger.info("Admin %d updated %s %s: %s", actor_id, table_name, pk, sorted(kwargs))
        return obj


def _require_choice(value: str, choices: type, field: str) -> str:
    allowed = {c.value for c in choices}
    if value not in allowed:
        raise ValidationError(f"Invalid {field} '{value}'; expected one of {sorted(allowed)}")
    return value


def _require_text(value: str | None, field: str) -> str:
    if value is None or not value.strip():
        raise ValidationError(f"{field} must not be blank")
    return value.strip()


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------
EVENT_EDITABLE = frozenset({
    "title", "description", "location", "event_type", "starts_at", "capacity",
    "status", "registration_method", "registration_url",
})


def _check_event(event: Event) -> None:
    _require_text(event.title, "title")
    if event.capacity is None or event.capacity <= 0:
        raise ValidationError("capacity must be a positive integer")
    if event.capacity < event.occupied:
        raise ValidationError(
            f"capacity {event.capacity} is below the {event.occupied} seats already taken"
        )
    _require_choice(event.status, EventStatus, "status")
    _require_choice(event.registration_method, RegistrationMethod, "registration_method")


def create_event(
    engine: Engine,
    actor: Actor,
    *,
    title: str,
    capacity: int,
    description: str | None = None,
    location: str | None = None,
    event_type: str = "workshop",
    starts_at: datetime | None = None,
    status: str = EventStatus.UPCOMING.value,
    registration_method: str = RegistrationMethod.INTERNAL.value,
    registration_url: str | None = None,
) -> Event:
    """Create an event with an empty seat counter."""
    require(actor, Capability.ADMIN, action="create events")
    event = Event(
        title=title,
        description=description,
        location=location,
        event_type=event_type,
        starts_at=starts_at,
        capacity=capacity,
        occupied=0,
        status=status,
        registration_method=registration_method,
        registration_url=registration_url,
        organizer_id=actor.member_id,
    )
    _check_event(event)
    event.title = event.title.strip()
    return _audited_create(engine, event, table_name="events", actor_id=actor.member_id)


def update_event(engine: Engine, actor: Actor, event_id: int, **fields: Any) -> Event:
    """Edit event fields.  ``capacity`` may not drop below ``occupied``."""
    require(actor, Capability.ADMIN, action="edit events")
    return _audited_update(
        engine, Event, event_id,
        table_name="events",
        actor_id=actor.member_id,
        not_found=EventNotFound,
        allowed_keys=EVENT_EDITABLE,
        check=_check_event,
        **fields,
    )


# ---------------------------------------------------------------------------
# Members
# ---------------------------------------------------------------------------
MEMBER_EDITABLE = frozenset({"name", "role", "department", "is_active"})


def _check_member(member: Member) -> None:
    _require_text(member.name, "name")
    _require_choice(member.role, Role, "role")


def create_member(
    engine: Engine,
    actor: Actor,
    *,
    name: str,
    email: str,
    role: str = Role.MEMBER.value,
    department: str = "none",
) -> Member:
    """Register a member in the identity store with a zero balance."""
    require(actor, Capability.ADMIN, action="create members")
    member = Member(
        name=name,
        email=_require_text(email, "email").lower(),
        role=role,
        department=department,
        points=0,
        level=1,
        is_active=True,
    )
    _check_member(member)
    return _audited_create(
        engine, member,
        table_name="members",
        actor_id=actor.member_id,
        duplicate_message="A member with this email already exists",
    )


def update_member(engine: Engine, actor: Actor, member_id: int, **fields: Any) -> Member:
    """Edit profile fields.  Points and level are only written by the ledger."""
    require(actor, Capability.ADMIN, action="edit members")
    return _audited_update(
        engine, Member, member_id,
        table_name="members",
        actor_id=actor.member_id,
        not_found=MemberNotFound,
        allowed_keys=MEMBER_EDITABLE,
        check=_check_member,
        **fields,
    )


def list_members(
    engine: Engine,
    *,
    active_only: bool = True,
    role: str | None = None,
    department: str | None = None,
    search: str | None = None,
) -> list[Member]:
    """Member directory ordered by points (desc), then id.

    *search* matches name or email case-insensitively.
    """
    with Session(engine) as session:
        stmt = select(Member).order_by(Member.points.desc(), Member.id)
        if active_only:
            stmt = stmt.where(Member.is_active.is_(True))
        if role is not None:
            stmt = stmt.where(Member.role == _require_choice(role, Role, "role"))
        if department is not None:
            stmt = stmt.where(Member.department == department)
        if search:
            pattern = f"%{search.strip()}%"
            stmt = stmt.where(or_(Member.name.ilike(pattern), Member.email.ilike(pattern)))
        members = list(session.scalars(stmt).all())
        session.expunge_all()
        return members


# ---------------------------------------------------------------------------
# Departments
# ---------------------------------------------------------------------------
def create_department(
    engine: Engine,
    actor: Actor,
    *,
    name: str,
    display_name: str | None = None,
    color: str = "#1a73e8",
) -> Department:
    require(actor, Capability.ADMIN, action="create departments")
    slug = _require_text(name, "name").lower()
    return _audited_create(
        engine,
        Department(name=slug, display_name=display_name or name.strip(), color=color),
        table_name="departments",
        actor_id=actor.member_id,
        duplicate_message=f"Department '{slug}' already exists",
    )


def get_department(engine: Engine, department_id: int) -> Department:
    with Session(engine) as session:
        dept = session.get(Department, department_id)
        if dept is None:
            raise DepartmentNotFound(department_id)
        session.expunge(dept)
        return dept


DEPARTMENT_EDITABLE = frozenset({"display_name", "color", "is_active"})
_HEX_COLOR = re.compile(r"^#[0-9a-fA-F]{6}$")


def _check_department(dept: Department) -> None:
    _require_text(dept.display_name, "display_name")
    if not _HEX_COLOR.match(dept.color or ""):
        raise ValidationError(f"color must be a #rrggbb value, got '{dept.color}'")


def update_department(engine: Engine, actor: Actor, department_id: int, **fields: Any) -> Department:
    """Edit a department.  The slug ``name`` is fixed once tasks reference it."""
    require(actor, Capability.ADMIN, action="edit departments")
    return _audited_update(
        engine, Department, department_id,
        table_name="departments",
        actor_id=actor.member_id,
        not_found=DepartmentNotFound,
        allowed_keys=DEPARTMENT_EDITABLE,
        check=_check_department,
        **fields,
    )


def list_departments(engine: Engine, *, active_only: bool = True) -> list[Department]:
    with Session(engine) as session:
        stmt = select(Department).order_by(Department.name)
        if active_only:
            stmt = stmt.where(Department.is_active.is_(True))
        departments = list(session.scalars(stmt).all())
        session.expunge_all()
        return departments


def add_department_member(
    engine: Engine, actor: Actor, department_id: int, member_id: int,
) -> Member:
    """Move a member into an active department."""
    require(actor, Capability.ADMIN, action="assign departments")
    with Session(engine, expire_on_commit=False) as session:
        dept = session.get(Department, department_id)
        if dept is None:
            raise DepartmentNotFound(department_id)
        if not dept.is_active:
            raise ValidationError(f"Department '{dept.name}' is inactive")
        member = session.get(Member, member_id, with_for_update=True)
        if member is None:
            raise MemberNotFound(member_id)
        if member.department == dept.name:
            raise AlreadyInDepartment()

        before = row_to_dict(member)
        member.department = dept.name
        session.flush()
        log_admin_action(
            session,
            actor_id=actor.member_id,
            action_type=AdminActionType.UPDATE,
            target_table="members",
            target_id=str(member_id),
            before=before,
            after=row_to_dict(member),
            reason=f"joined department {dept.name}",
        )
        session.commit()
        session.refresh(member)
        session.expunge(member)

    logger.info("Admin %d moved member %d to department %s", actor.member_id, member_id, dept.name)
    return member


# ---------------------------------------------------------------------------
# Badges
# ---------------------------------------------------------------------------
def create_badge(
    engine: Engine,
    actor: Actor,
    *,
    name: str,
    default_points: int,
    description: str | None = None,
    icon: str = "\U0001f3c6",
    category: str = BadgeCategory.ACHIEVEMENT.value,
    rarity: str = BadgeRarity.COMMON.value,
    points: int | None = None,
) -> Badge:
    """Create a catalogue badge.  *default_points* applies when *points* is None."""
    require(actor, Capability.ADMIN, action="create badges")
    value = default_points if points is None else points
    if value < 0:
        raise ValidationError("points must not be negative")
    return _audited_create(
        engine,
        Badge(
            name=_require_text(name, "name"),
            description=description,
            icon=icon,
            category=_require_choice(category, BadgeCategory, "category"),
            rarity=_require_choice(rarity, BadgeRarity, "rarity"),
            points=value,
        ),
        table_name="badges",
        actor_id=actor.member_id,
        duplicate_message=f"Badge '{name}' already exists",
    )


BADGE_EDITABLE = frozenset({"name", "description", "icon", "category", "rarity", "points", "is_active"})


def _check_badge(badge: Badge) -> None:
    _require_text(badge.name, "name")
    _require_choice(badge.category, BadgeCategory, "category")
    _require_choice(badge.rarity, BadgeRarity, "rarity")
    if badge.points is None or badge.points < 0:
        raise ValidationError("points must not be negative")


def update_badge(engine: Engine, actor: Actor, badge_id: int, **fields: Any) -> Badge:
    """Edit a catalogue badge.  Members who already hold it keep their points."""
    require(actor, Capability.ADMIN, action="edit badges")
    return _audited_update(
        engine, Badge, badge_id,
        table_name="badges",
        actor_id=actor.member_id,
        not_found=BadgeNotFound,
        allowed_keys=BADGE_EDITABLE,
        check=_check_badge,
        **fields,
    )


def list_badges(engine: Engine, *, active_only: bool = True) -> list[Badge]:
    with Session(engine) as session:
        stmt = select(Badge).order_by(Badge.id)
        if active_only:
            stmt = stmt.where(Badge.is_active.is_(True))
        badges = list(session.scalars(stmt).all())
        session.expunge_all()
        return badges


# ---------------------------------------------------------------------------
# Audit log
# ---------------------------------------------------------------------------
def list_audit_log(
    engine: Engine,
    actor: Actor,
    *,
    target_table: str | None = None,
    limit: int = 50,
) -> list[AdminLog]:
    require(actor, Capability.ADMIN, action="read the audit log")
    with Session(engine) as session:
        stmt = select(AdminLog).order_by(AdminLog.timestamp.desc(), AdminLog.id.desc())
        if target_table:
            stmt = stmt.where(AdminLog.target_table == target_table)
        rows = list(session.scalars(stmt.limit(limit)).all())
        session.expunge_all()
        return rows
