"""
campushub.database.models — SQLAlchemy 2.0 Data Models
=======================================================

Tables:
- members            — Community members (identity store: points, level)
- departments        — Organizational units that own tasks
- badges             — Badge catalogue
- member_badges      — Earned badges with award timestamp
- events             — Capacity-limited events (occupied-seat counter)
- registrations      — One member's claim on one event's seat (tombstoned on cancel)
- attended_events    — Events a member was checked in to
- tasks              — Departmental work items
- task_assignees     — Task ↔ member assignment (many-to-many)
- task_comments      — Append-only task discussion
- completed_tasks    — Tasks a member earned completion credit for
- point_awards       — Append-only points ledger with idempotent source keys
- admin_log          — Append-only audit trail
- settings           — Admin-configurable key-value store
"""

from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Table,
    Text,
    func,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------
class Base(DeclarativeBase):
    """Shared base for all CampusHub ORM models."""


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class Role(enum.StrEnum):
    USER = "user"
    MEMBER = "member"
    ADMIN = "admin"
    LEADER = "leader"


class EventStatus(enum.StrEnum):
    UPCOMING = "upcoming"
    ONGOING = "ongoing"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class RegistrationMethod(enum.StrEnum):
    INTERNAL = "internal"
    EXTERNAL = "external"


class RegistrationStatus(enum.StrEnum):
    """Lifecycle of a registration.  Only CANCELLED frees the seat."""
    REGISTERED = "registered"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    ATTENDED = "attended"
    NO_SHOW = "no-show"


class TaskPriority(enum.StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class TaskStatus(enum.StrEnum):
    TODO = "todo"
    IN_PROGRESS = "in-progress"
    REVIEW = "review"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class AwardReason(enum.StrEnum):
    """Why a member's balance moved.  Recorded on every ledger row."""
    ATTENDANCE = "attendance"
    TASK_COMPLETION = "task-completion"
    BADGE_GRANT = "badge-grant"
    MANUAL_ADJUSTMENT = "manual-adjustment"


class BadgeCategory(enum.StrEnum):
    PARTICIPATION = "participation"
    ACHIEVEMENT = "achievement"
    LEADERSHIP = "leadership"
    SKILL = "skill"
    SPECIAL = "special"


class BadgeRarity(enum.StrEnum):
    COMMON = "common"
    RARE = "rare"
    EPIC = "epic"
    LEGENDARY = "legendary"


class AdminActionType(enum.StrEnum):
    """Categories of admin mutations recorded in admin_log."""
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    MANUAL_AWARD = "MANUAL_AWARD"
    BADGE_GRANT = "BADGE_GRANT"
    RECONCILE = "RECONCILE"


# ---------------------------------------------------------------------------
# Members: the identity store
# ---------------------------------------------------------------------------
class Member(Base):
    __tablename__ = "members"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    role: Mapped[str] = mapped_column(String(20), nullable=False, default=Role.MEMBER.value)
    department: Mapped[str] = mapped_column(String(50), nullable=False, default="none")
    points: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    level: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    # Relationships
    badges: Mapped[list[MemberBadge]] = relationship(
        back_populates="member", cascade="all, delete-orphan"
    )
    attended_events: Mapped[list[AttendedEvent]] = relationship(
        back_populates="member", cascade="all, delete-orphan"
    )
    completed_tasks: Mapped[list[CompletedTask]] = relationship(
        back_populates="member", cascade="all, delete-orphan"
    )

    __table_args__ = (
        CheckConstraint("points >= 0", name="ck_members_points_non_negative"),
        Index("ix_members_points_desc", "points"),
    )

    def __repr__(self) -> str:
        return f"<Member id={self.id} email={self.email!r} pts={self.points} lvl={self.level}>"


# ---------------------------------------------------------------------------
# Departments
# ---------------------------------------------------------------------------
class Department(Base):
    __tablename__ = "departments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    display_name: Mapped[str] = mapped_column(String(100), nullable=False)
    color: Mapped[str] = mapped_column(String(7), nullable=False, default="#1a73e8")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    def __repr__(self) -> str:
        return f"<Department id={self.id} name={self.name!r}>"


# ---------------------------------------------------------------------------
# Badges: catalogue + earned badges
# ---------------------------------------------------------------------------
class Badge(Base):
    __tablename__ = "badges"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    description: Mapped[str | None] = mapped_column(Text, default=None)
    icon: Mapped[str] = mapped_column(String(20), nullable=False, default="\U0001f3c6")
    category: Mapped[str] = mapped_column(
        String(20), nullable=False, default=BadgeCategory.ACHIEVEMENT.value
    )
    rarity: Mapped[str] = mapped_column(
        String(20), nullable=False, default=BadgeRarity.COMMON.value
    )
    points: Mapped[int] = mapped_column(Integer, nullable=False, default=50)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        CheckConstraint("points >= 0", name="ck_badges_points_non_negative"),
    )

    def __repr__(self) -> str:
        return f"<Badge id={self.id} name={self.name!r}>"


class MemberBadge(Base):
    __tablename__ = "member_badges"

    member_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("members.id", ondelete="CASCADE"), primary_key=True
    )
    badge_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("badges.id", ondelete="CASCADE"), primary_key=True
    )
    earned_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    granted_by: Mapped[int | None] = mapped_column(Integer, nullable=True)

    member: Mapped[Member] = relationship(back_populates="badges")
    badge: Mapped[Badge] = relationship()

    def __repr__(self) -> str:
        return f"<MemberBadge member={self.member_id} badge={self.badge_id}>"


# ---------------------------------------------------------------------------
# Events: the scarce resource
# ---------------------------------------------------------------------------
class Event(Base):
    """A capacity-limited event.

    ``occupied`` is the authoritative seat counter.  It is written only by
    :mod:`campushub.services.capacity_service` (and repaired by
    :mod:`campushub.services.reconciliation_service`); ``status`` never
    decides whether a seat is available.
    """
    __tablename__ = "events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, default=None)
    location: Mapped[str | None] = mapped_column(String(200), default=None)
    event_type: Mapped[str] = mapped_column(String(30), nullable=False, default="workshop")
    starts_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    capacity: Mapped[int] = mapped_column(Integer, nullable=False, default=100)
    occupied: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=EventStatus.UPCOMING.value
    )
    registration_method: Mapped[str] = mapped_column(
        String(20), nullable=False, default=RegistrationMethod.INTERNAL.value
    )
    registration_url: Mapped[str | None] = mapped_column(String(500), default=None)
    organizer_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("members.id"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        CheckConstraint("capacity > 0", name="ck_events_capacity_positive"),
        CheckConstraint("occupied >= 0", name="ck_events_occupied_non_negative"),
        CheckConstraint("occupied <= capacity", name="ck_events_occupied_lte_capacity"),
        Index("ix_events_status_starts", "status", "starts_at"),
    )

    @property
    def seats_available(self) -> int:
        return max(self.capacity - self.occupied, 0)

    @property
    def is_full(self) -> bool:
        return self.occupied >= self.capacity

    def __repr__(self) -> str:
        return f"<Event id={self.id} title={self.title!r} seats={self.occupied}/{self.capacity}>"


# ---------------------------------------------------------------------------
# Registrations: one member's claim on one event's seat
# ---------------------------------------------------------------------------
_ACTIVE_REGISTRATION = text("status <> 'cancelled'")


class Registration(Base):
    __tablename__ = "registrations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    event_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("events.id", ondelete="CASCADE"), nullable=False
    )
    member_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("members.id", ondelete="CASCADE"), nullable=False
    )
    method: Mapped[str] = mapped_column(
        String(20), nullable=False, default=RegistrationMethod.INTERNAL.value
    )
    external_registration_id: Mapped[str | None] = mapped_column(String(100), default=None)
    questions: Mapped[list | None] = mapped_column(JSONB, nullable=True)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=RegistrationStatus.REGISTERED.value
    )
    attended: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    check_in_time: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=None
    )
    rating: Mapped[int | None] = mapped_column(Integer, default=None)
    feedback: Mapped[str | None] = mapped_column(Text, default=None)
    cancellation_reason: Mapped[str | None] = mapped_column(Text, default=None)
    cancelled_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=None
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        # At most one non-cancelled registration per (event, member)
        Index(
            "ix_registrations_active_pair",
            "event_id",
            "member_id",
            unique=True,
            postgresql_where=_ACTIVE_REGISTRATION,
            sqlite_where=_ACTIVE_REGISTRATION,
        ),
        Index("ix_registrations_member", "member_id", "created_at"),
        Index("ix_registrations_event_status", "event_id", "status"),
        CheckConstraint(
            "rating IS NULL OR (rating >= 1 AND rating <= 5)",
            name="ck_registrations_rating_range",
        ),
    )

    @property
    def is_active(self) -> bool:
        return self.status != RegistrationStatus.CANCELLED.value

    def __repr__(self) -> str:
        return (
            f"<Registration id={self.id} event={self.event_id} "
            f"member={self.member_id} status={self.status}>"
        )


class AttendedEvent(Base):
    __tablename__ = "attended_events"

    member_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("members.id", ondelete="CASCADE"), primary_key=True
    )
    event_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("events.id", ondelete="CASCADE"), primary_key=True
    )
    attended_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    member: Mapped[Member] = relationship(back_populates="attended_events")

    def __repr__(self) -> str:
        return f"<AttendedEvent member={self.member_id} event={self.event_id}>"


# ---------------------------------------------------------------------------
# Tasks
# ---------------------------------------------------------------------------
task_assignees = Table(
    "task_assignees",
    Base.metadata,
    Column("task_id", Integer, ForeignKey("tasks.id", ondelete="CASCADE"), primary_key=True),
    Column("member_id", Integer, ForeignKey("members.id", ondelete="CASCADE"), primary_key=True),
)


class Task(Base):
    __tablename__ = "tasks"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, default=None)
    department_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("departments.id"), nullable=False
    )
    creator_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("members.id"), nullable=False
    )
    priority: Mapped[str] = mapped_column(
        String(10), nullable=False, default=TaskPriority.MEDIUM.value
    )
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=TaskStatus.TODO.value
    )
    due_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    start_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    completed_date: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=None
    )
    points: Mapped[int] = mapped_column(Integer, nullable=False, default=10)
    progress: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    related_event_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("events.id", ondelete="SET NULL"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    assignees: Mapped[list[Member]] = relationship(
        secondary=task_assignees, order_by="Member.id"
    )
    comments: Mapped[list[TaskComment]] = relationship(
        back_populates="task",
        cascade="all, delete-orphan",
        order_by="(TaskComment.created_at, TaskComment.id)",
    )

    __table_args__ = (
        CheckConstraint("points >= 0", name="ck_tasks_points_non_negative"),
        CheckConstraint("progress >= 0 AND progress <= 100", name="ck_tasks_progress_range"),
        Index("ix_tasks_department_status", "department_id", "status"),
    )

    @property
    def assignee_ids(self) -> list[int]:
        return [m.id for m in self.assignees]

    def __repr__(self) -> str:
        return f"<Task id={self.id} title={self.title!r} status={self.status}>"


class TaskComment(Base):
    __tablename__ = "task_comments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    task_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False
    )
    author_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("members.id", ondelete="CASCADE"), nullable=False
    )
    text: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    task: Mapped[Task] = relationship(back_populates="comments")

    def __repr__(self) -> str:
        return f"<TaskComment id={self.id} task={self.task_id} author={self.author_id}>"


class CompletedTask(Base):
    __tablename__ = "completed_tasks"

    member_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("members.id", ondelete="CASCADE"), primary_key=True
    )
    task_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("tasks.id", ondelete="CASCADE"), primary_key=True
    )
    completed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    member: Mapped[Member] = relationship(back_populates="completed_tasks")

    def __repr__(self) -> str:
        return f"<CompletedTask member={self.member_id} task={self.task_id}>"


# ---------------------------------------------------------------------------
# PointAward: append-only points ledger
# ---------------------------------------------------------------------------
class PointAward(Base):
    """One balance movement.  ``source_key`` makes awards idempotent."""
    __tablename__ = "point_awards"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    member_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("members.id", ondelete="CASCADE"), nullable=False
    )
    reason: Mapped[str] = mapped_column(String(30), nullable=False)
    delta: Mapped[int] = mapped_column(Integer, nullable=False)
    applied_delta: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    balance_after: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    level_after: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    source_key: Mapped[str | None] = mapped_column(String(100), nullable=True)
    note: Mapped[str | None] = mapped_column(Text, nullable=True)
    actor_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        # Partial unique index: one award per member per source
        Index(
            "ix_point_awards_idempotent",
            "member_id",
            "source_key",
            unique=True,
            postgresql_where=source_key.isnot(None),
            sqlite_where=source_key.isnot(None),
        ),
        Index("ix_point_awards_member_time", "member_id", "created_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<PointAward id={self.id} member={self.member_id} "
            f"reason={self.reason} delta={self.applied_delta}>"
        )


# ---------------------------------------------------------------------------
# AdminLog: append-only audit trail
# ---------------------------------------------------------------------------
class AdminLog(Base):
    __tablename__ = "admin_log"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    actor_id: Mapped[int] = mapped_column(Integer, nullable=False)
    action_type: Mapped[str] = mapped_column(String(50), nullable=False)
    target_table: Mapped[str] = mapped_column(String(50), nullable=False)
    target_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    before_snapshot: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    after_snapshot: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        Index("ix_admin_log_actor_time", "actor_id", "timestamp"),
        Index("ix_admin_log_target", "target_table", "target_id", "timestamp"),
    )

    def __repr__(self) -> str:
        return f"<AdminLog id={self.id} actor={self.actor_id} action={self.action_type}>"


# ---------------------------------------------------------------------------
# Setting: admin-configurable key-value store
# ---------------------------------------------------------------------------
class Setting(Base):
    """Key-value configuration store.

    Gamification tuning knobs (attendance points, default task points,
    leaderboard limits) live here so admins can adjust values without
    redeploying.  Values are stored as JSON strings; typed accessors live in
    :class:`~campushub.engine.cache.ConfigCache`.
    """
    __tablename__ = "settings"

    key: Mapped[str] = mapped_column(String(100), primary_key=True)
    value_json: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[str] = mapped_column(String(50), nullable=False, default="general")
    description: Mapped[str | None] = mapped_column(Text, default=None)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        Index("ix_settings_category", "category"),
    )

    def __repr__(self) -> str:
        return f"<Setting key={self.key!r} category={self.category!r}>"


__all__ = [
    "AdminActionType",
    "AdminLog",
    "AttendedEvent",
    "AwardReason",
    "Badge",
    "BadgeCategory",
    "BadgeRarity",
    "Base",
    "CompletedTask",
    "Department",
    "Event",
    "EventStatus",
    "Member",
    "MemberBadge",
    "PointAward",
    "Registration",
    "RegistrationMethod",
    "RegistrationStatus",
    "Role",
    "Setting",
    "Task",
    "TaskComment",
    "TaskPriority",
    "TaskStatus",
    "task_assignees",
]
