from __future__ import annotations

from datetime import datetime
from enum import Enum

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Dialect,
    Enum as SqlEnum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func
from sqlalchemy.types import TypeDecorator

from choreledger.core.clock import ensure_utc
from choreledger.db.base import Base


def _enum_column(enum_cls: type[Enum], name: str) -> SqlEnum:
    return SqlEnum(enum_cls, name=name, values_callable=lambda members: [m.value for m in members])


class UtcDateTime(TypeDecorator[datetime]):
    """Timezone-aware timestamp normalised to UTC on the way in and out.

    SQLite keeps only the wall-clock text of a bound datetime, so an offset
    other than UTC would otherwise be stored and compared as if it were UTC.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        return None if value is None else ensure_utc(value)

    def process_result_value(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        return None if value is None else ensure_utc(value)


class MemberRole(str, Enum):
    PARENT = "parent"
    CHILD = "child"


class TransactionType(str, Enum):
    EARNED = "earned"
    SPENT = "spent"
    ADJUSTED = "adjusted"


class ReferenceType(str, Enum):
    TASK = "task"
    REWARD = "reward"
    MANUAL = "manual"


class TaskPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class TaskStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    ARCHIVED = "archived"


class RecurrencePattern(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class AssignmentStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    PENDING_REVIEW = "pending_review"
    APPROVED = "approved"
    REJECTED = "rejected"
    OVERDUE = "overdue"


class ReviewDecision(str, Enum):
    APPROVED = "approved"
    REJECTED = "rejected"


class RewardStatus(str, Enum):
    AVAILABLE = "available"
    UNAVAILABLE = "unavailable"


class RedemptionStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    DENIED = "denied"
    CANCELLED = "cancelled"


class Family(Base):
    __tablename__ = "families"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        UtcDateTime(),
        nullable=False,
        server_default=func.now(),
    )


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        UtcDateTime(),
        nullable=False,
        server_default=func.now(),
    )


class FamilyMember(Base):
    __tablename__ = "family_members"
    __table_args__ = (
        UniqueConstraint("user_id", "family_id", name="uq_family_members_user_id_family_id"),
        CheckConstraint("points_balance >= 0", name="ck_family_members_points_balance_non_negative"),
        Index("ix_family_members_family_id", "family_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    family_id: Mapped[int] = mapped_column(ForeignKey("families.id", ondelete="CASCADE"), nullable=False)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    role: Mapped[MemberRole] = mapped_column(_enum_column(MemberRole, "member_role"), nullable=False)
    points_balance: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default="true")
    joined_at: Mapped[datetime] = mapped_column(
        UtcDateTime(),
        nullable=False,
        server_default=func.now(),
    )


class PointsLog(Base):
    """One immutable ledger entry. ``points_amount`` is signed."""

    __tablename__ = "points_log"
    __table_args__ = (
        Index("ix_points_log_family_member_id_created_at", "family_member_id", "created_at"),
        UniqueConstraint("reference_type", "reference_id", name="uq_points_log_reference"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    # No FK cascade: ledger history outlives the membership row.
    family_member_id: Mapped[int] = mapped_column(Integer, nullable=False)
    transaction_type: Mapped[TransactionType] = mapped_column(
        _enum_column(TransactionType, "points_transaction_type"),
        nullable=False,
    )
    points_amount: Mapped[int] = mapped_column(Integer, nullable=False)
    reference_type: Mapped[ReferenceType] = mapped_column(
        _enum_column(ReferenceType, "points_reference_type"),
        nullable=False,
    )
    reference_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    description: Mapped[str] = mapped_column(String(500), nullable=False)
    created_by: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        UtcDateTime(),
        nullable=False,
        server_default=func.now(),
    )


class Task(Base):
    __tablename__ = "tasks"
    __table_args__ = (
        CheckConstraint("points_reward >= 0", name="ck_tasks_points_reward_non_negative"),
        Index("ix_tasks_family_id", "family_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    family_id: Mapped[int] = mapped_column(ForeignKey("families.id", ondelete="CASCADE"), nullable=False)
    created_by: Mapped[int | None] = mapped_column(ForeignKey("family_members.id"), nullable=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    category: Mapped[str | None] = mapped_column(String(100), nullable=True)
    priority: Mapped[TaskPriority] = mapped_column(
        _enum_column(TaskPriority, "task_priority"),
        nullable=False,
        default=TaskPriority.MEDIUM,
    )
    points_reward: Mapped[int] = mapped_column(Integer, nullable=False)
    photo_required: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    deadline: Mapped[datetime | None] = mapped_column(UtcDateTime(), nullable=True)
    is_recurring: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    recurrence_pattern: Mapped[RecurrencePattern | None] = mapped_column(
        _enum_column(RecurrencePattern, "task_recurrence_pattern"),
        nullable=True,
    )
    status: Mapped[TaskStatus] = mapped_column(
        _enum_column(TaskStatus, "task_status"),
        nullable=False,
        default=TaskStatus.ACTIVE,
    )
    created_at: Mapped[datetime] = mapped_column(
        UtcDateTime(),
        nullable=False,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime | None] = mapped_column(UtcDateTime(), nullable=True)


class TaskAssignment(Base):
    __tablename__ = "task_assignments"
    __table_args__ = (
        Index("ix_task_assignments_assigned_to_status", "assigned_to", "status"),
        Index("ix_task_assignments_status_due_date", "status", "due_date"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    task_id: Mapped[int] = mapped_column(ForeignKey("tasks.id"), nullable=False)
    assigned_to: Mapped[int] = mapped_column(ForeignKey("family_members.id"), nullable=False)
    assigned_by: Mapped[int | None] = mapped_column(ForeignKey("family_members.id"), nullable=True)
    due_date: Mapped[datetime | None] = mapped_column(UtcDateTime(), nullable=True)
    status: Mapped[AssignmentStatus] = mapped_column(
        _enum_column(AssignmentStatus, "assignment_status"),
        nullable=False,
        default=AssignmentStatus.PENDING,
    )
    assigned_at: Mapped[datetime] = mapped_column(
        UtcDateTime(),
        nullable=False,
        server_default=func.now(),
    )
    started_at: Mapped[datetime | None] = mapped_column(UtcDateTime(), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(UtcDateTime(), nullable=True)
    reviewed_by: Mapped[int | None] = mapped_column(ForeignKey("family_members.id"), nullable=True)
    reviewed_at: Mapped[datetime | None] = mapped_column(UtcDateTime(), nullable=True)
    review_comments: Mapped[str | None] = mapped_column(Text, nullable=True)


class TaskSubmission(Base):
    __tablename__ = "task_submissions"
    __table_args__ = (
        Index("ix_task_submissions_assignment_id", "assignment_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    assignment_id: Mapped[int] = mapped_column(ForeignKey("task_assignments.id"), nullable=False)
    photo_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    submission_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_latest: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    submitted_at: Mapped[datetime] = mapped_column(
        UtcDateTime(),
        nullable=False,
        server_default=func.now(),
    )


class Reward(Base):
    __tablename__ = "rewards"
    __table_args__ = (
        CheckConstraint("points_required >= 0", name="ck_rewards_points_required_non_negative"),
        CheckConstraint("quantity_redeemed >= 0", name="ck_rewards_quantity_redeemed_non_negative"),
        Index("ix_rewards_family_id", "family_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    family_id: Mapped[int] = mapped_column(ForeignKey("families.id", ondelete="CASCADE"), nullable=False)
    created_by: Mapped[int | None] = mapped_column(ForeignKey("family_members.id"), nullable=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    category: Mapped[str | None] = mapped_column(String(100), nullable=True)
    points_required: Mapped[int] = mapped_column(Integer, nullable=False)
    quantity_available: Mapped[int | None] = mapped_column(Integer, nullable=True)
    quantity_redeemed: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    status: Mapped[RewardStatus] = mapped_column(
        _enum_column(RewardStatus, "reward_status"),
        nullable=False,
        default=RewardStatus.AVAILABLE,
    )
    created_at: Mapped[datetime] = mapped_column(
        UtcDateTime(),
        nullable=False,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime | None] = mapped_column(UtcDateTime(), nullable=True)


class RewardRedemption(Base):
    __tablename__ = "reward_redemptions"
    __table_args__ = (
        Index("ix_reward_redemptions_family_id_status", "family_id", "status"),
        Index("ix_reward_redemptions_child_id", "child_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    reward_id: Mapped[int] = mapped_column(ForeignKey("rewards.id"), nullable=False)
    child_id: Mapped[int] = mapped_column(ForeignKey("family_members.id"), nullable=False)
    family_id: Mapped[int] = mapped_column(ForeignKey("families.id", ondelete="CASCADE"), nullable=False)
    points_spent: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[RedemptionStatus] = mapped_column(
        _enum_column(RedemptionStatus, "redemption_status"),
        nullable=False,
        default=RedemptionStatus.PENDING,
    )
    requested_at: Mapped[datetime] = mapped_column(
        UtcDateTime(),
        nullable=False,
        server_default=func.now(),
    )
    reviewed_by: Mapped[int | None] = mapped_column(ForeignKey("family_members.id"), nullable=True)
    reviewed_at: Mapped[datetime | None] = mapped_column(UtcDateTime(), nullable=True)
    review_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
