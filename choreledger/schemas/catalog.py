from __future__ import annotations

from datetime import datetime
from typing import Any, ClassVar

from pydantic import BaseModel, ConfigDict, Field, model_validator

from choreledger.models import RecurrencePattern, RewardStatus, TaskPriority, TaskStatus


class _Patch(BaseModel):
    """Partial update: absent fields are left alone, ``null`` clears a nullable column."""

    model_config = ConfigDict(extra="forbid")

    non_nullable: ClassVar[tuple[str, ...]] = ()

    @model_validator(mode="after")
    def reject_null_for_non_nullable(self) -> _Patch:
        for name in self.non_nullable:
            if name in self.model_fields_set and getattr(self, name) is None:
                raise ValueError(f"{name} cannot be null")
        return self

    def changes(self) -> dict[str, Any]:
        return {name: getattr(self, name) for name in self.model_fields_set}


class TaskCreateRequest(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    description: str | None = None
    category: str | None = Field(default=None, max_length=100)
    priority: TaskPriority = TaskPriority.MEDIUM
    points_reward: int = Field(ge=0)
    photo_required: bool = False
    deadline: datetime | None = None
    is_recurring: bool = False
    recurrence_pattern: RecurrencePattern | None = None


class TaskPatch(_Patch):
    non_nullable: ClassVar[tuple[str, ...]] = (
        "title",
        "priority",
        "points_reward",
        "photo_required",
        "is_recurring",
        "status",
    )

    title: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None
    category: str | None = Field(default=None, max_length=100)
    priority: TaskPriority | None = None
    points_reward: int | None = Field(default=None, ge=0)
    photo_required: bool | None = None
    deadline: datetime | None = None
    is_recurring: bool | None = None
    recurrence_pattern: RecurrencePattern | None = None
    status: TaskStatus | None = None


class TaskOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    family_id: int
    created_by: int | None
    title: str
    description: str | None
    category: str | None
    priority: TaskPriority
    points_reward: int
    photo_required: bool
    deadline: datetime | None
    is_recurring: bool
    recurrence_pattern: RecurrencePattern | None
    status: TaskStatus
    created_at: datetime
    updated_at: datetime | None


class RewardCreateRequest(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    description: str | None = None
    category: str | None = Field(default=None, max_length=100)
    points_required: int = Field(ge=0)
    quantity_available: int | None = Field(default=None, ge=0)


class RewardPatch(_Patch):
    non_nullable: ClassVar[tuple[str, ...]] = ("name", "points_required", "status")

    name: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None
    category: str | None = Field(default=None, max_length=100)
    points_required: int | None = Field(default=None, ge=0)
    quantity_available: int | None = Field(default=None, ge=0)
    status: RewardStatus | None = None


class RewardOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    family_id: int
    created_by: int | None
    name: str
    description: str | None
    category: str | None
    points_required: int
    quantity_available: int | None
    quantity_redeemed: int
    status: RewardStatus
    created_at: datetime
    updated_at: datetime | None
