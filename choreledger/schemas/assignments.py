from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from choreledger.models import AssignmentStatus, ReviewDecision


class AssignmentCreateRequest(BaseModel):
    task_id: int
    assigned_to: int
    due_date: datetime | None = None


class AssignmentSubmitRequest(BaseModel):
    photo_url: str | None = Field(default=None, max_length=500)
    notes: str | None = None


class AssignmentReviewRequest(BaseModel):
    decision: ReviewDecision
    comments: str | None = None


class AssignmentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    task_id: int
    assigned_to: int
    assigned_by: int | None
    due_date: datetime | None
    status: AssignmentStatus
    assigned_at: datetime
    started_at: datetime | None
    completed_at: datetime | None
    reviewed_by: int | None
    reviewed_at: datetime | None
    review_comments: str | None


class SubmissionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    assignment_id: int
    photo_url: str | None
    submission_notes: str | None
    is_latest: bool
    submitted_at: datetime


class AssignmentReviewResponse(BaseModel):
    assignment: AssignmentOut
    points_awarded: int
    new_balance: int | None


class AssignmentExtendRequest(BaseModel):
    due_date: datetime
