from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict

from choreledger.models import RedemptionStatus


class RedemptionCreateRequest(BaseModel):
    reward_id: int


class RedemptionDecisionRequest(BaseModel):
    comments: str | None = None


class RedemptionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    reward_id: int
    child_id: int
    family_id: int
    points_spent: int
    status: RedemptionStatus
    requested_at: datetime
    reviewed_by: int | None
    reviewed_at: datetime | None
    review_notes: str | None


class RedemptionApprovalResponse(BaseModel):
    redemption: RedemptionOut
    new_balance: int | None
