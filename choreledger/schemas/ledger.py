from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from choreledger.models import ReferenceType, TransactionType


class BalanceResponse(BaseModel):
    member_id: int
    points_balance: int


class LedgerEntryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    family_member_id: int
    transaction_type: TransactionType
    points_amount: int
    reference_type: ReferenceType
    reference_id: int | None
    description: str
    created_by: int | None
    created_at: datetime


class LedgerHistoryResponse(BaseModel):
    member_id: int
    entries: list[LedgerEntryOut]
    limit: int
    offset: int


class LedgerAggregateResponse(BaseModel):
    member_id: int
    total_earned: int
    total_spent: int
    total_adjusted: int
    count: int


class AdjustPointsRequest(BaseModel):
    amount: int
    description: str = Field(min_length=1, max_length=500)


class AdjustPointsResponse(BaseModel):
    member_id: int
    previous_balance: int
    new_balance: int
    entry: LedgerEntryOut


class MemberStandingOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    member_id: int
    user_id: int
    full_name: str
    points_balance: int
    tasks_completed: int
