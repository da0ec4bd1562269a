from __future__ import annotations

from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, HTTPException, Query, status

from choreledger.api.deps import ClockDep, CurrentMember, DBSession, ParentMember
from choreledger.core.config import settings
from choreledger.errors import NotFoundError
from choreledger.models import FamilyMember, MemberRole, ReferenceType, TransactionType
from choreledger.schemas.ledger import (
    AdjustPointsRequest,
    AdjustPointsResponse,
    BalanceResponse,
    LedgerAggregateResponse,
    LedgerEntryOut,
    LedgerHistoryResponse,
    MemberStandingOut,
)
from choreledger.services.balance import adjust_points
from choreledger.services.ledger import (
    LedgerHistoryFilter,
    get_aggregate,
    get_balance,
    get_entry,
    get_family_balances,
    get_family_history,
    get_history,
)

router = APIRouter(tags=["members"])


def _get_visible_member(db: DBSession, caller: FamilyMember, member_id: int) -> FamilyMember:
    member = db.get(FamilyMember, member_id)
    if member is None or member.family_id != caller.family_id:
        raise NotFoundError("Family member not found", member_id=member_id)
    if caller.role != MemberRole.PARENT and caller.id != member.id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Cannot view another member's points")
    return member


@router.get("/members/{member_id}/balance", response_model=BalanceResponse)
def read_balance(member_id: int, db: DBSession, caller: CurrentMember) -> BalanceResponse:
    _get_visible_member(db, caller, member_id)
    return BalanceResponse(member_id=member_id, points_balance=get_balance(db, member_id))


@router.get("/members/{member_id}/ledger", response_model=LedgerHistoryResponse)
def read_ledger(
    member_id: int,
    db: DBSession,
    caller: CurrentMember,
    transaction_type: Annotated[TransactionType | None, Query()] = None,
    reference_type: Annotated[ReferenceType | None, Query()] = None,
    since: Annotated[datetime | None, Query()] = None,
    until: Annotated[datetime | None, Query()] = None,
    limit: Annotated[int | None, Query(ge=1, le=500)] = None,
    offset: Annotated[int, Query(ge=0)] = 0,
) -> LedgerHistoryResponse:
    _get_visible_member(db, caller, member_id)
    filters = LedgerHistoryFilter(
        transaction_type=transaction_type,
        reference_type=reference_type,
        since=since,
        until=until,
        limit=limit,
        offset=offset,
    )
    entries = get_history(db, member_id, filters)
    return LedgerHistoryResponse(
        member_id=member_id,
        entries=[LedgerEntryOut.model_validate(entry) for entry in entries],
        limit=limit or settings.ledger_history_default_limit,
        offset=offset,
    )


@router.get("/members/{member_id}/ledger/aggregate", response_model=LedgerAggregateResponse)
def read_ledger_aggregate(member_id: int, db: DBSession, caller: CurrentMember) -> LedgerAggregateResponse:
    _get_visible_member(db, caller, member_id)
    aggregate = get_aggregate(db, member_id)
    return LedgerAggregateResponse(
        member_id=member_id,
        total_earned=aggregate.total_earned,
        total_spent=aggregate.total_spent,
        total_adjusted=aggregate.total_adjusted,
        count=aggregate.count,
    )


@router.post("/members/{member_id}/adjust", response_model=AdjustPointsResponse)
def adjust(
    member_id: int,
    payload: AdjustPointsRequest,
    db: DBSession,
    clock: ClockDep,
    parent: ParentMember,
) -> AdjustPointsResponse:
    _get_visible_member(db, parent, member_id)
    change = adjust_points(
        db,
        member_id=member_id,
        amount=payload.amount,
        description=payload.description,
        actor_id=parent.id,
        clock=clock,
    )
    return AdjustPointsResponse(
        member_id=member_id,
        previous_balance=change.previous_balance,
        new_balance=change.new_balance,
        entry=LedgerEntryOut.model_validate(change.entry),
    )


@router.get("/family/ledger", response_model=list[LedgerEntryOut])
def read_family_ledger(
    db: DBSession,
    parent: ParentMember,
    limit: Annotated[int | None, Query(ge=1, le=500)] = None,
    offset: Annotated[int, Query(ge=0)] = 0,
) -> list[LedgerEntryOut]:
    entries = get_family_history(db, parent.family_id, limit=limit, offset=offset)
    return [LedgerEntryOut.model_validate(entry) for entry in entries]


@router.get("/family/balances", response_model=list[MemberStandingOut])
def read_family_balances(db: DBSession, parent: ParentMember) -> list[MemberStandingOut]:
    return [MemberStandingOut.model_validate(item) for item in get_family_balances(db, parent.family_id)]


@router.get("/ledger/entries/{entry_id}", response_model=LedgerEntryOut)
def read_ledger_entry(entry_id: int, db: DBSession, caller: CurrentMember) -> LedgerEntryOut:
    entry = get_entry(db, entry_id)
    owner = db.get(FamilyMember, entry.family_member_id)
    if owner is None or owner.family_id != caller.family_id:
        raise NotFoundError("Ledger entry not found", entry_id=entry_id)
    _get_visible_member(db, caller, owner.id)
    return LedgerEntryOut.model_validate(entry)
