from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Query, status

from choreledger.api.deps import ClockDep, CurrentMember, DBSession, Notifier, ParentMember, require_role
from choreledger.errors import NotFoundError
from choreledger.models import FamilyMember, MemberRole, RedemptionStatus, Reward, RewardRedemption
from choreledger.schemas.redemptions import (
    RedemptionApprovalResponse,
    RedemptionCreateRequest,
    RedemptionDecisionRequest,
    RedemptionOut,
)
from choreledger.services.redemptions import (
    approve_redemption,
    cancel_redemption,
    deny_redemption,
    list_redemptions,
    request_redemption,
)

router = APIRouter(prefix="/redemptions", tags=["redemptions"])

ChildMember = Annotated[FamilyMember, Depends(require_role([MemberRole.CHILD.value]))]


def _ensure_family_redemption(db: DBSession, *, redemption_id: int, family_id: int) -> RewardRedemption:
    redemption = db.get(RewardRedemption, redemption_id)
    if redemption is None or redemption.family_id != family_id:
        raise NotFoundError("Redemption not found", redemption_id=redemption_id)
    return redemption


@router.post("", response_model=RedemptionOut, status_code=status.HTTP_201_CREATED)
def create_redemption(
    payload: RedemptionCreateRequest,
    db: DBSession,
    clock: ClockDep,
    notifier: Notifier,
    child: ChildMember,
) -> RedemptionOut:
    reward = db.get(Reward, payload.reward_id)
    if reward is None or reward.family_id != child.family_id:
        raise NotFoundError("Reward not found", reward_id=payload.reward_id)

    redemption = request_redemption(
        db,
        reward_id=reward.id,
        child_id=child.id,
        notifier=notifier,
        clock=clock,
    )
    return RedemptionOut.model_validate(redemption)


@router.post("/{redemption_id}/approve", response_model=RedemptionApprovalResponse)
def approve(
    redemption_id: int,
    payload: RedemptionDecisionRequest,
    db: DBSession,
    clock: ClockDep,
    notifier: Notifier,
    parent: ParentMember,
) -> RedemptionApprovalResponse:
    _ensure_family_redemption(db, redemption_id=redemption_id, family_id=parent.family_id)
    result = approve_redemption(
        db,
        redemption_id,
        reviewer_id=parent.id,
        comments=payload.comments,
        notifier=notifier,
        clock=clock,
    )
    return RedemptionApprovalResponse(
        redemption=RedemptionOut.model_validate(result.redemption),
        new_balance=result.balance_change.new_balance if result.balance_change is not None else None,
    )


@router.post("/{redemption_id}/deny", response_model=RedemptionOut)
def deny(
    redemption_id: int,
    payload: RedemptionDecisionRequest,
    db: DBSession,
    clock: ClockDep,
    notifier: Notifier,
    parent: ParentMember,
) -> RedemptionOut:
    _ensure_family_redemption(db, redemption_id=redemption_id, family_id=parent.family_id)
    redemption = deny_redemption(
        db,
        redemption_id,
        reviewer_id=parent.id,
        comments=payload.comments,
        notifier=notifier,
        clock=clock,
    )
    return RedemptionOut.model_validate(redemption)


@router.post("/{redemption_id}/cancel", response_model=RedemptionOut)
def cancel(
    redemption_id: int,
    db: DBSession,
    member: CurrentMember,
) -> RedemptionOut:
    _ensure_family_redemption(db, redemption_id=redemption_id, family_id=member.family_id)
    requester_id = None if member.role == MemberRole.PARENT else member.id
    return RedemptionOut.model_validate(cancel_redemption(db, redemption_id, requester_id=requester_id))


@router.get("", response_model=list[RedemptionOut])
def get_redemptions(
    db: DBSession,
    member: CurrentMember,
    status_filter: Annotated[RedemptionStatus | None, Query(alias="status")] = None,
    child_id: Annotated[int | None, Query()] = None,
) -> list[RedemptionOut]:
    if member.role == MemberRole.CHILD:
        child_id = member.id
    items = list_redemptions(db, member.family_id, status=status_filter, child_id=child_id)
    return [RedemptionOut.model_validate(item) for item in items]
