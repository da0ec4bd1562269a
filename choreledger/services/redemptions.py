from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from sqlalchemy import or_, select, update
from sqlalchemy.orm import Session

from choreledger.core.clock import Clock
from choreledger.db.unit_of_work import UnitOfWork
from choreledger.errors import InsufficientPointsError, InvalidTransitionError, NotFoundError, UnavailableError
from choreledger.models import (
    FamilyMember,
    MemberRole,
    RedemptionStatus,
    ReferenceType,
    Reward,
    RewardRedemption,
    RewardStatus,
)
from choreledger.services.balance import BalanceChange, apply_delta
from choreledger.services.notifications import (
    NotificationSink,
    NotificationType,
    notify_after_commit,
    parent_user_ids,
    user_id_for_member,
)

logger = logging.getLogger("choreledger.redemptions")


@dataclass(frozen=True)
class ApprovalResult:
    redemption: RewardRedemption
    balance_change: BalanceChange | None


def reward_is_available(reward: Reward) -> bool:
    if reward.status != RewardStatus.AVAILABLE:
        return False
    return reward.quantity_available is None or reward.quantity_redeemed < reward.quantity_available


def _available_clause():
    return (
        Reward.status == RewardStatus.AVAILABLE,
        or_(Reward.quantity_available.is_(None), Reward.quantity_redeemed < Reward.quantity_available),
    )


def _get_reward_or_404(db: Session, reward_id: int) -> Reward:
    reward = db.get(Reward, reward_id)
    if reward is None:
        raise NotFoundError("Reward not found", reward_id=reward_id)
    return reward


def _get_redemption_or_404(db: Session, redemption_id: int) -> RewardRedemption:
    redemption = db.get(RewardRedemption, redemption_id)
    if redemption is None:
        raise NotFoundError("Redemption not found", redemption_id=redemption_id)
    return redemption


def _close_pending(
    db: Session,
    redemption_id: int,
    *,
    action: str,
    target: RedemptionStatus,
    **values: Any,
) -> RewardRedemption:
    result = db.execute(
        update(RewardRedemption)
        .where(RewardRedemption.id == redemption_id, RewardRedemption.status == RedemptionStatus.PENDING)
        .values(status=target, **values)
        .execution_options(synchronize_session=False),
    )
    if result.rowcount != 1:
        current = db.scalar(select(RewardRedemption.status).where(RewardRedemption.id == redemption_id))
        if current is None:
            raise NotFoundError("Redemption not found", redemption_id=redemption_id)
        raise InvalidTransitionError(
            f"Cannot {action} a redemption that is {current.value}",
            current_status=current.value,
            redemption_id=redemption_id,
        )
    return db.get(RewardRedemption, redemption_id, populate_existing=True)


def request_redemption(
    db: Session,
    *,
    reward_id: int,
    child_id: int,
    notifier: NotificationSink,
    clock: Clock,
) -> RewardRedemption:
    """Open a pending redemption for ``child_id``.

    The balance check here only gives the child early feedback. It reserves
    nothing: two requests can both pass it, and ``approve_redemption`` makes
    the binding check when the points are actually deducted.
    """
    with UnitOfWork(db) as uow:
        reward = _get_reward_or_404(db, reward_id)
        if not reward_is_available(reward):
            raise UnavailableError("Reward is not available", reward_id=reward_id)

        child = db.scalar(
            select(FamilyMember).where(
                FamilyMember.id == child_id,
                FamilyMember.family_id == reward.family_id,
                FamilyMember.role == MemberRole.CHILD,
                FamilyMember.is_active.is_(True),
            ),
        )
        if child is None:
            raise NotFoundError("Child not found in family", member_id=child_id)
        if child.points_balance < reward.points_required:
            raise InsufficientPointsError(balance=child.points_balance, required=reward.points_required)

        redemption = RewardRedemption(
            reward_id=reward.id,
            child_id=child.id,
            family_id=reward.family_id,
            points_spent=reward.points_required,
            status=RedemptionStatus.PENDING,
            requested_at=clock.now(),
        )
        db.add(redemption)
        db.flush()
        redemption_id = redemption.id

        notify_after_commit(
            uow,
            notifier,
            list(parent_user_ids(db, reward.family_id)),
            NotificationType.REWARD_REQUESTED,
            {
                "redemption_id": redemption_id,
                "reward_id": reward.id,
                "reward_name": reward.name,
                "child_id": child.id,
                "points": reward.points_required,
            },
        )

    logger.info(
        "redemption.requested",
        extra={"redemption_id": redemption_id, "reward_id": reward_id, "member_id": child_id},
    )
    return redemption


def approve_redemption(
    db: Session,
    redemption_id: int,
    *,
    reviewer_id: int,
    comments: str | None,
    notifier: NotificationSink,
    clock: Clock,
) -> ApprovalResult:
    """Approve a pending redemption, deduct its points and consume one unit of stock.

    The three writes share one transaction. ``InsufficientPointsError`` or
    ``UnavailableError`` rolls all of them back and the redemption stays
    pending.
    """
    with UnitOfWork(db) as uow:
        _get_redemption_or_404(db, redemption_id)
        redemption = _close_pending(
            db,
            redemption_id,
            action="approve",
            target=RedemptionStatus.APPROVED,
            reviewed_by=reviewer_id,
            reviewed_at=clock.now(),
            review_notes=comments,
        )
        reward = _get_reward_or_404(db, redemption.reward_id)

        change: BalanceChange | None = None
        if redemption.points_spent > 0:
            change = apply_delta(
                db,
                member_id=redemption.child_id,
                amount=-redemption.points_spent,
                description=f"Redeemed reward: {reward.name}",
                reference_type=ReferenceType.REWARD,
                reference_id=redemption_id,
                actor_id=reviewer_id,
                clock=clock,
            )

        stock = db.execute(
            update(Reward)
            .where(Reward.id == reward.id, *_available_clause())
            .values(quantity_redeemed=Reward.quantity_redeemed + 1)
            .execution_options(synchronize_session=False),
        )
        if stock.rowcount != 1:
            raise UnavailableError("Reward is no longer available", reward_id=reward.id)

        notify_after_commit(
            uow,
            notifier,
            [user_id_for_member(db, redemption.child_id)],
            NotificationType.REWARD_APPROVED,
            {
                "redemption_id": redemption_id,
                "reward_id": reward.id,
                "reward_name": reward.name,
                "points": redemption.points_spent,
                "comments": comments,
            },
        )

    logger.info(
        "redemption.approved",
        extra={"redemption_id": redemption_id, "actor_id": reviewer_id, "reward_id": redemption.reward_id},
    )
    return ApprovalResult(redemption=redemption, balance_change=change)


def deny_redemption(
    db: Session,
    redemption_id: int,
    *,
    reviewer_id: int,
    comments: str | None,
    notifier: NotificationSink,
    clock: Clock,
) -> RewardRedemption:
    with UnitOfWork(db) as uow:
        _get_redemption_or_404(db, redemption_id)
        redemption = _close_pending(
            db,
            redemption_id,
            action="deny",
            target=RedemptionStatus.DENIED,
            reviewed_by=reviewer_id,
            reviewed_at=clock.now(),
            review_notes=comments,
        )
        notify_after_commit(
            uow,
            notifier,
            [user_id_for_member(db, redemption.child_id)],
            NotificationType.REWARD_DENIED,
            {"redemption_id": redemption_id, "reward_id": redemption.reward_id, "comments": comments},
        )

    logger.info("redemption.denied", extra={"redemption_id": redemption_id, "actor_id": reviewer_id})
    return redemption


def cancel_redemption(db: Session, redemption_id: int, requester_id: int | None = None) -> RewardRedemption:
    with UnitOfWork(db):
        current = _get_redemption_or_404(db, redemption_id)
        if requester_id is not None and current.child_id != requester_id:
            raise InvalidTransitionError(
                "Only the requesting child can cancel this redemption",
                current_status=current.status.value,
                redemption_id=redemption_id,
            )
        redemption = _close_pending(db, redemption_id, action="cancel", target=RedemptionStatus.CANCELLED)

    logger.info("redemption.cancelled", extra={"redemption_id": redemption_id, "actor_id": requester_id})
    return redemption


def list_redemptions(
    db: Session,
    family_id: int,
    *,
    status: RedemptionStatus | None = None,
    child_id: int | None = None,
) -> list[RewardRedemption]:
    query = select(RewardRedemption).where(RewardRedemption.family_id == family_id)
    if status is not None:
        query = query.where(RewardRedemption.status == status)
    if child_id is not None:
        query = query.where(RewardRedemption.child_id == child_id)
    return list(
        db.scalars(query.order_by(RewardRedemption.requested_at.desc(), RewardRedemption.id.desc())).all(),
    )
