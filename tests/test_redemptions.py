from __future__ import annotations

import pytest
from sqlalchemy import func, select

from choreledger.errors import InsufficientPointsError, InvalidTransitionError, NotFoundError, UnavailableError
from choreledger.models import (
    PointsLog,
    RedemptionStatus,
    ReferenceType,
    ReviewDecision,
    Reward,
    RewardRedemption,
    RewardStatus,
    TransactionType,
)
from choreledger.services import redemptions as redemption_service
from choreledger.services.assignments import SubmissionInput, assign_task, review_assignment, submit_assignment
from choreledger.services.balance import adjust_points
from choreledger.services.ledger import LedgerHistoryFilter, get_balance, get_history
from choreledger.services.notifications import NotificationType
from choreledger.services.redemptions import (
    approve_redemption,
    cancel_redemption,
    deny_redemption,
    list_redemptions,
    request_redemption,
)
from tests.conftest import seed_household


def _fund(db, household, clock, amount: int) -> None:
    adjust_points(db, member_id=household.child_id, amount=amount, description="Start", actor_id=None, clock=clock)


def _request(db, household, clock, notifier, reward):
    return request_redemption(db, reward_id=reward.id, child_id=household.child_id, notifier=notifier, clock=clock)


def _approve(db, household, clock, notifier, redemption_id: int):
    return approve_redemption(
        db,
        redemption_id,
        reviewer_id=household.parent_id,
        comments="enjoy",
        notifier=notifier,
        clock=clock,
    )


def _redemption_count(db) -> int:
    return int(db.scalar(select(func.count(RewardRedemption.id))) or 0)


def test_request_captures_price_and_notifies_parents(db, household, clock, notifier, make_reward) -> None:
    _fund(db, household, clock, 80)
    reward = make_reward(points_required=70)

    redemption = _request(db, household, clock, notifier, reward)

    assert redemption.status == RedemptionStatus.PENDING
    assert redemption.points_spent == 70
    assert redemption.family_id == household.family_id
    assert notifier.sent == [
        (
            household.parent_user_id,
            NotificationType.REWARD_REQUESTED,
            {
                "redemption_id": redemption.id,
                "reward_id": reward.id,
                "reward_name": "Movie night",
                "child_id": household.child_id,
                "points": 70,
            },
        ),
    ]
    # Requesting is not a reservation.
    assert get_balance(db, household.child_id) == 80


def test_request_with_insufficient_points_creates_nothing(db, household, clock, notifier, make_reward) -> None:
    _fund(db, household, clock, 10)
    reward = make_reward(points_required=70)

    with pytest.raises(InsufficientPointsError) as exc_info:
        _request(db, household, clock, notifier, reward)

    assert (exc_info.value.balance, exc_info.value.required) == (10, 70)
    assert _redemption_count(db) == 0
    assert notifier.sent == []


def test_request_sold_out_reward_is_unavailable(db, household, clock, notifier, make_reward) -> None:
    _fund(db, household, clock, 100)
    reward = make_reward(points_required=10, quantity_available=1, quantity_redeemed=1)

    with pytest.raises(UnavailableError):
        _request(db, household, clock, notifier, reward)
    assert _redemption_count(db) == 0


def test_request_disabled_reward_is_unavailable(db, household, clock, notifier, make_reward) -> None:
    reward = make_reward(points_required=0, status=RewardStatus.UNAVAILABLE)
    with pytest.raises(UnavailableError):
        _request(db, household, clock, notifier, reward)


def test_request_by_child_of_another_family(db, household, clock, notifier, make_reward) -> None:
    reward = make_reward(points_required=0)
    other = seed_household(db, name="Okafor")
    with pytest.raises(NotFoundError):
        request_redemption(db, reward_id=reward.id, child_id=other.child_id, notifier=notifier, clock=clock)


def test_request_unknown_reward(db, household, clock, notifier) -> None:
    with pytest.raises(NotFoundError):
        request_redemption(db, reward_id=321, child_id=household.child_id, notifier=notifier, clock=clock)


def test_approve_deducts_points_and_consumes_stock(db, household, clock, notifier, make_reward) -> None:
    _fund(db, household, clock, 100)
    reward = make_reward(points_required=70, quantity_available=2)
    redemption = _request(db, household, clock, notifier, reward)

    result = _approve(db, household, clock, notifier, redemption.id)

    assert result.redemption.status == RedemptionStatus.APPROVED
    assert result.redemption.reviewed_by == household.parent_id
    assert result.redemption.review_notes == "enjoy"
    assert result.balance_change.new_balance == 30
    assert result.balance_change.entry.transaction_type == TransactionType.SPENT
    assert result.balance_change.entry.reference_type == ReferenceType.REWARD
    assert result.balance_change.entry.reference_id == redemption.id
    assert db.get(Reward, reward.id).quantity_redeemed == 1
    assert notifier.sent[-1][0] == household.child_user_id
    assert notifier.sent[-1][1] == NotificationType.REWARD_APPROVED


def test_second_approval_is_invalid_and_deducts_nothing(db, household, clock, notifier, make_reward) -> None:
    _fund(db, household, clock, 100)
    redemption = _request(db, household, clock, notifier, make_reward(points_required=30))
    _approve(db, household, clock, notifier, redemption.id)

    with pytest.raises(InvalidTransitionError) as exc_info:
        _approve(db, household, clock, notifier, redemption.id)

    assert exc_info.value.current_status == "approved"
    assert get_balance(db, household.child_id) == 70
    spent = get_history(db, household.child_id, LedgerHistoryFilter(transaction_type=TransactionType.SPENT))
    assert len(spent) == 1


def test_approve_after_balance_dropped_keeps_redemption_pending(db, household, clock, notifier, make_reward) -> None:
    _fund(db, household, clock, 70)
    reward = make_reward(points_required=70, quantity_available=5)
    redemption = _request(db, household, clock, notifier, reward)
    adjust_points(db, member_id=household.child_id, amount=-20, description="Broke a vase", actor_id=None, clock=clock)

    with pytest.raises(InsufficientPointsError) as exc_info:
        _approve(db, household, clock, notifier, redemption.id)

    assert (exc_info.value.balance, exc_info.value.required) == (50, 70)
    stored = db.get(RewardRedemption, redemption.id)
    assert stored.status == RedemptionStatus.PENDING
    assert stored.reviewed_by is None
    assert db.get(Reward, reward.id).quantity_redeemed == 0
    assert get_balance(db, household.child_id) == 50


def test_approve_when_stock_ran_out_rolls_everything_back(db, household, clock, notifier, make_reward) -> None:
    _fund(db, household, clock, 100)
    reward = make_reward(points_required=40, quantity_available=1)
    first = _request(db, household, clock, notifier, reward)
    second = _request(db, household, clock, notifier, reward)
    _approve(db, household, clock, notifier, first.id)

    with pytest.raises(UnavailableError):
        _approve(db, household, clock, notifier, second.id)

    assert db.get(RewardRedemption, second.id).status == RedemptionStatus.PENDING
    assert get_balance(db, household.child_id) == 60
    assert db.get(Reward, reward.id).quantity_redeemed == 1
    entry_count = db.scalar(
        select(func.count(PointsLog.id)).where(
            PointsLog.reference_type == ReferenceType.REWARD,
            PointsLog.reference_id == second.id,
        ),
    )
    assert entry_count == 0


def test_free_reward_approves_without_ledger_entry(db, household, clock, notifier, make_reward) -> None:
    redemption = _request(db, household, clock, notifier, make_reward(points_required=0))
    result = _approve(db, household, clock, notifier, redemption.id)

    assert result.redemption.status == RedemptionStatus.APPROVED
    assert result.balance_change is None


def test_failed_deduction_rolls_back_status(db, household, clock, notifier, make_reward, monkeypatch) -> None:
    _fund(db, household, clock, 100)
    redemption = _request(db, household, clock, notifier, make_reward(points_required=30))

    def _broken_apply_delta(*_args, **_kwargs):
        raise RuntimeError("ledger unavailable")

    monkeypatch.setattr(redemption_service, "apply_delta", _broken_apply_delta)

    with pytest.raises(RuntimeError):
        _approve(db, household, clock, notifier, redemption.id)

    assert db.get(RewardRedemption, redemption.id).status == RedemptionStatus.PENDING
    assert get_balance(db, household.child_id) == 100


def test_deny_is_status_only(db, household, clock, notifier, make_reward) -> None:
    _fund(db, household, clock, 100)
    redemption = _request(db, household, clock, notifier, make_reward(points_required=30))

    denied = deny_redemption(
        db,
        redemption.id,
        reviewer_id=household.parent_id,
        comments="not tonight",
        notifier=notifier,
        clock=clock,
    )

    assert denied.status == RedemptionStatus.DENIED
    assert denied.review_notes == "not tonight"
    assert get_balance(db, household.child_id) == 100
    assert notifier.sent[-1][1] == NotificationType.REWARD_DENIED

    with pytest.raises(InvalidTransitionError):
        _approve(db, household, clock, notifier, redemption.id)


def test_cancel_by_requesting_child(db, household, clock, notifier, make_reward) -> None:
    redemption = _request(db, household, clock, notifier, make_reward(points_required=0))

    cancelled = cancel_redemption(db, redemption.id, requester_id=household.child_id)

    assert cancelled.status == RedemptionStatus.CANCELLED
    with pytest.raises(InvalidTransitionError):
        cancel_redemption(db, redemption.id)


def test_cancel_by_someone_else_is_invalid(db, household, clock, notifier, make_reward) -> None:
    redemption = _request(db, household, clock, notifier, make_reward(points_required=0))

    with pytest.raises(InvalidTransitionError):
        cancel_redemption(db, redemption.id, requester_id=household.parent_id)
    assert db.get(RewardRedemption, redemption.id).status == RedemptionStatus.PENDING


def test_unknown_redemption(db, household, clock, notifier) -> None:
    with pytest.raises(NotFoundError):
        _approve(db, household, clock, notifier, 777)
    with pytest.raises(NotFoundError):
        cancel_redemption(db, 777)


def test_list_redemptions_filters(db, household, clock, notifier, make_reward) -> None:
    reward = make_reward(points_required=0)
    first = _request(db, household, clock, notifier, reward)
    clock.advance(minutes=1)
    second = _request(db, household, clock, notifier, reward)
    cancel_redemption(db, first.id)

    assert [item.id for item in list_redemptions(db, household.family_id)] == [second.id, first.id]
    pending = list_redemptions(db, household.family_id, status=RedemptionStatus.PENDING)
    assert [item.id for item in pending] == [second.id]
    assert list_redemptions(db, household.family_id, child_id=household.parent_id) == []


def test_earn_then_spend_scenario(db, household, clock, notifier, make_task, make_reward) -> None:
    _fund(db, household, clock, 50)
    task = make_task(points_reward=20)
    assignment = assign_task(
        db,
        task_id=task.id,
        assigned_to=household.child_id,
        assigned_by=household.parent_id,
        due_date=None,
        notifier=notifier,
        clock=clock,
    )
    submit_assignment(db, assignment.id, SubmissionInput(), notifier=notifier, clock=clock)
    review_assignment(
        db,
        assignment.id,
        decision=ReviewDecision.APPROVED,
        reviewer_id=household.parent_id,
        comments=None,
        notifier=notifier,
        clock=clock,
    )
    assert get_balance(db, household.child_id) == 70
    earned = get_history(db, household.child_id, LedgerHistoryFilter(transaction_type=TransactionType.EARNED))
    assert [entry.points_amount for entry in earned] == [20]

    big = make_reward(name="Theme park", points_required=70)
    redemption = _request(db, household, clock, notifier, big)
    _approve(db, household, clock, notifier, redemption.id)
    assert get_balance(db, household.child_id) == 0
    spent = get_history(db, household.child_id, LedgerHistoryFilter(transaction_type=TransactionType.SPENT))
    assert [entry.points_amount for entry in spent] == [-70]

    small = make_reward(name="Sticker", points_required=10)
    with pytest.raises(InsufficientPointsError):
        _request(db, household, clock, notifier, small)

    total = sum(entry.points_amount for entry in get_history(db, household.child_id))
    assert total == get_balance(db, household.child_id)
