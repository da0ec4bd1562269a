from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from choreledger.core.clock import Clock
from choreledger.core.config import settings
from choreledger.db.unit_of_work import UnitOfWork
from choreledger.errors import ConflictError, InsufficientPointsError, NotFoundError
from choreledger.models import FamilyMember, PointsLog, ReferenceType, TransactionType
from choreledger.services.ledger import append_entry

logger = logging.getLogger("choreledger.balance")


@dataclass(frozen=True)
class BalanceChange:
    previous_balance: int
    new_balance: int
    delta: int
    entry: PointsLog


def _transaction_type(amount: int, *, manual: bool) -> TransactionType:
    if manual:
        return TransactionType.ADJUSTED
    if amount > 0:
        return TransactionType.EARNED
    if amount < 0:
        return TransactionType.SPENT
    raise ValueError("amount must be non-zero outside manual adjustments")


def _read_balance_for_update(db: Session, member_id: int) -> int:
    balance = db.scalar(
        select(FamilyMember.points_balance).where(FamilyMember.id == member_id).with_for_update(),
    )
    if balance is None:
        raise NotFoundError("Family member not found", member_id=member_id)
    return int(balance)


def apply_delta(
    db: Session,
    *,
    member_id: int,
    amount: int,
    description: str,
    reference_type: ReferenceType,
    reference_id: int | None,
    actor_id: int | None,
    clock: Clock,
    manual: bool = False,
) -> BalanceChange:
    """Change a member's balance by ``amount`` and record the ledger entry.

    Must run inside the caller's ``UnitOfWork``; nothing is committed here.
    The balance row is read under ``FOR UPDATE`` and written with a
    compare-and-swap on the value read, so a concurrent writer either waits on
    the lock or makes the swap miss and forces a re-read.
    """
    transaction_type = _transaction_type(amount, manual=manual)

    for _attempt in range(settings.balance_cas_retries):
        previous = _read_balance_for_update(db, member_id)
        new_balance = previous + amount
        if new_balance < 0:
            raise InsufficientPointsError(balance=previous, required=-amount)

        result = db.execute(
            update(FamilyMember)
            .where(FamilyMember.id == member_id, FamilyMember.points_balance == previous)
            .values(points_balance=new_balance)
            .execution_options(synchronize_session=False),
        )
        if result.rowcount == 1:
            break
    else:
        logger.warning(
            "ledger.delta.conflict",
            extra={"member_id": member_id, "delta": amount},
        )
        raise ConflictError("Balance changed concurrently", member_id=member_id)

    entry = append_entry(
        db,
        member_id=member_id,
        transaction_type=transaction_type,
        amount=amount,
        reference_type=reference_type,
        reference_id=reference_id,
        description=description,
        created_by=actor_id,
        created_at=clock.now(),
    )
    logger.info(
        "ledger.delta.applied",
        extra={
            "member_id": member_id,
            "actor_id": actor_id,
            "delta": amount,
            "previous_balance": previous,
            "new_balance": new_balance,
        },
    )
    return BalanceChange(previous_balance=previous, new_balance=new_balance, delta=amount, entry=entry)


def adjust_points(
    db: Session,
    *,
    member_id: int,
    amount: int,
    description: str,
    actor_id: int | None,
    clock: Clock,
) -> BalanceChange:
    with UnitOfWork(db):
        change = apply_delta(
            db,
            member_id=member_id,
            amount=amount,
            description=description,
            reference_type=ReferenceType.MANUAL,
            reference_id=None,
            actor_id=actor_id,
            clock=clock,
            manual=True,
        )
    return change
