from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import and_, case, delete, func, select
from sqlalchemy.orm import Session

from choreledger.core.config import settings
from choreledger.errors import NotFoundError
from choreledger.models import (
    AssignmentStatus,
    FamilyMember,
    MemberRole,
    PointsLog,
    ReferenceType,
    TaskAssignment,
    TransactionType,
    User,
)


@dataclass(frozen=True)
class LedgerHistoryFilter:
    transaction_type: TransactionType | None = None
    reference_type: ReferenceType | None = None
    since: datetime | None = None
    until: datetime | None = None
    limit: int | None = None
    offset: int = 0


@dataclass(frozen=True)
class LedgerAggregate:
    total_earned: int
    total_spent: int
    total_adjusted: int
    count: int


@dataclass(frozen=True)
class MemberStanding:
    member_id: int
    user_id: int
    full_name: str
    points_balance: int
    tasks_completed: int


def _clamp_limit(limit: int | None) -> int:
    if limit is None:
        return settings.ledger_history_default_limit
    return max(1, min(limit, settings.ledger_history_max_limit))


def get_member_or_404(db: Session, member_id: int) -> FamilyMember:
    member = db.get(FamilyMember, member_id)
    if member is None:
        raise NotFoundError("Family member not found", member_id=member_id)
    return member


def get_balance(db: Session, member_id: int) -> int:
    balance = db.scalar(select(FamilyMember.points_balance).where(FamilyMember.id == member_id))
    if balance is None:
        raise NotFoundError("Family member not found", member_id=member_id)
    return int(balance)


def append_entry(
    db: Session,
    *,
    member_id: int,
    transaction_type: TransactionType,
    amount: int,
    reference_type: ReferenceType,
    reference_id: int | None,
    description: str,
    created_by: int | None,
    created_at: datetime,
) -> PointsLog:
    # Only apply_delta may call this; the balance column is updated alongside.
    entry = PointsLog(
        family_member_id=member_id,
        transaction_type=transaction_type,
        points_amount=amount,
        reference_type=reference_type,
        reference_id=reference_id,
        description=description,
        created_by=created_by,
        created_at=created_at,
    )
    db.add(entry)
    db.flush()
    return entry


def get_entry(db: Session, entry_id: int) -> PointsLog:
    entry = db.get(PointsLog, entry_id)
    if entry is None:
        raise NotFoundError("Ledger entry not found", entry_id=entry_id)
    return entry

def get_history(db: Session, member_id: int, filters: LedgerHistoryFilter | None = None) -> list[PointsLog]:
    filters = filters or LedgerHistoryFilter()
    get_member_or_404(db, member_id)

    query = select(PointsLog).where(PointsLog.family_member_id == member_id)
    if filters.transaction_type is not None:
        query = query.where(PointsLog.transaction_type == filters.transaction_type)
    if filters.reference_type is not None:
        query = query.where(PointsLog.reference_type == filters.reference_type)
    if filters.since is not None:
        query = query.where(PointsLog.created_at >= filters.since)
    if filters.until is not None:
        query = query.where(PointsLog.created_at < filters.until)

    query = (
        query.order_by(PointsLog.created_at.desc(), PointsLog.id.desc())
        .offset(max(0, filters.offset))
        .limit(_clamp_limit(filters.limit))
    )
    return list(db.scalars(query).all())


def get_aggregate(db: Session, member_id: int) -> LedgerAggregate:
    get_member_or_404(db, member_id)

    def _total(tx_type: TransactionType):
        return func.coalesce(
            func.sum(case((PointsLog.transaction_type == tx_type, PointsLog.points_amount), else_=0)),
            0,
        )

    row = db.execute(
        select(
            _total(TransactionType.EARNED),
            _total(TransactionType.SPENT),
            _total(TransactionType.ADJUSTED),
            func.count(PointsLog.id),
        ).where(PointsLog.family_member_id == member_id),
    ).one()
    earned, spent, adjusted, count = row
    return LedgerAggregate(
        total_earned=int(earned or 0),
        total_spent=abs(int(spent or 0)),
        total_adjusted=int(adjusted or 0),
        count=int(count or 0),
    )


def get_family_history(db: Session, family_id: int, *, limit: int | None = None, offset: int = 0) -> list[PointsLog]:
    return list(
        db.scalars(
            select(PointsLog)
            .join(FamilyMember, FamilyMember.id == PointsLog.family_member_id)
            .where(FamilyMember.family_id == family_id)
            .order_by(PointsLog.created_at.desc(), PointsLog.id.desc())
            .offset(max(0, offset))
            .limit(_clamp_limit(limit)),
        ).all(),
    )


def get_family_balances(db: Session, family_id: int) -> list[MemberStanding]:
    """Active children of a family, highest balance first, ties broken by approved tasks."""
    tasks_completed = func.count(TaskAssignment.id).label("tasks_completed")
    rows = db.execute(
        select(FamilyMember.id, FamilyMember.user_id, User.full_name, FamilyMember.points_balance, tasks_completed)
        .join(User, User.id == FamilyMember.user_id)
        .outerjoin(
            TaskAssignment,
            and_(
                TaskAssignment.assigned_to == FamilyMember.id,
                TaskAssignment.status == AssignmentStatus.APPROVED,
            ),
        )
        .where(
            FamilyMember.family_id == family_id,
            FamilyMember.role == MemberRole.CHILD,
            FamilyMember.is_active.is_(True),
        )
        .group_by(FamilyMember.id, FamilyMember.user_id, User.full_name, FamilyMember.points_balance)
        .order_by(FamilyMember.points_balance.desc(), tasks_completed.desc(), FamilyMember.id.asc()),
    ).all()
    return [
        MemberStanding(
            member_id=member_id,
            user_id=user_id,
            full_name=full_name,
            points_balance=int(balance),
            tasks_completed=int(completed),
        )
        for member_id, user_id, full_name, balance, completed in rows
    ]

def purge_entries_older_than(db: Session, *, days: int | None = None, now: datetime) -> int:
    """Delete ledger entries older than ``days``. Balances are left as they are.

    After a purge the sum of a member's remaining entries no longer has to
    match their balance; the balance is the authoritative figure.
    """
    retention_days = settings.ledger_retention_days if days is None else days
    if retention_days < 0:
        raise ValueError("days must be >= 0")
    cutoff = now - timedelta(days=retention_days)
    result = db.execute(
        delete(PointsLog).where(PointsLog.created_at < cutoff).execution_options(synchronize_session=False),
    )
    return int(result.rowcount or 0)
