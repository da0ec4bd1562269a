from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from choreledger.core.clock import Clock, ensure_utc
from choreledger.db.unit_of_work import UnitOfWork
from choreledger.errors import InvalidTransitionError, NotFoundError, UnavailableError
from choreledger.models import (
    AssignmentStatus,
    FamilyMember,
    MemberRole,
    ReferenceType,
    ReviewDecision,
    Task,
    TaskAssignment,
    TaskStatus,
    TaskSubmission,
)
from choreledger.services.balance import BalanceChange, apply_delta
from choreledger.services.notifications import (
    NotificationSink,
    NotificationType,
    notify_after_commit,
    parent_user_ids,
    user_id_for_member,
)

logger = logging.getLogger("choreledger.assignments")

START_FROM = (AssignmentStatus.PENDING,)
SUBMIT_FROM = (AssignmentStatus.PENDING, AssignmentStatus.IN_PROGRESS, AssignmentStatus.OVERDUE)
REVIEW_FROM = (AssignmentStatus.PENDING_REVIEW,)
OVERDUE_FROM = (AssignmentStatus.PENDING, AssignmentStatus.IN_PROGRESS)
EXTEND_FROM = (AssignmentStatus.PENDING, AssignmentStatus.IN_PROGRESS, AssignmentStatus.OVERDUE)


@dataclass(frozen=True)
class SubmissionInput:
    photo_url: str | None = None
    notes: str | None = None


@dataclass(frozen=True)
class ReviewResult:
    assignment: TaskAssignment
    balance_change: BalanceChange | None


def _get_assignment_or_404(db: Session, assignment_id: int) -> TaskAssignment:
    assignment = db.get(TaskAssignment, assignment_id)
    if assignment is None:
        raise NotFoundError("Assignment not found", assignment_id=assignment_id)
    return assignment


def _get_task_or_404(db: Session, task_id: int) -> Task:
    task = db.get(Task, task_id)
    if task is None:
        raise NotFoundError("Task not found", task_id=task_id)
    return task


def _transition(
    db: Session,
    assignment_id: int,
    *,
    action: str,
    allowed: Iterable[AssignmentStatus],
    target: AssignmentStatus,
    **values: Any,
) -> TaskAssignment:
    # The status guard lives in the UPDATE, so only one concurrent caller can win.
    result = db.execute(
        update(TaskAssignment)
        .where(TaskAssignment.id == assignment_id, TaskAssignment.status.in_(list(allowed)))
        .values(status=target, **values)
        .execution_options(synchronize_session=False),
    )
    if result.rowcount != 1:
        current = db.scalar(select(TaskAssignment.status).where(TaskAssignment.id == assignment_id))
        if current is None:
            raise NotFoundError("Assignment not found", assignment_id=assignment_id)
        raise InvalidTransitionError(
            f"Cannot {action} an assignment that is {current.value}",
            current_status=current.value,
            assignment_id=assignment_id,
        )
    return db.get(TaskAssignment, assignment_id, populate_existing=True)


def assign_task(
    db: Session,
    *,
    task_id: int,
    assigned_to: int,
    assigned_by: int | None,
    due_date: datetime | None,
    notifier: NotificationSink,
    clock: Clock,
) -> TaskAssignment:
    with UnitOfWork(db) as uow:
        task = _get_task_or_404(db, task_id)
        if task.status != TaskStatus.ACTIVE:
            raise UnavailableError("Task is not active", task_id=task_id, status=task.status.value)

        child = db.scalar(
            select(FamilyMember).where(
                FamilyMember.id == assigned_to,
                FamilyMember.family_id == task.family_id,
                FamilyMember.role == MemberRole.CHILD,
                FamilyMember.is_active.is_(True),
            ),
        )
        if child is None:
            raise NotFoundError("Child not found in family", member_id=assigned_to)

        assignment = TaskAssignment(
            task_id=task.id,
            assigned_to=child.id,
            assigned_by=assigned_by,
            due_date=due_date if due_date is not None else task.deadline,
            status=AssignmentStatus.PENDING,
            assigned_at=clock.now(),
        )
        db.add(assignment)
        db.flush()
        assignment_id = assignment.id

        notify_after_commit(
            uow,
            notifier,
            [child.user_id],
            NotificationType.TASK_ASSIGNED,
            {
                "assignment_id": assignment_id,
                "task_id": task.id,
                "task_title": task.title,
                "points": task.points_reward,
            },
        )

    logger.info(
        "assignment.created",
        extra={"assignment_id": assignment_id, "task_id": task_id, "member_id": assigned_to},
    )
    return assignment


def start_assignment(db: Session, assignment_id: int, *, clock: Clock) -> TaskAssignment:
    with UnitOfWork(db):
        assignment = _transition(
            db,
            assignment_id,
            action="start",
            allowed=START_FROM,
            target=AssignmentStatus.IN_PROGRESS,
            started_at=clock.now(),
        )

    logger.info("assignment.started", extra={"assignment_id": assignment_id})
    return assignment


def submit_assignment(
    db: Session,
    assignment_id: int,
    submission: SubmissionInput,
    *,
    notifier: NotificationSink,
    clock: Clock,
) -> TaskSubmission:
    with UnitOfWork(db) as uow:
        current = _get_assignment_or_404(db, assignment_id)
        task = _get_task_or_404(db, current.task_id)
        if task.photo_required and not submission.photo_url:
            raise InvalidTransitionError(
                "This task requires a photo",
                current_status=current.status.value,
                assignment_id=assignment_id,
            )

        now = clock.now()
        assignment = _transition(
            db,
            assignment_id,
            action="submit",
            allowed=SUBMIT_FROM,
            target=AssignmentStatus.PENDING_REVIEW,
            completed_at=now,
        )
        db.execute(
            update(TaskSubmission)
            .where(TaskSubmission.assignment_id == assignment_id, TaskSubmission.is_latest.is_(True))
            .values(is_latest=False)
            .execution_options(synchronize_session=False),
        )
        record = TaskSubmission(
            assignment_id=assignment_id,
            photo_url=submission.photo_url,
            submission_notes=submission.notes,
            is_latest=True,
            submitted_at=now,
        )
        db.add(record)
        db.flush()

        if assignment.assigned_by is not None:
            recipients = [user_id_for_member(db, assignment.assigned_by)]
        else:
            recipients = list(parent_user_ids(db, task.family_id))
        notify_after_commit(
            uow,
            notifier,
            recipients,
            NotificationType.TASK_SUBMITTED,
            {"assignment_id": assignment_id, "task_id": task.id, "task_title": task.title},
        )

    logger.info("assignment.submitted", extra={"assignment_id": assignment_id})
    return record


def review_assignment(
    db: Session,
    assignment_id: int,
    *,
    decision: ReviewDecision,
    reviewer_id: int,
    comments: str | None,
    notifier: NotificationSink,
    clock: Clock,
) -> ReviewResult:
    decision = ReviewDecision(decision)
    target = AssignmentStatus.APPROVED if decision == ReviewDecision.APPROVED else AssignmentStatus.REJECTED

    with UnitOfWork(db) as uow:
        current = _get_assignment_or_404(db, assignment_id)
        task = _get_task_or_404(db, current.task_id)

        assignment = _transition(
            db,
            assignment_id,
            action="review",
            allowed=REVIEW_FROM,
            target=target,
            reviewed_by=reviewer_id,
            reviewed_at=clock.now(),
            review_comments=comments,
        )

        change: BalanceChange | None = None
        if target == AssignmentStatus.APPROVED and task.points_reward > 0:
            change = apply_delta(
                db,
                member_id=assignment.assigned_to,
                amount=task.points_reward,
                description=f"Completed task: {task.title}",
                reference_type=ReferenceType.TASK,
                reference_id=assignment_id,
                actor_id=reviewer_id,
                clock=clock,
            )

        notification_type = (
            NotificationType.TASK_APPROVED if target == AssignmentStatus.APPROVED else NotificationType.TASK_REJECTED
        )
        notify_after_commit(
            uow,
            notifier,
            [user_id_for_member(db, assignment.assigned_to)],
            notification_type,
            {
                "assignment_id": assignment_id,
                "task_id": task.id,
                "task_title": task.title,
                "points": task.points_reward if target == AssignmentStatus.APPROVED else 0,
                "comments": comments,
            },
        )

    logger.info(
        "assignment.reviewed",
        extra={"assignment_id": assignment_id, "actor_id": reviewer_id, "status": target.value},
    )
    return ReviewResult(assignment=assignment, balance_change=change)


def extend_due_date(
    db: Session,
    assignment_id: int,
    *,
    due_date: datetime,
    actor_id: int | None,
    clock: Clock,
) -> TaskAssignment:
    """Move an open assignment's due date to a later point in time.

    An overdue assignment goes back to ``in_progress`` if it was started and
    to ``pending`` otherwise, so the sweep can catch it again at the new date.
    """
    with UnitOfWork(db):
        current = _get_assignment_or_404(db, assignment_id)
        status = current.status
        if status not in EXTEND_FROM:
            raise InvalidTransitionError(
                f"Cannot extend an assignment that is {status.value}",
                current_status=status.value,
                assignment_id=assignment_id,
            )
        if ensure_utc(due_date) <= clock.now():
            raise InvalidTransitionError(
                "New due date must be in the future",
                current_status=status.value,
                assignment_id=assignment_id,
            )

        target = status
        if status == AssignmentStatus.OVERDUE:
            target = AssignmentStatus.IN_PROGRESS if current.started_at is not None else AssignmentStatus.PENDING
        assignment = _transition(
            db,
            assignment_id,
            action="extend",
            allowed=(status,),
            target=target,
            due_date=due_date,
        )

    logger.info(
        "assignment.due_date.extended",
        extra={"assignment_id": assignment_id, "actor_id": actor_id, "status": target.value},
    )
    return assignment


def mark_overdue_assignments(db: Session, *, clock: Clock, notifier: NotificationSink) -> list[int]:
    now = clock.now()
    moved: list[int] = []
    with UnitOfWork(db) as uow:
        candidates = db.execute(
            select(TaskAssignment.id, TaskAssignment.assigned_to, TaskAssignment.task_id)
            .where(
                TaskAssignment.status.in_(list(OVERDUE_FROM)),
                TaskAssignment.due_date.is_not(None),
                TaskAssignment.due_date < now,
            )
            .order_by(TaskAssignment.id.asc()),
        ).all()

        for assignment_id, member_id, task_id in candidates:
            result = db.execute(
                update(TaskAssignment)
                .where(TaskAssignment.id == assignment_id, TaskAssignment.status.in_(list(OVERDUE_FROM)))
                .values(status=AssignmentStatus.OVERDUE)
                .execution_options(synchronize_session=False),
            )
            if result.rowcount != 1:
                continue
            moved.append(assignment_id)
            notify_after_commit(
                uow,
                notifier,
                [user_id_for_member(db, member_id)],
                NotificationType.TASK_OVERDUE,
                {"assignment_id": assignment_id, "task_id": task_id},
            )

    logger.info("assignment.overdue.swept", extra={"result": {"marked": len(moved)}})
    return moved


def list_submissions(db: Session, assignment_id: int) -> list[TaskSubmission]:
    _get_assignment_or_404(db, assignment_id)
    return list(
        db.scalars(
            select(TaskSubmission)
            .where(TaskSubmission.assignment_id == assignment_id)
            .order_by(TaskSubmission.submitted_at.desc(), TaskSubmission.id.desc()),
        ).all(),
    )


def get_latest_submission(db: Session, assignment_id: int) -> TaskSubmission | None:
    _get_assignment_or_404(db, assignment_id)
    return db.scalar(
        select(TaskSubmission).where(
            TaskSubmission.assignment_id == assignment_id,
            TaskSubmission.is_latest.is_(True),
        ),
    )


def list_assignments(
    db: Session,
    family_id: int,
    *,
    status: AssignmentStatus | None = None,
    assigned_to: int | None = None,
    task_id: int | None = None,
) -> list[TaskAssignment]:
    query = (
        select(TaskAssignment)
        .join(Task, Task.id == TaskAssignment.task_id)
        .where(Task.family_id == family_id)
    )
    if status is not None:
        query = query.where(TaskAssignment.status == status)
    if assigned_to is not None:
        query = query.where(TaskAssignment.assigned_to == assigned_to)
    if task_id is not None:
        query = query.where(TaskAssignment.task_id == task_id)
    return list(
        db.scalars(query.order_by(TaskAssignment.assigned_at.desc(), TaskAssignment.id.desc())).all(),
    )


def list_pending_reviews(db: Session, family_id: int) -> list[TaskAssignment]:
    # Oldest submission first, so parents work through the queue in order.
    return list(
        db.scalars(
            select(TaskAssignment)
            .join(Task, Task.id == TaskAssignment.task_id)
            .where(Task.family_id == family_id, TaskAssignment.status == AssignmentStatus.PENDING_REVIEW)
            .order_by(TaskAssignment.completed_at.asc(), TaskAssignment.id.asc()),
        ).all(),
    )
