from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, HTTPException, Query, status
from sqlalchemy import select

from choreledger.api.deps import ClockDep, CurrentMember, DBSession, Notifier, ParentMember
from choreledger.errors import NotFoundError
from choreledger.models import AssignmentStatus, FamilyMember, MemberRole, Task, TaskAssignment
from choreledger.schemas.assignments import (
    AssignmentCreateRequest,
    AssignmentExtendRequest,
    AssignmentOut,
    AssignmentReviewRequest,
    AssignmentReviewResponse,
    AssignmentSubmitRequest,
    SubmissionOut,
)
from choreledger.services.assignments import (
    SubmissionInput,
    assign_task,
    extend_due_date,
    list_assignments,
    list_pending_reviews,
    list_submissions,
    review_assignment,
    start_assignment,
    submit_assignment,
)

router = APIRouter(prefix="/assignments", tags=["assignments"])


def _get_family_assignment(db: DBSession, *, assignment_id: int, family_id: int) -> TaskAssignment:
    assignment = db.scalar(
        select(TaskAssignment)
        .join(Task, Task.id == TaskAssignment.task_id)
        .where(TaskAssignment.id == assignment_id, Task.family_id == family_id),
    )
    if assignment is None:
        raise NotFoundError("Assignment not found", assignment_id=assignment_id)
    return assignment


def _ensure_assignee_or_parent(member: FamilyMember, assignment: TaskAssignment) -> None:
    if member.role == MemberRole.PARENT or member.id == assignment.assigned_to:
        return
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Assignment belongs to another member")


@router.post("", response_model=AssignmentOut, status_code=status.HTTP_201_CREATED)
def create_assignment(
    payload: AssignmentCreateRequest,
    db: DBSession,
    clock: ClockDep,
    notifier: Notifier,
    parent: ParentMember,
) -> AssignmentOut:
    task = db.scalar(select(Task).where(Task.id == payload.task_id, Task.family_id == parent.family_id))
    if task is None:
        raise NotFoundError("Task not found", task_id=payload.task_id)

    assignment = assign_task(
        db,
        task_id=task.id,
        assigned_to=payload.assigned_to,
        assigned_by=parent.id,
        due_date=payload.due_date,
        notifier=notifier,
        clock=clock,
    )
    return AssignmentOut.model_validate(assignment)


@router.post("/{assignment_id}/start", response_model=AssignmentOut)
def start(
    assignment_id: int,
    db: DBSession,
    clock: ClockDep,
    member: CurrentMember,
) -> AssignmentOut:
    assignment = _get_family_assignment(db, assignment_id=assignment_id, family_id=member.family_id)
    _ensure_assignee_or_parent(member, assignment)
    return AssignmentOut.model_validate(start_assignment(db, assignment_id, clock=clock))


@router.post("/{assignment_id}/submit", response_model=SubmissionOut, status_code=status.HTTP_201_CREATED)
def submit(
    assignment_id: int,
    payload: AssignmentSubmitRequest,
    db: DBSession,
    clock: ClockDep,
    notifier: Notifier,
    member: CurrentMember,
) -> SubmissionOut:
    assignment = _get_family_assignment(db, assignment_id=assignment_id, family_id=member.family_id)
    _ensure_assignee_or_parent(member, assignment)
    submission = submit_assignment(
        db,
        assignment_id,
        SubmissionInput(photo_url=payload.photo_url, notes=payload.notes),
        notifier=notifier,
        clock=clock,
    )
    return SubmissionOut.model_validate(submission)


@router.post("/{assignment_id}/review", response_model=AssignmentReviewResponse)
def review(
    assignment_id: int,
    payload: AssignmentReviewRequest,
    db: DBSession,
    clock: ClockDep,
    notifier: Notifier,
    parent: ParentMember,
) -> AssignmentReviewResponse:
    _get_family_assignment(db, assignment_id=assignment_id, family_id=parent.family_id)
    result = review_assignment(
        db,
        assignment_id,
        decision=payload.decision,
        reviewer_id=parent.id,
        comments=payload.comments,
        notifier=notifier,
        clock=clock,
    )
    change = result.balance_change
    return AssignmentReviewResponse(
        assignment=AssignmentOut.model_validate(result.assignment),
        points_awarded=change.delta if change is not None else 0,
        new_balance=change.new_balance if change is not None else None,
    )


@router.get("/{assignment_id}/submissions", response_model=list[SubmissionOut])
def get_submissions(
    assignment_id: int,
    db: DBSession,
    member: CurrentMember,
) -> list[SubmissionOut]:
    assignment = _get_family_assignment(db, assignment_id=assignment_id, family_id=member.family_id)
    _ensure_assignee_or_parent(member, assignment)
    return [SubmissionOut.model_validate(item) for item in list_submissions(db, assignment_id)]


@router.get("", response_model=list[AssignmentOut])
def get_assignments(
    db: DBSession,
    member: CurrentMember,
    status_filter: Annotated[AssignmentStatus | None, Query(alias="status")] = None,
    assigned_to: Annotated[int | None, Query()] = None,
    task_id: Annotated[int | None, Query()] = None,
) -> list[AssignmentOut]:
    if member.role == MemberRole.CHILD:
        assigned_to = member.id
    items = list_assignments(
        db,
        member.family_id,
        status=status_filter,
        assigned_to=assigned_to,
        task_id=task_id,
    )
    return [AssignmentOut.model_validate(item) for item in items]


@router.get("/pending-review", response_model=list[AssignmentOut])
def get_pending_reviews(db: DBSession, parent: ParentMember) -> list[AssignmentOut]:
    return [AssignmentOut.model_validate(item) for item in list_pending_reviews(db, parent.family_id)]


@router.post("/{assignment_id}/extend", response_model=AssignmentOut)
def extend(
    assignment_id: int,
    payload: AssignmentExtendRequest,
    db: DBSession,
    clock: ClockDep,
    parent: ParentMember,
) -> AssignmentOut:
    _get_family_assignment(db, assignment_id=assignment_id, family_id=parent.family_id)
    assignment = extend_due_date(
        db,
        assignment_id,
        due_date=payload.due_date,
        actor_id=parent.id,
        clock=clock,
    )
    return AssignmentOut.model_validate(assignment)
