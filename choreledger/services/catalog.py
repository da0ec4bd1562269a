from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from choreledger.core.clock import Clock
from choreledger.db.unit_of_work import UnitOfWork
from choreledger.errors import NotFoundError
from choreledger.models import Reward, RewardStatus, Task, TaskStatus
from choreledger.schemas.catalog import RewardCreateRequest, RewardPatch, TaskCreateRequest, TaskPatch

logger = logging.getLogger("choreledger.catalog")


def _get_family_task_or_404(db: Session, *, family_id: int, task_id: int) -> Task:
    task = db.scalar(select(Task).where(Task.id == task_id, Task.family_id == family_id))
    if task is None:
        raise NotFoundError("Task not found", task_id=task_id)
    return task


def _get_family_reward_or_404(db: Session, *, family_id: int, reward_id: int) -> Reward:
    reward = db.scalar(select(Reward).where(Reward.id == reward_id, Reward.family_id == family_id))
    if reward is None:
        raise NotFoundError("Reward not found", reward_id=reward_id)
    return reward


def create_task(
    db: Session,
    *,
    family_id: int,
    created_by: int | None,
    payload: TaskCreateRequest,
    clock: Clock,
) -> Task:
    with UnitOfWork(db):
        task = Task(
            family_id=family_id,
            created_by=created_by,
            title=payload.title,
            description=payload.description,
            category=payload.category,
            priority=payload.priority,
            points_reward=payload.points_reward,
            photo_required=payload.photo_required,
            deadline=payload.deadline,
            is_recurring=payload.is_recurring,
            recurrence_pattern=payload.recurrence_pattern if payload.is_recurring else None,
            status=TaskStatus.ACTIVE,
            created_at=clock.now(),
        )
        db.add(task)
        db.flush()
        task_id = task.id

    logger.info("task.created", extra={"task_id": task_id, "family_id": family_id, "actor_id": created_by})
    return task


def update_task(db: Session, task_id: int, patch: TaskPatch, *, family_id: int, clock: Clock) -> Task:
    """Apply only the fields present in ``patch``.

    Points already awarded for this task live in the ledger and are not
    touched by a change to ``points_reward``.
    """
    with UnitOfWork(db):
        task = _get_family_task_or_404(db, family_id=family_id, task_id=task_id)
        changes = patch.changes()
        for name, value in changes.items():
            setattr(task, name, value)
        if not task.is_recurring:
            task.recurrence_pattern = None
        task.updated_at = clock.now()
        db.flush()

    logger.info("task.updated", extra={"task_id": task_id, "family_id": family_id, "result": sorted(changes)})
    return task


def create_reward(
    db: Session,
    *,
    family_id: int,
    created_by: int | None,
    payload: RewardCreateRequest,
    clock: Clock,
) -> Reward:
    with UnitOfWork(db):
        reward = Reward(
            family_id=family_id,
            created_by=created_by,
            name=payload.name,
            description=payload.description,
            category=payload.category,
            points_required=payload.points_required,
            quantity_available=payload.quantity_available,
            quantity_redeemed=0,
            status=RewardStatus.AVAILABLE,
            created_at=clock.now(),
        )
        db.add(reward)
        db.flush()
        reward_id = reward.id

    logger.info("reward.created", extra={"reward_id": reward_id, "family_id": family_id, "actor_id": created_by})
    return reward


def update_reward(db: Session, reward_id: int, patch: RewardPatch, *, family_id: int, clock: Clock) -> Reward:
    with UnitOfWork(db):
        reward = _get_family_reward_or_404(db, family_id=family_id, reward_id=reward_id)
        changes = patch.changes()
        for name, value in changes.items():
            setattr(reward, name, value)
        reward.updated_at = clock.now()
        db.flush()

    logger.info("reward.updated", extra={"reward_id": reward_id, "family_id": family_id, "result": sorted(changes)})
    return reward
