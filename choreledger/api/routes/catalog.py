from __future__ import annotations

from fastapi import APIRouter, status

from choreledger.api.deps import ClockDep, DBSession, ParentMember
from choreledger.schemas.catalog import (
    RewardCreateRequest,
    RewardOut,
    RewardPatch,
    TaskCreateRequest,
    TaskOut,
    TaskPatch,
)
from choreledger.services.catalog import create_reward, create_task, update_reward, update_task

router = APIRouter(tags=["catalog"])


@router.post("/tasks", response_model=TaskOut, status_code=status.HTTP_201_CREATED)
def post_task(payload: TaskCreateRequest, db: DBSession, clock: ClockDep, parent: ParentMember) -> TaskOut:
    task = create_task(db, family_id=parent.family_id, created_by=parent.id, payload=payload, clock=clock)
    return TaskOut.model_validate(task)


@router.patch("/tasks/{task_id}", response_model=TaskOut)
def patch_task(task_id: int, payload: TaskPatch, db: DBSession, clock: ClockDep, parent: ParentMember) -> TaskOut:
    task = update_task(db, task_id, payload, family_id=parent.family_id, clock=clock)
    return TaskOut.model_validate(task)


@router.post("/rewards", response_model=RewardOut, status_code=status.HTTP_201_CREATED)
def post_reward(payload: RewardCreateRequest, db: DBSession, clock: ClockDep, parent: ParentMember) -> RewardOut:
    reward = create_reward(db, family_id=parent.family_id, created_by=parent.id, payload=payload, clock=clock)
    return RewardOut.model_validate(reward)


@router.patch("/rewards/{reward_id}", response_model=RewardOut)
def patch_reward(
    reward_id: int,
    payload: RewardPatch,
    db: DBSession,
    clock: ClockDep,
    parent: ParentMember,
) -> RewardOut:
    reward = update_reward(db, reward_id, payload, family_id=parent.family_id, clock=clock)
    return RewardOut.model_validate(reward)
