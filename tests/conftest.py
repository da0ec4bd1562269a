from __future__ import annotations

import os

os.environ.setdefault("CHORELEDGER_DATABASE_URL", "sqlite+pysqlite:///:memory:")
os.environ.setdefault("CHORELEDGER_REDIS_URL", "redis://localhost:6379/0")
os.environ.setdefault("CHORELEDGER_APP_ENV", "test")

from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest
from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

from choreledger.db.base import Base
from choreledger.models import (
    Family,
    FamilyMember,
    MemberRole,
    Reward,
    RewardStatus,
    Task,
    TaskPriority,
    TaskStatus,
    User,
)
from choreledger.services.notifications import NotificationType


class FrozenClock:
    def __init__(self, start: datetime) -> None:
        self.current = start

    def now(self) -> datetime:
        return self.current

    def advance(self, **kwargs: float) -> datetime:
        self.current = self.current + timedelta(**kwargs)
        return self.current


@dataclass
class RecordingNotifier:
    sent: list[tuple[int, NotificationType, dict[str, Any]]] = field(default_factory=list)

    def notify(self, user_id: int, type: NotificationType, payload: dict[str, Any]) -> None:
        self.sent.append((user_id, NotificationType(type), dict(payload)))

    def types(self) -> list[NotificationType]:
        return [item[1] for item in self.sent]


@dataclass(frozen=True)
class Household:
    family_id: int
    parent_id: int
    parent_user_id: int
    child_id: int
    child_user_id: int


@pytest.fixture
def engine() -> Iterator[Engine]:
    engine = create_engine(
        "sqlite+pysqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture
def db(engine: Engine) -> Iterator[Session]:
    session = Session(bind=engine, autoflush=False, expire_on_commit=True)
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(datetime(2026, 3, 2, 9, 0, tzinfo=UTC))


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


def add_member(db: Session, *, family_id: int, role: MemberRole, email: str, name: str) -> FamilyMember:
    user = User(email=email, full_name=name)
    db.add(user)
    db.flush()
    member = FamilyMember(family_id=family_id, user_id=user.id, role=role, points_balance=0, is_active=True)
    db.add(member)
    db.flush()
    return member


def seed_household(db: Session, *, name: str = "Rivera") -> Household:
    family = Family(name=name)
    db.add(family)
    db.flush()
    slug = name.lower()
    parent = add_member(db, family_id=family.id, role=MemberRole.PARENT, email=f"parent@{slug}.test", name="Parent")
    child = add_member(db, family_id=family.id, role=MemberRole.CHILD, email=f"kid@{slug}.test", name="Kid")
    household = Household(
        family_id=family.id,
        parent_id=parent.id,
        parent_user_id=parent.user_id,
        child_id=child.id,
        child_user_id=child.user_id,
    )
    db.commit()
    return household


@pytest.fixture
def household(db: Session) -> Household:
    return seed_household(db)


@pytest.fixture
def make_task(db: Session, household: Household, clock: FrozenClock) -> Callable[..., Task]:
    def _make(**overrides: Any) -> Task:
        values: dict[str, Any] = {
            "family_id": household.family_id,
            "created_by": household.parent_id,
            "title": "Feed the cat",
            "priority": TaskPriority.MEDIUM,
            "points_reward": 20,
            "photo_required": False,
            "is_recurring": False,
            "status": TaskStatus.ACTIVE,
            "created_at": clock.now(),
        }
        values.update(overrides)
        task = Task(**values)
        db.add(task)
        db.commit()
        return task

    return _make


@pytest.fixture
def make_reward(db: Session, household: Household, clock: FrozenClock) -> Callable[..., Reward]:
    def _make(**overrides: Any) -> Reward:
        values: dict[str, Any] = {
            "family_id": household.family_id,
            "created_by": household.parent_id,
            "name": "Movie night",
            "points_required": 70,
            "quantity_available": None,
            "quantity_redeemed": 0,
            "status": RewardStatus.AVAILABLE,
            "created_at": clock.now(),
        }
        values.update(overrides)
        reward = Reward(**values)
        db.add(reward)
        db.commit()
        return reward

    return _make
