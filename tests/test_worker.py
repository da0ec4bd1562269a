from __future__ import annotations

import json
from datetime import timedelta
from typing import Any

import pytest
from sqlalchemy.orm import sessionmaker

from choreledger import worker
from choreledger.db.unit_of_work import UnitOfWork
from choreledger.core.config import settings
from choreledger.jobs import mark_overdue as mark_overdue_job
from choreledger.jobs.enqueue import enqueue_ledger_purge, enqueue_mark_overdue
from choreledger.jobs.dispatch_notification import dispatch_notification
from choreledger.jobs.purge_ledger import purge_ledger_history
from choreledger.models import AssignmentStatus, ReferenceType, TaskAssignment
from choreledger.services import notifications as notification_service
from choreledger.services.assignments import assign_task
from choreledger.services.balance import apply_delta
from choreledger.services.ledger import get_balance, get_history
from choreledger.services import queue as queue_service
from choreledger.services.notifications import (
    NoopNotificationSink,
    NotificationType,
    QueueNotificationSink,
    default_notifier,
)
from choreledger.services.queue import JobEnvelope, dequeue_job, enqueue_job
from tests.conftest import RecordingNotifier


class _FakeRedis:
    def __init__(self) -> None:
        self.lists: dict[str, list[str]] = {}
        self.closed = False

    def rpush(self, name: str, value: str) -> int:
        self.lists.setdefault(name, []).append(value)
        return len(self.lists[name])

    def blpop(self, name: str, timeout: int = 0) -> tuple[str, str] | None:
        items = self.lists.get(name) or []
        if not items:
            return None
        return name, items.pop(0)

    def close(self) -> None:
        self.closed = True


def test_enqueue_and_dequeue_share_envelope_format() -> None:
    client = _FakeRedis()
    job_id = enqueue_job("ledger.purge", {"days": 30}, client=client)

    raw = client.lists["choreledger:jobs"][0]
    assert json.loads(raw)["type"] == "ledger.purge"

    job = dequeue_job(block_timeout_seconds=0, client=client)
    assert job is not None
    assert job.id == job_id
    assert job.payload == {"days": 30}
    assert dequeue_job(block_timeout_seconds=0, client=client) is None
    assert client.closed is False


def test_queue_sink_enqueues_dispatch_job(monkeypatch) -> None:
    calls: list[tuple[str, dict[str, Any]]] = []
    monkeypatch.setattr(
        notification_service,
        "enqueue_job",
        lambda job_type, payload=None: calls.append((job_type, payload)) or "job-1",
    )

    QueueNotificationSink().notify(7, NotificationType.REWARD_APPROVED, {"redemption_id": 3})

    assert calls == [
        ("notification.dispatch", {"user_id": 7, "type": "reward_approved", "data": {"redemption_id": 3}}),
    ]


def test_dispatch_notification_validates_type() -> None:
    assert dispatch_notification({"user_id": "5", "type": "task_overdue", "data": {}}) == {
        "user_id": 5,
        "type": "task_overdue",
    }


def test_process_job_routes_to_handler(monkeypatch) -> None:
    seen: list[dict[str, Any]] = []
    monkeypatch.setitem(worker.JOB_HANDLERS, "ledger.purge", lambda payload: seen.append(payload) or {"deleted": 0})

    worker.process_job(JobEnvelope(id="j1", type="ledger.purge", payload={"days": 10}, created_at="2026-03-02"))

    assert seen == [{"days": 10}]


def test_process_job_ignores_unknown_type() -> None:
    worker.process_job(JobEnvelope(id="j2", type="nope", payload={}, created_at="2026-03-02"))


def test_mark_overdue_handler_uses_worker_session(engine, db, household, clock, make_task, monkeypatch) -> None:
    notifier = RecordingNotifier()
    assignment = assign_task(
        db,
        task_id=make_task().id,
        assigned_to=household.child_id,
        assigned_by=household.parent_id,
        due_date=clock.now() - timedelta(hours=1),
        notifier=notifier,
        clock=clock,
    )
    monkeypatch.setattr(worker, "SessionLocal", sessionmaker(bind=engine, autoflush=False))
    monkeypatch.setattr(mark_overdue_job, "default_notifier", lambda: notifier)

    result = worker.JOB_HANDLERS["assignments.mark_overdue"]({})

    assert result == {"marked_overdue": 1}
    db.expire_all()
    assert db.get(TaskAssignment, assignment.id).status == AssignmentStatus.OVERDUE
    assert notifier.types()[-1] == NotificationType.TASK_OVERDUE


def test_purge_job_keeps_balances(db, household, clock) -> None:
    with UnitOfWork(db):
        apply_delta(
            db,
            member_id=household.child_id,
            amount=9,
            description="old",
            reference_type=ReferenceType.TASK,
            reference_id=1,
            actor_id=None,
            clock=clock,
        )
    clock.advance(days=40)

    assert purge_ledger_history(db, days=30, clock=clock) == {"deleted": 1, "retention_days": 30}
    assert get_history(db, household.child_id) == []
    assert get_balance(db, household.child_id) == 9


def test_enqueue_helpers_use_worker_job_types(monkeypatch) -> None:
    client = _FakeRedis()
    monkeypatch.setattr(queue_service, "redis_client", lambda: client)

    enqueue_mark_overdue()
    enqueue_ledger_purge(days=-3)
    enqueue_ledger_purge()

    jobs = [json.loads(raw) for raw in client.lists["choreledger:jobs"]]
    assert [(job["type"], job["payload"]) for job in jobs] == [
        ("assignments.mark_overdue", {}),
        ("ledger.purge", {"days": 0}),
        ("ledger.purge", {}),
    ]
    assert all(job["type"] in worker.JOB_HANDLERS for job in jobs)
    assert client.closed is True


def test_default_notifier_follows_settings(monkeypatch) -> None:
    assert isinstance(default_notifier(), QueueNotificationSink)

    monkeypatch.setattr(settings, "notifications_enabled", False)
    sink = default_notifier()

    assert isinstance(sink, NoopNotificationSink)
    sink.notify(1, NotificationType.TASK_ASSIGNED, {"assignment_id": 1})


class _NullSession:
    def close(self) -> None:
        pass


@pytest.mark.parametrize(("raw_days", "expected"), [(True, None), ("30", None), (None, None), (12, 12)])
def test_purge_handler_only_accepts_integer_days(monkeypatch, raw_days, expected) -> None:
    seen: list[int | None] = []
    monkeypatch.setattr(worker, "SessionLocal", _NullSession)
    monkeypatch.setattr(
        worker,
        "purge_ledger_history",
        lambda db, *, days=None: seen.append(days) or {"deleted": 0, "retention_days": days},
    )

    worker.JOB_HANDLERS["ledger.purge"]({"days": raw_days})

    assert seen == [expected]
