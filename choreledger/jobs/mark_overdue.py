from __future__ import annotations

from sqlalchemy.orm import Session

from choreledger.core.clock import Clock, system_clock
from choreledger.services.assignments import mark_overdue_assignments
from choreledger.services.notifications import NotificationSink, default_notifier


def sweep_overdue_assignments(
    db: Session,
    *,
    clock: Clock = system_clock,
    notifier: NotificationSink | None = None,
) -> dict[str, int]:
    moved = mark_overdue_assignments(db, clock=clock, notifier=notifier or default_notifier())
    return {"marked_overdue": len(moved)}
