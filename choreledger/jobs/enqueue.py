from __future__ import annotations

from choreledger.services.queue import enqueue_job


def enqueue_mark_overdue() -> str:
    return enqueue_job("assignments.mark_overdue", payload={})


def enqueue_ledger_purge(days: int | None = None) -> str:
    payload: dict[str, int] = {}
    if days is not None:
        payload["days"] = max(0, int(days))
    return enqueue_job("ledger.purge", payload=payload)
