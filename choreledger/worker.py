from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from choreledger.core.logging import setup_json_logging
from choreledger.db.session import SessionLocal
from choreledger.jobs.dispatch_notification import dispatch_notification
from choreledger.jobs.mark_overdue import sweep_overdue_assignments
from choreledger.jobs.purge_ledger import purge_ledger_history
from choreledger.services.queue import JobEnvelope, dequeue_job

logger = logging.getLogger("choreledger.worker")


def _handle_mark_overdue(_payload: dict[str, Any]) -> dict[str, Any]:
    db = SessionLocal()
    try:
        return sweep_overdue_assignments(db)
    finally:
        db.close()


def _handle_ledger_purge(payload: dict[str, Any]) -> dict[str, Any]:
    days: int | None = None
    raw_days = payload.get("days")
    if isinstance(raw_days, int) and not isinstance(raw_days, bool):
        days = raw_days

    db = SessionLocal()
    try:
        return purge_ledger_history(db, days=days)
    finally:
        db.close()


JOB_HANDLERS: dict[str, Callable[[dict[str, Any]], dict[str, Any]]] = {
    "assignments.mark_overdue": _handle_mark_overdue,
    "ledger.purge": _handle_ledger_purge,
    "notification.dispatch": dispatch_notification,
}


def process_job(job: JobEnvelope) -> None:
    handler = JOB_HANDLERS.get(job.type)
    if handler is None:
        logger.warning(
            "worker.job.unknown",
            extra={"job_id": job.id, "job_type": job.type},
        )
        return

    result = handler(job.payload)
    logger.info(
        "worker.job.completed",
        extra={"job_id": job.id, "job_type": job.type, "result": result},
    )


def run_worker() -> None:
    setup_json_logging("choreledger-worker")
    logger.info("worker.started")
    while True:
        job = dequeue_job(block_timeout_seconds=5)
        if job is None:
            continue

        try:
            process_job(job)
        except Exception:
            logger.exception(
                "worker.job.failed",
                extra={"job_id": job.id, "job_type": job.type},
            )


if __name__ == "__main__":
    run_worker()
