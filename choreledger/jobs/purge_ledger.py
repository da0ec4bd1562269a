from __future__ import annotations

from sqlalchemy.orm import Session

from choreledger.core.clock import Clock, system_clock
from choreledger.core.config import settings
from choreledger.db.unit_of_work import UnitOfWork
from choreledger.services.ledger import purge_entries_older_than


def purge_ledger_history(db: Session, *, days: int | None = None, clock: Clock = system_clock) -> dict[str, int]:
    """Drop ledger entries past the retention window. Balances stay as they are."""
    retention_days = settings.ledger_retention_days if days is None else days
    with UnitOfWork(db):
        deleted = purge_entries_older_than(db, days=retention_days, now=clock.now())
    return {"deleted": deleted, "retention_days": retention_days}
