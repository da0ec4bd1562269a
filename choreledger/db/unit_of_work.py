from __future__ import annotations

import logging
from collections.abc import Callable
from types import TracebackType

from sqlalchemy import text
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session

from choreledger.core.config import settings
from choreledger.errors import ConflictError, StorageFailureError

logger = logging.getLogger("choreledger.db.unit_of_work")

# lock_not_available, deadlock_detected, serialization_failure
_TRANSIENT_SQLSTATES = frozenset({"55P03", "40P01", "40001"})


def _sqlstate(exc: SQLAlchemyError) -> str | None:
    orig = getattr(exc, "orig", None)
    return getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)


def translate_db_error(exc: SQLAlchemyError) -> ConflictError | StorageFailureError:
    if isinstance(exc, IntegrityError):
        return ConflictError("Concurrent modification detected")
    if isinstance(exc, OperationalError):
        if _sqlstate(exc) in _TRANSIENT_SQLSTATES or "database is locked" in str(exc.orig):
            return ConflictError("Timed out waiting for a lock")
    return StorageFailureError("Transaction could not be committed")


class UnitOfWork:
    """Scopes one business operation to one database transaction.

    Leaving the block normally commits; leaving it through any exception rolls
    back, so no partially applied state is ever committed. Database errors
    come out as ``ConflictError`` (transient contention) or
    ``StorageFailureError``. Callbacks registered with ``after_commit`` run only
    once the commit succeeded; their failures are logged and never reach the
    caller.
    """

    def __init__(self, db: Session, *, lock_timeout_ms: int | None = None) -> None:
        self.db = db
        self.lock_timeout_ms = lock_timeout_ms if lock_timeout_ms is not None else settings.lock_timeout_ms
        self._after_commit: list[Callable[[], None]] = []

    def __enter__(self) -> UnitOfWork:
        if self.db.get_bind().dialect.name == "postgresql":
            self.db.execute(text(f"SET LOCAL lock_timeout = '{int(self.lock_timeout_ms)}ms'"))
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> bool:
        if exc is not None:
            self._after_commit.clear()
            self._rollback()
            if isinstance(exc, SQLAlchemyError):
                raise translate_db_error(exc) from exc
            return False

        try:
            self.db.commit()
        except SQLAlchemyError as commit_exc:
            self._after_commit.clear()
            self._rollback()
            raise translate_db_error(commit_exc) from commit_exc

        self._run_after_commit()
        return False

    def after_commit(self, callback: Callable[[], None]) -> None:
        self._after_commit.append(callback)

    def _rollback(self) -> None:
        try:
            self.db.rollback()
        except SQLAlchemyError:
            logger.exception("unit_of_work.rollback.failed")

    def _run_after_commit(self) -> None:
        callbacks, self._after_commit = self._after_commit, []
        for callback in callbacks:
            try:
                callback()
            except Exception:
                logger.exception("unit_of_work.after_commit.failed")
