from __future__ import annotations

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError, ProgrammingError

from choreledger.db.unit_of_work import UnitOfWork, translate_db_error
from choreledger.errors import ConflictError, StorageFailureError
from choreledger.models import Family


class _PgError(Exception):
    def __init__(self, message: str, sqlstate: str) -> None:
        super().__init__(message)
        self.sqlstate = sqlstate


def test_commit_on_clean_exit_then_callbacks_run(db) -> None:
    calls: list[str] = []
    with UnitOfWork(db) as uow:
        db.add(Family(name="Lee"))
        uow.after_commit(lambda: calls.append("sent"))
        assert calls == []

    assert calls == ["sent"]
    assert db.query(Family).count() == 1


def test_rollback_on_exception_discards_callbacks(db) -> None:
    calls: list[str] = []
    with pytest.raises(RuntimeError):
        with UnitOfWork(db) as uow:
            db.add(Family(name="Lee"))
            db.flush()
            uow.after_commit(lambda: calls.append("sent"))
            raise RuntimeError("boom")

    assert calls == []
    assert db.query(Family).count() == 0


def test_failing_callback_does_not_reach_caller(db) -> None:
    calls: list[str] = []

    def _explode() -> None:
        raise RuntimeError("mail server down")

    with UnitOfWork(db) as uow:
        db.add(Family(name="Lee"))
        uow.after_commit(_explode)
        uow.after_commit(lambda: calls.append("second"))

    assert calls == ["second"]
    assert db.query(Family).count() == 1


def test_database_errors_inside_block_are_translated(db) -> None:
    with pytest.raises(StorageFailureError):
        with UnitOfWork(db):
            raise ProgrammingError("SELECT nope", {}, Exception("syntax error"))


def test_translate_integrity_error_is_conflict() -> None:
    error = translate_db_error(IntegrityError("INSERT", {}, Exception("UNIQUE constraint failed")))
    assert isinstance(error, ConflictError)
    assert error.transient is True


def test_translate_sqlite_busy_is_conflict() -> None:
    error = translate_db_error(OperationalError("UPDATE", {}, Exception("database is locked")))
    assert isinstance(error, ConflictError)


def test_translate_postgres_lock_timeout_is_conflict() -> None:
    error = translate_db_error(OperationalError("UPDATE", {}, _PgError("canceling statement", "55P03")))
    assert isinstance(error, ConflictError)


def test_translate_other_operational_error_is_storage_failure() -> None:
    error = translate_db_error(OperationalError("UPDATE", {}, Exception("server closed the connection")))
    assert isinstance(error, StorageFailureError)
    assert error.code == "STORAGE_FAILURE"
