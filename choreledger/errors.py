from __future__ import annotations

from typing import Any


class LedgerError(Exception):
    """Base class for every failure the workflow engine reports to its callers."""

    code = "LEDGER_ERROR"
    transient = False

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message)
        self.message = message
        self.details = details


class NotFoundError(LedgerError):
    code = "NOT_FOUND"


class InvalidTransitionError(LedgerError):
    code = "INVALID_TRANSITION"

    def __init__(self, message: str, *, current_status: str | None = None, **details: Any) -> None:
        if current_status is not None:
            details["current_status"] = current_status
        super().__init__(message, **details)
        self.current_status = current_status


class InsufficientPointsError(LedgerError):
    code = "INSUFFICIENT_POINTS"

    def __init__(self, *, balance: int, required: int, message: str = "Insufficient points") -> None:
        super().__init__(message, balance=balance, required=required)
        self.balance = balance
        self.required = required


class UnavailableError(LedgerError):
    code = "UNAVAILABLE"


class ConflictError(LedgerError):
    code = "CONFLICT"
    transient = True


class StorageFailureError(LedgerError):
    code = "STORAGE_FAILURE"
    transient = True
