from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from choreledger.errors import LedgerError, NotFoundError, StorageFailureError

logger = logging.getLogger("choreledger.api.errors")

# Starlette's constant name for 422 differs between releases.
HTTP_422_UNPROCESSABLE = 422

_STATUS_CODE_TO_ERROR_CODE: dict[int, str] = {
    status.HTTP_400_BAD_REQUEST: "BAD_REQUEST",
    status.HTTP_401_UNAUTHORIZED: "UNAUTHORIZED",
    status.HTTP_403_FORBIDDEN: "FORBIDDEN",
    status.HTTP_404_NOT_FOUND: "NOT_FOUND",
    status.HTTP_409_CONFLICT: "CONFLICT",
    HTTP_422_UNPROCESSABLE: "VALIDATION_ERROR",
}


def _build_error(
    *,
    code: str,
    message: str,
    details: Any | None = None,
) -> dict[str, Any]:
    payload: dict[str, Any] = {"code": code, "message": message}
    if details is not None:
        payload["details"] = details
    return payload


def ledger_error_status(exc: LedgerError) -> int:
    if isinstance(exc, NotFoundError):
        return status.HTTP_404_NOT_FOUND
    if isinstance(exc, StorageFailureError):
        return status.HTTP_503_SERVICE_UNAVAILABLE
    return status.HTTP_409_CONFLICT


async def ledger_exception_handler(request: Request, exc: LedgerError) -> JSONResponse:
    status_code = ledger_error_status(exc)
    log = logger.warning if exc.transient else logger.info
    log(
        "ledger_error",
        extra={
            "request_id": getattr(request.state, "request_id", None),
            "route": request.url.path,
            "status_code": status_code,
            "result": exc.code,
        },
    )
    headers = {"Retry-After": "1"} if exc.transient else None
    return JSONResponse(
        status_code=status_code,
        content=_build_error(code=exc.code, message=exc.message, details=exc.details or None),
        headers=headers,
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    code = _STATUS_CODE_TO_ERROR_CODE.get(exc.status_code, "HTTP_ERROR")
    message = "Request failed"
    details: Any | None = None

    if isinstance(exc.detail, str):
        message = exc.detail
    elif isinstance(exc.detail, Mapping):
        raw_code = exc.detail.get("code")
        raw_message = exc.detail.get("message")
        raw_details = exc.detail.get("details")
        if isinstance(raw_code, str) and raw_code:
            code = raw_code
        if isinstance(raw_message, str) and raw_message:
            message = raw_message
        if raw_details is not None:
            details = raw_details
    elif exc.detail is not None:
        details = exc.detail

    return JSONResponse(
        status_code=exc.status_code,
        content=_build_error(code=code, message=message, details=details),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=HTTP_422_UNPROCESSABLE,
        content=_build_error(
            code="VALIDATION_ERROR",
            message="Validation failed",
            details=exc.errors(),
        ),
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(
        "unhandled_exception",
        extra={"request_id": getattr(request.state, "request_id", None), "route": request.url.path},
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=_build_error(code="INTERNAL_ERROR", message="Internal server error"),
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(LedgerError, ledger_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
