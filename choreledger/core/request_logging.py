from __future__ import annotations

import logging
from time import perf_counter
from uuid import uuid4

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

logger = logging.getLogger("choreledger.api.request")

REQUEST_ID_HEADER = "X-Request-Id"


def _route_template(request: Request) -> str:
    # Log "/assignments/{assignment_id}/review" rather than the concrete path.
    route = request.scope.get("route")
    path = getattr(route, "path", None)
    return path if isinstance(path, str) else request.url.path


def _log_request(request: Request, *, status_code: int, started: float, failed: bool = False) -> None:
    fields = {
        "request_id": request.state.request_id,
        "family_id": getattr(request.state, "family_id", None),
        "member_id": getattr(request.state, "member_id", None),
        "route": _route_template(request),
        "method": request.method,
        "status_code": status_code,
        "execution_time_ms": round((perf_counter() - started) * 1000, 2),
    }
    if failed:
        logger.exception("request.failed", extra=fields)
    elif status_code >= 500:
        logger.warning("request.completed", extra=fields)
    else:
        logger.info("request.completed", extra=fields)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """One log line per request, tagged with the caller's family and member once identified."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        started = perf_counter()
        request.state.request_id = request.headers.get(REQUEST_ID_HEADER) or uuid4().hex

        try:
            response = await call_next(request)
        except Exception:
            _log_request(request, status_code=500, started=started, failed=True)
            raise

        _log_request(request, status_code=response.status_code, started=started)
        response.headers[REQUEST_ID_HEADER] = request.state.request_id
        return response
