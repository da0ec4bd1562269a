from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from typing import Any

from choreledger.core.config import settings

# Attributes passed through ``extra=`` that make it into the JSON line.
STRUCTURED_FIELDS = (
    "request_id",
    "route",
    "method",
    "status_code",
    "execution_time_ms",
    "family_id",
    "member_id",
    "actor_id",
    "user_id",
    "task_id",
    "assignment_id",
    "reward_id",
    "redemption_id",
    "status",
    "delta",
    "previous_balance",
    "new_balance",
    "notification_type",
    "job_id",
    "job_type",
    "result",
)


class JsonFormatter(logging.Formatter):
    def __init__(self, service: str) -> None:
        super().__init__()
        self.service = service

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "service": self.service,
            "environment": settings.app_env,
        }
        payload.update(
            (name, value) for name in STRUCTURED_FIELDS if (value := getattr(record, name, None)) is not None
        )
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=True, default=str)


def setup_json_logging(service: str = "choreledger-api") -> None:
    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter(service))

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(settings.log_level.upper())
