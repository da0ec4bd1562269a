from __future__ import annotations

import logging
from typing import Any

from choreledger.services.notifications import NotificationType

logger = logging.getLogger("choreledger.jobs.notifications")


def dispatch_notification(payload: dict[str, Any]) -> dict[str, Any]:
    # Email and push delivery live outside this service; this is the hand-off point.
    user_id = int(payload["user_id"])
    notification_type = NotificationType(str(payload["type"]))
    logger.info(
        "notification.dispatched",
        extra={"user_id": user_id, "notification_type": notification_type.value},
    )
    return {"user_id": user_id, "type": notification_type.value}
