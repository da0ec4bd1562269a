from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol

from sqlalchemy import select
from sqlalchemy.orm import Session

from choreledger.core.config import settings
from choreledger.db.unit_of_work import UnitOfWork
from choreledger.models import FamilyMember, MemberRole
from choreledger.services.queue import enqueue_job

logger = logging.getLogger("choreledger.notifications")

DISPATCH_JOB_TYPE = "notification.dispatch"


class NotificationType(str, Enum):
    TASK_ASSIGNED = "task_assigned"
    TASK_SUBMITTED = "task_submitted"
    TASK_APPROVED = "task_approved"
    TASK_REJECTED = "task_rejected"
    TASK_OVERDUE = "task_overdue"
    REWARD_REQUESTED = "reward_requested"
    REWARD_APPROVED = "reward_approved"
    REWARD_DENIED = "reward_denied"


class NotificationSink(Protocol):
    def notify(self, user_id: int, type: NotificationType, payload: dict[str, Any]) -> None: ...


class QueueNotificationSink:
    """Hands notifications to the worker through the Redis job queue."""

    def notify(self, user_id: int, type: NotificationType, payload: dict[str, Any]) -> None:
        enqueue_job(
            DISPATCH_JOB_TYPE,
            payload={"user_id": user_id, "type": NotificationType(type).value, "data": payload},
        )


@dataclass(slots=True)
class NoopNotificationSink:
    reason: str | None = None

    def notify(self, user_id: int, type: NotificationType, payload: dict[str, Any]) -> None:
        _ = (user_id, type, payload)


def default_notifier() -> NotificationSink:
    if not settings.notifications_enabled:
        return NoopNotificationSink(reason="notifications disabled")
    return QueueNotificationSink()


def user_id_for_member(db: Session, member_id: int | None) -> int | None:
    if member_id is None:
        return None
    return db.scalar(select(FamilyMember.user_id).where(FamilyMember.id == member_id))


def parent_user_ids(db: Session, family_id: int) -> list[int]:
    return list(
        db.scalars(
            select(FamilyMember.user_id)
            .where(
                FamilyMember.family_id == family_id,
                FamilyMember.role == MemberRole.PARENT,
                FamilyMember.is_active.is_(True),
            )
            .order_by(FamilyMember.id.asc()),
        ).all(),
    )


def send_safely(
    notifier: NotificationSink,
    user_id: int,
    type: NotificationType,
    payload: dict[str, Any],
) -> None:
    try:
        notifier.notify(user_id, type, payload)
    except Exception:
        logger.exception(
            "notification.failed",
            extra={"user_id": user_id, "notification_type": type.value},
        )


def notify_after_commit(
    uow: UnitOfWork,
    notifier: NotificationSink,
    user_ids: list[int | None],
    type: NotificationType,
    payload: dict[str, Any],
) -> None:
    """Queue a notification to each user once ``uow`` has committed."""
    recipients = [user_id for user_id in user_ids if user_id is not None]
    if not recipients:
        return
    snapshot = dict(payload)

    def _dispatch() -> None:
        for user_id in recipients:
            send_safely(notifier, user_id, type, snapshot)

    uow.after_commit(_dispatch)
