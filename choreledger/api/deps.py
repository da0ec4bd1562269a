from __future__ import annotations

from collections.abc import Callable, Iterator
from typing import Annotated

from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from choreledger.core.clock import Clock, system_clock
from choreledger.db.session import SessionLocal
from choreledger.models import FamilyMember, MemberRole
from choreledger.services.notifications import NotificationSink, default_notifier


def get_db() -> Iterator[Session]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


DBSession = Annotated[Session, Depends(get_db)]


def get_clock() -> Clock:
    return system_clock


ClockDep = Annotated[Clock, Depends(get_clock)]


def get_notifier() -> NotificationSink:
    return default_notifier()


Notifier = Annotated[NotificationSink, Depends(get_notifier)]


def get_current_member(
    db: DBSession,
    request: Request,
    x_family_id: Annotated[int | None, Header(alias="X-Family-Id")] = None,
    x_member_id: Annotated[int | None, Header(alias="X-Member-Id")] = None,
) -> FamilyMember:
    # Both headers are set by the auth gateway after it has verified the caller.
    if x_family_id is None or x_member_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="X-Family-Id and X-Member-Id headers are required",
        )

    member = db.scalar(
        select(FamilyMember).where(
            FamilyMember.id == x_member_id,
            FamilyMember.family_id == x_family_id,
            FamilyMember.is_active.is_(True),
        ),
    )
    if member is None:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Caller is not an active member of this family",
        )
    request.state.family_id = member.family_id
    request.state.member_id = member.id
    return member


CurrentMember = Annotated[FamilyMember, Depends(get_current_member)]


def require_role(roles: list[str]) -> Callable[[FamilyMember], FamilyMember]:
    allowed = set(roles)

    def dependency(
        member: Annotated[FamilyMember, Depends(get_current_member)],
    ) -> FamilyMember:
        if member.role.value not in allowed:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient role",
            )
        return member

    return dependency


ParentMember = Annotated[FamilyMember, Depends(require_role([MemberRole.PARENT.value]))]
