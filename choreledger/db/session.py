from __future__ import annotations

from typing import Any

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import sessionmaker

from choreledger.core.config import settings


def build_engine(database_url: str, *, lock_timeout_ms: int = settings.lock_timeout_ms) -> Engine:
    connect_args: dict[str, Any] = {}
    if database_url.startswith("sqlite"):
        # SQLite has no row locks; writers queue on the busy timeout instead.
        connect_args = {"check_same_thread": False, "timeout": lock_timeout_ms / 1000}
    return create_engine(database_url, pool_pre_ping=True, connect_args=connect_args)


engine = build_engine(settings.database_url)
SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=True)
