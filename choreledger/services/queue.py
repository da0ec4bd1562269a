from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

from redis import Redis

from choreledger.core.config import settings


@dataclass(frozen=True)
class JobEnvelope:
    id: str
    type: str
    payload: dict[str, Any]
    created_at: str

    def to_json(self) -> str:
        return json.dumps(asdict(self), ensure_ascii=True, default=str)

    @classmethod
    def from_json(cls, raw: str) -> JobEnvelope:
        data = json.loads(raw)
        return cls(
            id=str(data["id"]),
            type=str(data["type"]),
            payload=dict(data.get("payload") or {}),
            created_at=str(data["created_at"]),
        )


def redis_client() -> Redis:
    return Redis.from_url(settings.redis_url, decode_responses=True, encoding="utf-8")


def enqueue_job(job_type: str, payload: dict[str, Any] | None = None, *, client: Redis | None = None) -> str:
    job = JobEnvelope(
        id=str(uuid4()),
        type=job_type,
        payload=payload or {},
        created_at=datetime.now(UTC).isoformat(),
    )
    owned = client is None
    active = client or redis_client()
    try:
        active.rpush(settings.queue_name, job.to_json())
    finally:
        if owned:
            active.close()
    return job.id


def dequeue_job(block_timeout_seconds: int = 5, *, client: Redis | None = None) -> JobEnvelope | None:
    owned = client is None
    active = client or redis_client()
    try:
        result = active.blpop(settings.queue_name, timeout=block_timeout_seconds)
    finally:
        if owned:
            active.close()

    if result is None:
        return None
    _queue_name, raw_job = result
    return JobEnvelope.from_json(raw_job)
