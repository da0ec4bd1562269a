from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from redis.asyncio import Redis
from redis.exceptions import RedisError

from choreledger import models  # noqa: F401
from choreledger.api.routes.assignments import router as assignments_router
from choreledger.api.routes.catalog import router as catalog_router
from choreledger.api.routes.members import router as members_router
from choreledger.api.routes.redemptions import router as redemptions_router
from choreledger.core.config import settings
from choreledger.core.exceptions import register_exception_handlers
from choreledger.core.logging import setup_json_logging
from choreledger.core.request_logging import RequestLoggingMiddleware

setup_json_logging()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    redis = Redis.from_url(settings.redis_url, encoding="utf-8", decode_responses=True)
    app.state.redis = redis
    try:
        yield
    finally:
        await redis.aclose()


app = FastAPI(title="choreledger api", lifespan=lifespan)
register_exception_handlers(app)
allowed_origins = [item.strip() for item in settings.cors_allowed_origins.split(",") if item.strip()]
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "OPTIONS"],
    allow_headers=["Content-Type", "X-Family-Id", "X-Member-Id", "X-Request-Id"],
)
app.include_router(assignments_router)
app.include_router(redemptions_router)
app.include_router(members_router)
app.include_router(catalog_router)


@app.get("/health")
async def health(request: Request) -> dict[str, str]:
    queue = "ok"
    redis: Redis | None = getattr(request.app.state, "redis", None)
    try:
        if redis is None:
            queue = "unavailable"
        else:
            await redis.ping()
    except RedisError:
        queue = "unavailable"
    return {"status": "ok", "env": settings.app_env, "queue": queue}
