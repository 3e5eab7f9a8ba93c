from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable

from sqlalchemy import text

from app.core.settings import settings
from app.db.session import engine
from app.utils.redis_client import get_redis_client

logger = logging.getLogger(__name__)

SERVICE_NAME = "loan-service"
APP_VERSION = "1.0.0"


async def _check_db() -> dict[str, Any]:
    # Touches the loans table so an unmigrated database reports as not ready.
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1 FROM loans LIMIT 1"))
    except Exception as exc:
        logger.warning("Readiness check failed component=database error=%s", exc)
        return {"status": "error", "error": str(exc)}
    return {"status": "ok"}


async def _check_redis() -> dict[str, Any]:
    try:
        await get_redis_client().ping()
    except Exception as exc:
        logger.warning("Readiness check failed component=redis error=%s", exc)
        return {"status": "error", "error": str(exc)}
    return {"status": "ok"}


async def _timed(check: Callable[[], Awaitable[dict[str, Any]]]) -> dict[str, Any]:
    started = time.perf_counter()
    result = dict(await check())
    result["latency_ms"] = round((time.perf_counter() - started) * 1000, 1)
    return result


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


async def live_payload() -> dict[str, str]:
    return {"status": "ok", "service": SERVICE_NAME, "timestamp": _now()}


async def ready_payload() -> dict[str, Any]:
    """Database and Redis reachability; ``ready`` is false if either fails."""
    checks = {
        "database": await _timed(_check_db),
        "redis": await _timed(_check_redis),
    }
    ready = all(check["status"] == "ok" for check in checks.values())
    return {
        "status": "ok" if ready else "degraded",
        "ready": ready,
        "service": SERVICE_NAME,
        "environment": settings.environment,
        "version": APP_VERSION,
        "timestamp": _now(),
        "checks": checks,
    }
