"""Read-through cache for single-loan lookups, keyed by loan id."""

from __future__ import annotations

import logging

from app.core.settings import settings
from app.schemas.loan import LoanDTO
from app.utils.redis_client import get_redis_client, redis_key

logger = logging.getLogger(__name__)


def cache_key(loan_id: int) -> str:
    return redis_key("loan", loan_id)


async def get_cached_loan(loan_id: int) -> LoanDTO | None:
    try:
        redis = get_redis_client()
        cached = await redis.get(cache_key(loan_id))
        if cached:
            return LoanDTO.model_validate_json(cached)
    except Exception as exc:
        logger.warning("Loan cache read failed loan_id=%s error=%s", loan_id, exc)
        return None
    return None


async def put_cached_loan(loan: LoanDTO) -> None:
    try:
        redis = get_redis_client()
        await redis.setex(
            cache_key(loan.id),
            settings.loan_cache_ttl_seconds,
            loan.model_dump_json(),
        )
    except Exception as exc:
        logger.warning("Loan cache write failed loan_id=%s error=%s", loan.id, exc)


async def invalidate_loan(loan_id: int) -> None:
    try:
        redis = get_redis_client()
        await redis.delete(cache_key(loan_id))
    except Exception as exc:
        logger.warning("Loan cache invalidation failed loan_id=%s error=%s", loan_id, exc)
