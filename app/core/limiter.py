from slowapi import Limiter
from slowapi.util import get_remote_address
from starlette.requests import Request

from app.core.context import ACTOR_ID_HEADER
from app.core.settings import settings


def rate_limit_key(request: Request) -> str:
    """Bucket back-office calls per operator, anonymous calls per client address."""
    actor_id = request.headers.get(ACTOR_ID_HEADER)
    if actor_id:
        return f"actor:{actor_id}"
    return f"ip:{get_remote_address(request)}"


limiter = Limiter(
    key_func=rate_limit_key,
    default_limits=[f"{settings.rate_limit_per_minute}/minute"],
    storage_uri=settings.rate_limit_storage_uri or settings.redis_url,
    key_prefix="loan-service",
    enabled=settings.rate_limit_enabled,
    in_memory_fallback_enabled=True,
)

__all__ = ["limiter", "rate_limit_key"]
