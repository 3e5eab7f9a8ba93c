import logging

from fastapi import FastAPI

from app.core.settings import settings
from app.db.init_db import init_db
from app.db.session import engine
from app.utils.redis_client import close_redis_client

logger = logging.getLogger(__name__)


def register_event_handlers(app: FastAPI) -> None:
    @app.on_event("startup")
    async def on_startup() -> None:
        logger.info(
            "Loan service startup environment=%s seed_sample_data=%s",
            settings.environment,
            settings.seed_sample_data,
        )
        if settings.seed_sample_data:
            await init_db()

    @app.on_event("shutdown")
    async def on_shutdown() -> None:
        await close_redis_client()
        await engine.dispose()
        logger.info("Loan service shutdown")
