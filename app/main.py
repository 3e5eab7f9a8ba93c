from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi.middleware import SlowAPIMiddleware

from app.api import api_router
from app.core.context import REQUEST_ID_HEADER
from app.core.errors import register_exception_handlers
from app.core.health import APP_VERSION
from app.core.limiter import limiter
from app.core.logging import configure_logging
from app.core.settings import settings
from app.events import register_event_handlers
from app.middlewares.request_context import RequestContextMiddleware

OPENAPI_TAGS = [
    {"name": "loans", "description": "Loan lifecycle, payments and portfolio queries"},
    {"name": "health", "description": "Liveness and readiness probes"},
]


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(
        title="Loan Service",
        description="Credit-union loan lifecycle API",
        version=APP_VERSION,
        openapi_tags=OPENAPI_TAGS,
    )
    register_exception_handlers(app)
    app.state.limiter = limiter
    app.add_middleware(SlowAPIMiddleware)
    app.add_middleware(RequestContextMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=[REQUEST_ID_HEADER],
    )
    app.include_router(api_router, prefix="/api")
    register_event_handlers(app)
    return app


app = create_app()
