from fastapi import APIRouter

from app.api.routers import health, loans

api_router = APIRouter()
api_router.include_router(health.router)
api_router.include_router(loans.router)

__all__ = ["api_router"]
