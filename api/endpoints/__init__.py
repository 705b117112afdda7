"""API endpoints for incident reports."""

from fastapi import APIRouter

from .health import router as health_router
from .reports import router as reports_router
from .queue import router as queue_router

# Create main API router
api_router = APIRouter()

api_router.include_router(health_router, prefix="/health", tags=["Health"])
api_router.include_router(reports_router, prefix="/reports", tags=["Reports"])
api_router.include_router(queue_router, prefix="/queue", tags=["Queue"])

__all__ = ["api_router"]
