"""Incident reports API.

Serves reports, starts their AI damage analyses and exposes the analysis
queue. Run with: uvicorn api.main:app --reload
"""

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.config.database import init_db
from api.config.settings import settings
from api.endpoints import api_router
from api.middleware.auth import AuthMiddleware
from api.middleware.error_handler import setup_exception_handlers
from api.middleware.logging import LoggingMiddleware, configure_logging

configure_logging()
logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(
        "Incident reports API starting",
        version=settings.APP_VERSION,
        environment=settings.ENVIRONMENT,
        auth_enabled=settings.AUTH_ENABLED,
        single_flight=settings.ANALYSIS_SINGLE_FLIGHT,
    )

    # Migrations own the schema outside DEBUG
    if settings.DEBUG:
        try:
            init_db()
        except Exception as e:
            logger.error("Could not create tables", error=str(e))

    yield

    logger.info("Incident reports API stopped")


def docs_path(path: str):
    return path if settings.DEBUG else None


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Incident reports with asynchronous AI damage analysis",
    docs_url=docs_path("/api/docs"),
    redoc_url=docs_path("/api/redoc"),
    openapi_url=docs_path("/api/openapi.json"),
    lifespan=lifespan,
)

setup_exception_handlers(app)

# Starlette runs the last added middleware first: CORS, then identity, then request logging
app.add_middleware(LoggingMiddleware)
app.add_middleware(AuthMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)

app.include_router(api_router, prefix="/api/v1")


@app.get("/health")
async def root_health():
    """Load balancer liveness check."""
    return {"status": "ok", "version": settings.APP_VERSION}


@app.get("/")
async def root():
    return {
        "name": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "docs": docs_path("/api/docs"),
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "api.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower(),
    )
