"""Health check endpoints for monitoring."""

import json
from datetime import datetime, timezone

import structlog
from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.orm import Session

from api.config.settings import settings
from api.config.database import get_db

logger = structlog.get_logger()
router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    version: str
    timestamp: str
    database: str
    processor: str


def check_database(db: Session) -> tuple[str, str | None]:
    """Check database connectivity."""
    try:
        result = db.execute(text("SELECT 1"))
        result.fetchone()
        return "connected", None
    except Exception as e:
        logger.error("Database health check failed", error=str(e))
        return "disconnected", str(e)


def check_processor(path: str | None = None) -> tuple[str, str | None]:
    """Check processor health via its heartbeat file."""
    try:
        with open(path or settings.PROCESSOR_HEARTBEAT_FILE) as f:
            heartbeat = json.load(f)
    except FileNotFoundError:
        return "unknown", None
    except (OSError, ValueError) as e:
        return "unknown", str(e)

    try:
        written = datetime.fromisoformat(heartbeat["timestamp"])
    except (KeyError, TypeError, ValueError) as e:
        return "unknown", str(e)

    if written.tzinfo is None:
        written = written.replace(tzinfo=timezone.utc)
    age = (datetime.now(timezone.utc) - written).total_seconds()
    if age > settings.PROCESSOR_HEARTBEAT_MAX_AGE:
        return "stale", f"Last heartbeat {int(age)}s ago"
    return heartbeat.get("status", "running"), None


@router.get("", response_model=HealthResponse)
@router.get("/", response_model=HealthResponse)
async def health_check(
    db: Session = Depends(get_db),
) -> HealthResponse:
    """
    Basic health check endpoint.

    Returns overall status and component health.
    """
    db_status, _ = check_database(db)
    processor_status, _ = check_processor()

    overall_status = "healthy" if db_status == "connected" else "unhealthy"

    return HealthResponse(
        status=overall_status,
        version=settings.APP_VERSION,
        timestamp=datetime.now(timezone.utc).isoformat(),
        database=db_status,
        processor=processor_status,
    )


@router.get("/ready")
async def readiness_check(
    db: Session = Depends(get_db),
) -> dict:
    """
    Readiness probe.

    Returns 200 if service is ready to accept traffic.
    """
    db_status, _ = check_database(db)

    if db_status != "connected":
        return {"ready": False, "reason": "Database not connected"}

    return {"ready": True}
