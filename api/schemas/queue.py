"""Pydantic schemas for Queue endpoints."""

from datetime import datetime
from typing import Optional

from .base import CamelModel


class QueueItem(CamelModel):
    """Schema for queue item."""

    id: int
    job_type: str
    report_id: Optional[str] = None
    status: str
    priority: int
    attempts: int
    max_attempts: int
    last_error: Optional[str] = None
    created_at: datetime
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    scheduled_for: datetime


class QueueStatusResponse(CamelModel):
    """Schema for queue status response."""

    pending: int
    running: int
    completed: int
    failed: int
    dead: int
    items: list[QueueItem] = []


class QueueRetryResponse(CamelModel):
    """Response for a retry request."""

    id: int
    status: str
    message: str
