"""Pydantic schemas for report activity endpoints."""

from datetime import datetime
from typing import Optional, Any

from .base import CamelModel


class ActivityResponse(CamelModel):
    """Schema for one audit trail entry."""

    id: int
    action: str
    report_id: Optional[str] = None
    user_id: Optional[str] = None
    details: Optional[dict[str, Any]] = None
    created_at: datetime
