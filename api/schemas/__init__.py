"""Pydantic schemas for API request/response validation.

All schemas use CamelCase for JSON field names (via alias_generator).
"""

from .base import CamelModel, ErrorResponse
from .reports import (
    ReportResponse,
    ReportEnvelope,
    AnalyzeResponse,
    AnalysisResponse,
    DetectionItem,
    ImageGroup,
)
from .queue import QueueItem, QueueStatusResponse, QueueRetryResponse
from .activities import ActivityResponse

__all__ = [
    "CamelModel",
    "ErrorResponse",
    "ReportResponse",
    "ReportEnvelope",
    "AnalyzeResponse",
    "AnalysisResponse",
    "DetectionItem",
    "ImageGroup",
    "QueueItem",
    "QueueStatusResponse",
    "QueueRetryResponse",
    "ActivityResponse",
]
