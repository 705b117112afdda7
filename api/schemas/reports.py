"""Pydantic schemas for Report endpoints."""

from datetime import datetime
from typing import Optional

from .base import CamelModel


class ReportResponse(CamelModel):
    """Schema for a report with its embedded analysis job."""

    id: str
    company_id: Optional[str] = None
    incident_date: Optional[str] = None
    description: Optional[str] = None
    reported_peril: Optional[str] = None
    photo_urls: list[str] = []
    status: str
    analysis_status: Optional[str] = None
    analysis_job_id: Optional[str] = None
    analysis_started_at: Optional[datetime] = None
    analysis_completed_at: Optional[datetime] = None
    ai_analysis: Optional[str] = None  # Serialized result, as stored
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ReportEnvelope(CamelModel):
    """GET /reports/{id} response body."""

    report: ReportResponse


class AnalyzeResponse(CamelModel):
    """Response for an accepted analysis trigger."""

    success: bool = True
    job_id: str


class DetectionItem(CamelModel):
    label: str
    confidence: float
    bbox: list[float]
    notes: str = ""
    image_reference: Optional[str] = None
    output_s3_uri: Optional[str] = None
    local_output_path: Optional[str] = None


class PerilMatchItem(CamelModel):
    reported_peril: str = ""
    match: str = "no_match"
    reason: str = ""


class CopyWarningItem(CamelModel):
    source_uri: str
    error_name: str
    error_message: str


class ImageGroup(CamelModel):
    """Detections drawn on one copied image."""

    local_output_path: str
    detections: list[DetectionItem] = []


class AnalysisResponse(CamelModel):
    """Parsed analysis of a report, grouped per analyzed image."""

    report_id: str
    analysis_status: Optional[str] = None
    analysis_job_id: Optional[str] = None
    total_images_analyzed: int = 0
    detections: list[DetectionItem] = []
    peril_match: Optional[PerilMatchItem] = None
    fraud_signals: list[str] = []
    evidence_bullets: list[str] = []
    final_assessment: str = ""
    all_local_paths: list[str] = []
    copy_warnings: list[CopyWarningItem] = []
    images: list[ImageGroup] = []
    error: Optional[str] = None
    error_type: Optional[str] = None
