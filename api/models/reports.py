"""Incident report model."""

import json
import uuid

from sqlalchemy import Column, String, DateTime, Text, Index
from sqlalchemy.orm import relationship

from api.models.base import BaseModel


def new_report_id() -> str:
    return uuid.uuid4().hex


class Report(BaseModel):
    """
    Incident report with its photos and embedded AI analysis job.

    The analysis job has no table of its own: ``analysis_status``,
    ``analysis_job_id`` and ``ai_analysis`` on the report are the job.
    """

    __tablename__ = "reports"

    id = Column(String(64), primary_key=True, default=new_report_id)
    company_id = Column(String(64), nullable=True)

    # Incident
    incident_date = Column(String(50), nullable=True)
    description = Column(Text, nullable=True)
    reported_peril = Column(String(100), nullable=True)  # hail, wind, flood, ...
    photo_urls = Column(Text, nullable=True)  # JSON list of storage keys

    # Workflow: submitted, in_review, resolved
    status = Column(String(50), default="submitted", nullable=False)

    # Analysis job: pending, analyzing, completed, failed (NULL = never requested)
    analysis_status = Column(String(50), nullable=True)
    analysis_job_id = Column(String(64), nullable=True)
    analysis_started_at = Column(DateTime, nullable=True)
    analysis_completed_at = Column(DateTime, nullable=True)
    ai_analysis = Column(Text, nullable=True)  # JSON result or {"error", "error_type"}

    __table_args__ = (
        Index("idx_reports_company", "company_id"),
        Index("idx_reports_analysis_status", "analysis_status"),
    )

    # Relationships
    jobs = relationship("Job", back_populates="report", cascade="all, delete-orphan")
    activities = relationship("Activity", back_populates="report", cascade="all, delete-orphan")

    @property
    def photo_list(self) -> list[str]:
        """Photo storage keys, in upload order."""
        if not self.photo_urls:
            return []
        try:
            urls = json.loads(self.photo_urls)
        except (json.JSONDecodeError, TypeError):
            return []
        if not isinstance(urls, list):
            return []
        return [u for u in urls if isinstance(u, str) and u]

    def __repr__(self) -> str:
        return f"<Report(id={self.id}, analysis_status={self.analysis_status})>"
