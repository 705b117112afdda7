"""Job model for the processing queue."""

from sqlalchemy import Column, Integer, String, DateTime, Text, ForeignKey, Index
from sqlalchemy.orm import relationship

from api.config.database import Base
from api.models.base import utcnow


class Job(Base):
    """
    Queue for processing jobs.

    Processor workers poll this table to claim and execute jobs.
    """

    __tablename__ = "jobs"

    id = Column(Integer, primary_key=True, autoincrement=True)

    # Job info
    report_id = Column(
        String(64),
        ForeignKey("reports.id", ondelete="CASCADE"),
        nullable=True,
    )
    job_type = Column(String(50), nullable=False)  # analyze_report

    # Queue status: pending, running, completed, failed, dead
    status = Column(String(50), default="pending")

    priority = Column(Integer, default=0)  # Higher = more urgent
    attempts = Column(Integer, default=0)
    max_attempts = Column(Integer, default=3)

    # Job payload (JSON), e.g. {"analysis_job_id": "..."}
    payload = Column(Text, nullable=True)

    # Error tracking
    last_error = Column(Text, nullable=True)

    # Timing
    created_at = Column(DateTime, default=utcnow)
    started_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    scheduled_for = Column(DateTime, default=utcnow)  # For delayed/retry jobs

    # Indexes for efficient queue operations
    __table_args__ = (
        Index("idx_jobs_pending", "status", "scheduled_for", "priority"),
        Index("idx_jobs_report", "report_id"),
    )

    # Relationships
    report = relationship("Report", back_populates="jobs")

    def __repr__(self) -> str:
        return f"<Job(id={self.id}, type={self.job_type}, status={self.status})>"
