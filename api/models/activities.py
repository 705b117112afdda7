"""Activity model for the report audit trail."""

from sqlalchemy import Column, Integer, String, DateTime, Text, ForeignKey, Index
from sqlalchemy.orm import relationship

from api.config.database import Base
from api.models.base import utcnow


class Activity(Base):
    """
    Business audit trail.

    Records significant report events (NOT for operational logs).
    """

    __tablename__ = "activities"

    id = Column(Integer, primary_key=True, autoincrement=True)

    # What happened
    # analysis_requested, analysis_completed, analysis_failed, analysis_superseded
    action = Column(String(100), nullable=False)

    # Context
    report_id = Column(
        String(64),
        ForeignKey("reports.id", ondelete="CASCADE"),
        nullable=True,
    )
    user_id = Column(String(64), nullable=True)

    # Details (JSON)
    # {"analysis_job_id": "...", "stage": "complete"}
    details = Column(Text, nullable=True)

    # Timestamp
    created_at = Column(DateTime, default=utcnow)

    # Indexes
    __table_args__ = (
        Index("idx_activities_report", "report_id"),
        Index("idx_activities_created", "created_at"),
    )

    # Relationships
    report = relationship("Report", back_populates="activities")

    def __repr__(self) -> str:
        return f"<Activity(id={self.id}, action={self.action})>"
