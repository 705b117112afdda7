"""Base processor class for all job processors."""

import json
from abc import ABC, abstractmethod
from typing import Optional

import structlog
from sqlalchemy import text
from sqlalchemy.orm import Session

from processor.database import utcnow
from processor.queue_manager import QueueManager


class BaseProcessor(ABC):
    """Abstract base class for job processors."""

    # Override in subclasses
    job_type: str = "base"

    def __init__(self, db: Session, queue: QueueManager):
        """Initialize processor with database session and queue manager.

        Args:
            db: SQLAlchemy database session
            queue: Queue manager for enqueueing follow-up jobs
        """
        self.db = db
        self.queue = queue
        self.logger = structlog.get_logger().bind(processor=self.job_type)

    @abstractmethod
    async def process(
        self,
        report_id: Optional[str] = None,
        payload: Optional[dict] = None,
    ) -> None:
        """Process a job.

        Args:
            report_id: ID of the report to process
            payload: Additional job data

        Raises:
            Exception: If processing fails (will be caught by worker for retry)
        """
        pass

    def log_activity(
        self,
        action: str,
        report_id: Optional[str] = None,
        details: Optional[dict] = None,
    ) -> None:
        """Log an activity to the activities table.

        Args:
            action: Action type (e.g., 'analysis_completed', 'analysis_superseded')
            report_id: Associated report ID
            details: Additional details as JSON
        """
        query = text("""
            INSERT INTO activities (action, report_id, details, created_at)
            VALUES (:action, :report_id, :details, :now)
        """)

        self.db.execute(
            query,
            {
                "action": action,
                "report_id": report_id,
                "details": json.dumps(details) if details else None,
                "now": utcnow(),
            },
        )
        self.db.commit()
