"""Queue manager for reliable job execution."""

import json
from datetime import timedelta
from typing import Optional

import structlog
from sqlalchemy import text
from sqlalchemy.orm import Session

from processor.config import settings
from processor.database import utcnow

logger = structlog.get_logger()


class QueueManager:
    """Manages the job queue stored in the jobs table.

    Claiming is a select followed by a conditional update on the pending
    status, so two workers can never both claim the same row.
    """

    def __init__(self, db: Session):
        self.db = db
        self.retry_base_delay = settings.QUEUE_RETRY_BASE_DELAY

    def claim_next(self) -> Optional[dict]:
        """Claim the next pending job.

        Returns:
            Job data dict or None if no jobs available
        """
        now = utcnow()
        select_query = text("""
            SELECT id FROM jobs
            WHERE status = 'pending'
              AND scheduled_for <= :now
            ORDER BY priority DESC, created_at ASC, id ASC
            LIMIT 5
        """)
        candidates = [row.id for row in self.db.execute(select_query, {"now": now})]

        claim_query = text("""
            UPDATE jobs
            SET status = 'running',
                started_at = :now,
                attempts = attempts + 1
            WHERE id = :job_id AND status = 'pending'
        """)

        job_id = None
        for candidate in candidates:
            result = self.db.execute(claim_query, {"job_id": candidate, "now": now})
            if result.rowcount:
                job_id = candidate
                break
        self.db.commit()

        if job_id is None:
            return None

        fetch_query = text("""
            SELECT id, job_type, report_id, priority, payload, attempts,
                   max_attempts, created_at, scheduled_for
            FROM jobs
            WHERE id = :job_id
        """)
        row = self.db.execute(fetch_query, {"job_id": job_id}).first()
        if not row:
            return None

        job = {
            "id": row.id,
            "job_type": row.job_type,
            "report_id": row.report_id,
            "priority": row.priority,
            "payload": json.loads(row.payload) if row.payload else None,
            "attempts": row.attempts,
            "max_attempts": row.max_attempts,
            "created_at": row.created_at,
            "scheduled_for": row.scheduled_for,
        }

        logger.info(
            "Job claimed",
            job_id=job["id"],
            job_type=job["job_type"],
            attempt=job["attempts"],
        )
        return job

    def complete(self, job_id: int) -> None:
        """Mark a job as completed."""
        query = text("""
            UPDATE jobs
            SET status = 'completed', completed_at = :now
            WHERE id = :job_id
        """)
        self.db.execute(query, {"job_id": job_id, "now": utcnow()})
        self.db.commit()

        logger.info("Job completed", job_id=job_id)

    def fail(self, job_id: int, error: str) -> None:
        """Mark a job as failed, schedule retry or move to dead letter.

        Uses exponential backoff: base_delay * 2^(attempts-1)
        """
        query = text("SELECT attempts, max_attempts FROM jobs WHERE id = :job_id")
        row = self.db.execute(query, {"job_id": job_id}).first()

        if not row:
            logger.error("Job not found for failure", job_id=job_id)
            return

        attempts = row.attempts or 0
        max_attempts = row.max_attempts or 3
        now = utcnow()

        if attempts >= max_attempts:
            query = text("""
                UPDATE jobs
                SET status = 'dead',
                    last_error = :error,
                    completed_at = :now
                WHERE id = :job_id
            """)
            self.db.execute(query, {"job_id": job_id, "error": error, "now": now})
            logger.warning("Job moved to dead letter", job_id=job_id, error=error)
        else:
            delay_seconds = self.retry_base_delay * (2 ** max(attempts - 1, 0))
            next_attempt = now + timedelta(seconds=delay_seconds)

            query = text("""
                UPDATE jobs
                SET status = 'pending',
                    last_error = :error,
                    scheduled_for = :next_attempt,
                    started_at = NULL
                WHERE id = :job_id
            """)
            self.db.execute(
                query,
                {"job_id": job_id, "error": error, "next_attempt": next_attempt},
            )
            logger.info(
                "Job scheduled for retry",
                job_id=job_id,
                attempt=attempts,
                next_attempt=next_attempt.isoformat(),
            )

        self.db.commit()

    def get_status(self) -> dict:
        """Get queue status counts."""
        query = text("""
            SELECT status, COUNT(*) AS count
            FROM jobs
            GROUP BY status
        """)
        result = self.db.execute(query)

        status = {"pending": 0, "running": 0, "completed": 0, "failed": 0, "dead": 0}
        for row in result:
            status[row.status] = row.count

        return status

    def recover_stuck_jobs(self, stuck_threshold_minutes: int = 30) -> int:
        """Reset jobs stuck in 'running' status back to 'pending'.

        Jobs can get stuck if a worker crashes mid-processing.

        Returns:
            Number of jobs recovered
        """
        cutoff = utcnow() - timedelta(minutes=stuck_threshold_minutes)

        query = text("""
            UPDATE jobs
            SET status = 'pending',
                started_at = NULL,
                last_error = 'Recovered from stuck state (worker likely crashed)'
            WHERE status = 'running'
              AND started_at < :cutoff
        """)
        result = self.db.execute(query, {"cutoff": cutoff})
        self.db.commit()

        count = result.rowcount
        if count > 0:
            logger.warning("Recovered stuck jobs", count=count, threshold_minutes=stuck_threshold_minutes)
        return count

    def recover_stale_analyses(self, stale_threshold_minutes: int = 15) -> int:
        """Fail reports left in 'analyzing' with no live job behind them.

        This happens when a job exhausted its retries or was removed from the
        queue; without it a poller would watch the report forever.

        Returns:
            Number of reports marked failed
        """
        now = utcnow()
        cutoff = now - timedelta(minutes=stale_threshold_minutes)
        error = json.dumps({
            "error": f"Analysis did not finish within {stale_threshold_minutes} minutes",
            "error_type": "AnalysisTimedOut",
        })

        query = text("""
            UPDATE reports
            SET analysis_status = 'failed',
                ai_analysis = :error,
                analysis_completed_at = :now,
                updated_at = :now
            WHERE analysis_status = 'analyzing'
              AND analysis_started_at < :cutoff
              AND NOT EXISTS (
                  SELECT 1 FROM jobs j
                  WHERE j.report_id = reports.id
                    AND j.job_type = 'analyze_report'
                    AND j.status IN ('pending', 'running')
              )
        """)
        result = self.db.execute(query, {"error": error, "now": now, "cutoff": cutoff})
        self.db.commit()

        count = result.rowcount
        if count > 0:
            logger.warning("Failed stale analyses", count=count, threshold_minutes=stale_threshold_minutes)
        return count
