"""Worker that executes jobs from the queue."""

import asyncio
import time
from typing import Dict, Type, Optional, Callable

import structlog
from sqlalchemy.orm import Session

from processor.config import settings
from processor.database import SessionLocal
from processor.queue_manager import QueueManager
from processor.processors.base import BaseProcessor

logger = structlog.get_logger()


class Worker:
    """Executes jobs from the queue with concurrency control.

    Uses a session factory to create fresh sessions per job to avoid
    concurrency issues with shared sessions.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session] = SessionLocal,
        processors: Optional[Dict[str, Type[BaseProcessor]]] = None,
        processor_kwargs: Optional[dict] = None,
    ):
        """Initialize worker.

        Args:
            session_factory: Factory function that creates new DB sessions
            processors: Map of job_type -> processor class
            processor_kwargs: Extra keyword arguments passed to every processor
        """
        self.session_factory = session_factory
        self.processors = processors or {}
        self.processor_kwargs = processor_kwargs or {}
        self.running = False
        self.active_jobs: Dict[int, asyncio.Task] = {}
        self.max_concurrency = settings.QUEUE_MAX_CONCURRENCY
        self.poll_interval = settings.QUEUE_POLL_INTERVAL
        self._last_maintenance = 0.0
        self._maintenance_interval = 60  # Run maintenance every 60 seconds

    def register_processor(self, processor_class: Type[BaseProcessor]) -> None:
        """Register a processor for a job type.

        Args:
            processor_class: Processor class with job_type attribute
        """
        self.processors[processor_class.job_type] = processor_class
        logger.info("Processor registered", job_type=processor_class.job_type)

    def _create_processor(self, job_type: str, db: Session) -> BaseProcessor:
        """Create a processor instance with its own session.

        Raises:
            ValueError: If no processor registered for job type
        """
        if job_type not in self.processors:
            raise ValueError(f"No processor registered for job type: {job_type}")

        processor_class = self.processors[job_type]
        queue = QueueManager(db)
        return processor_class(db, queue, **self.processor_kwargs)

    async def process_job(self, job: dict) -> None:
        """Process a single job with its own database session.

        Args:
            job: Job data from queue
        """
        job_id = job["id"]
        job_type = job["job_type"]

        db = self.session_factory()
        try:
            processor = self._create_processor(job_type, db)

            logger.info(
                "Processing job",
                job_id=job_id,
                job_type=job_type,
                report_id=job.get("report_id"),
            )

            await processor.process(
                report_id=job.get("report_id"),
                payload=job.get("payload"),
            )

            queue = QueueManager(db)
            queue.complete(job_id)

        except Exception as e:
            logger.error(
                "Job failed",
                job_id=job_id,
                job_type=job_type,
                error=str(e),
                exc_info=True,
            )
            db.rollback()
            queue = QueueManager(db)
            queue.fail(job_id, str(e))

        finally:
            db.close()
            if job_id in self.active_jobs:
                del self.active_jobs[job_id]

    async def run_once(self) -> bool:
        """Claim and start at most one job.

        Returns:
            True if a job was claimed
        """
        db = self.session_factory()
        try:
            job = QueueManager(db).claim_next()
        finally:
            db.close()

        if not job:
            return False

        task = asyncio.create_task(self.process_job(job))
        self.active_jobs[job["id"]] = task
        return True

    async def run(self) -> None:
        """Main worker loop."""
        self.running = True

        logger.info(
            "Worker started",
            max_concurrency=self.max_concurrency,
            registered_processors=list(self.processors.keys()),
        )

        while self.running:
            # Clean up completed tasks
            completed = [
                job_id
                for job_id, task in self.active_jobs.items()
                if task.done()
            ]
            for job_id in completed:
                del self.active_jobs[job_id]

            now = time.time()
            if now - self._last_maintenance > self._maintenance_interval:
                self._last_maintenance = now
                await self._run_maintenance()

            if len(self.active_jobs) >= self.max_concurrency:
                await asyncio.sleep(1)
                continue

            if not await self.run_once():
                await asyncio.sleep(self.poll_interval)

        logger.info("Worker stopped")

    async def _run_maintenance(self) -> None:
        """Run periodic maintenance tasks."""
        db = self.session_factory()
        try:
            queue = QueueManager(db)

            stuck_jobs = queue.recover_stuck_jobs(
                stuck_threshold_minutes=settings.QUEUE_STUCK_JOB_MINUTES,
            )
            stale_analyses = queue.recover_stale_analyses(
                stale_threshold_minutes=settings.ANALYSIS_STALE_MINUTES,
            )

            if stuck_jobs > 0 or stale_analyses > 0:
                logger.info(
                    "Maintenance completed",
                    stuck_jobs=stuck_jobs,
                    stale_analyses=stale_analyses,
                )
        except Exception as e:
            logger.error("Maintenance task failed", error=str(e))
        finally:
            db.close()

    async def stop(self) -> None:
        """Stop the worker gracefully."""
        self.running = False

        if self.active_jobs:
            logger.info("Waiting for active jobs to complete", count=len(self.active_jobs))
            await asyncio.gather(*self.active_jobs.values(), return_exceptions=True)

        logger.info("Worker shutdown complete")

    def get_status(self) -> dict:
        """Get worker status."""
        db = self.session_factory()
        try:
            queue = QueueManager(db)
            queue_status = queue.get_status()
        finally:
            db.close()

        return {
            "running": self.running,
            "active_jobs": len(self.active_jobs),
            "max_concurrency": self.max_concurrency,
            "registered_processors": list(self.processors.keys()),
            "queue_status": queue_status,
        }
