"""Queue management endpoints."""

from typing import Optional

import structlog
from fastapi import APIRouter, Depends, Query
from sqlalchemy import func
from sqlalchemy.orm import Session

from api.config.database import get_db
from api.middleware.error_handler import APIError, NotFoundError
from api.models import Job
from api.models.base import utcnow
from api.schemas.queue import QueueItem, QueueStatusResponse, QueueRetryResponse
from api.services.analysis_trigger import ANALYZE_JOB_TYPE, reopen_analysis
from api.services.rbac import require_admin

logger = structlog.get_logger()
router = APIRouter()


@router.get("", response_model=QueueStatusResponse)
async def get_queue_status(
    db: Session = Depends(get_db),
    status_filter: Optional[str] = Query(None, alias="status"),
    report_id: Optional[str] = Query(None, alias="reportId"),
    limit: int = Query(50, ge=1, le=200),
    user: dict = Depends(require_admin),
):
    """Get queue status with item counts and recent items."""
    counts = dict(
        db.query(Job.status, func.count(Job.id))
        .group_by(Job.status)
        .all()
    )

    query = db.query(Job)
    if status_filter:
        query = query.filter(Job.status == status_filter)
    else:
        query = query.filter(Job.status.in_(["pending", "running", "failed", "dead"]))
    if report_id:
        query = query.filter(Job.report_id == report_id)

    jobs = query.order_by(Job.created_at.desc(), Job.id.desc()).limit(limit).all()

    return QueueStatusResponse(
        pending=counts.get("pending", 0),
        running=counts.get("running", 0),
        completed=counts.get("completed", 0),
        failed=counts.get("failed", 0),
        dead=counts.get("dead", 0),
        items=[QueueItem.model_validate(j) for j in jobs],
    )


@router.post("/{job_id}/retry", response_model=QueueRetryResponse)
async def retry_job(
    job_id: int,
    db: Session = Depends(get_db),
    user: dict = Depends(require_admin),
):
    """Re-queue a failed or dead job.

    An analysis job also reopens its report, unless a newer analysis owns it
    or it already completed.
    """
    job = db.get(Job, job_id)
    if not job:
        raise NotFoundError("Job", job_id)

    if job.status not in ["failed", "dead"]:
        raise APIError(
            message=f"Job is {job.status}, not failed",
            code="JOB_NOT_RETRYABLE",
            status_code=409,
            details={"id": job_id, "status": job.status},
        )

    if job.job_type == ANALYZE_JOB_TYPE:
        reopen_analysis(db, job, requested_by=user.get("sub"))

    job.status = "pending"
    job.attempts = 0
    job.last_error = None
    job.started_at = None
    job.completed_at = None
    job.scheduled_for = utcnow()
    db.commit()

    logger.info("Job retry triggered", job_id=job_id, user=user.get("sub"))
    return QueueRetryResponse(id=job.id, status=job.status, message="Job queued for retry")
