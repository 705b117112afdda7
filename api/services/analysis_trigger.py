"""Analysis trigger: marks a report as analyzing and queues the job."""

import json
import uuid
from dataclasses import dataclass
from typing import Optional

import structlog
from sqlalchemy import or_
from sqlalchemy.orm import Session

from api.config.settings import settings
from api.middleware.error_handler import (
    APIError,
    AnalysisInProgressError,
    NoPhotosToAnalyzeError,
    NotFoundError,
)
from api.models import Activity, Job, Report
from api.models.base import utcnow
from processor.analysis_result import AnalysisStatus

logger = structlog.get_logger()

ANALYZE_JOB_TYPE = "analyze_report"
IN_FLIGHT_STATUSES = (AnalysisStatus.PENDING.value, AnalysisStatus.ANALYZING.value)


@dataclass
class TriggerResult:
    accepted: bool
    job_id: str
    queue_job_id: int
    superseded_job_id: Optional[str] = None


def new_analysis_job_id() -> str:
    return uuid.uuid4().hex


def trigger_analysis(
    db: Session,
    report_id: str,
    requested_by: Optional[str] = None,
    single_flight: Optional[bool] = None,
) -> TriggerResult:
    """Start an analysis of a report's photos without waiting for it.

    The report update and the queue insert commit together, so a queued job
    always finds its report in 'analyzing' with its own job id.

    Args:
        db: Database session
        report_id: Report to analyze
        requested_by: Caller id recorded in the audit trail
        single_flight: Reject while pending or analyzing; defaults to ANALYSIS_SINGLE_FLIGHT

    Raises:
        NotFoundError: Report does not exist
        NoPhotosToAnalyzeError: Report has no photos
        AnalysisInProgressError: Single-flight mode and an analysis is running
    """
    if single_flight is None:
        single_flight = settings.ANALYSIS_SINGLE_FLIGHT

    report = db.get(Report, report_id)
    if not report:
        raise NotFoundError("Report", report_id)

    if not report.photo_list:
        raise NoPhotosToAnalyzeError(report_id)

    superseded_job_id = None
    if report.analysis_status in IN_FLIGHT_STATUSES:
        superseded_job_id = report.analysis_job_id

    job_id = new_analysis_job_id()
    now = utcnow()

    query = db.query(Report).filter(Report.id == report_id)
    if single_flight:
        query = query.filter(
            or_(
                Report.analysis_status.is_(None),
                Report.analysis_status.not_in(IN_FLIGHT_STATUSES),
            )
        )

    updated = query.update(
        {
            Report.analysis_status: AnalysisStatus.ANALYZING.value,
            Report.analysis_job_id: job_id,
            Report.analysis_started_at: now,
            Report.analysis_completed_at: None,
            Report.ai_analysis: None,
            Report.updated_at: now,
        },
        synchronize_session=False,
    )
    if not updated:
        db.rollback()
        raise AnalysisInProgressError(report_id, superseded_job_id)

    job = Job(
        report_id=report_id,
        job_type=ANALYZE_JOB_TYPE,
        priority=settings.ANALYSIS_JOB_PRIORITY,
        max_attempts=settings.ANALYSIS_MAX_ATTEMPTS,
        payload=json.dumps({"analysis_job_id": job_id}),
        created_at=now,
        scheduled_for=now,
    )
    db.add(job)
    db.add(Activity(
        action="analysis_requested",
        report_id=report_id,
        user_id=requested_by,
        details=json.dumps({
            "analysis_job_id": job_id,
            "superseded_job_id": superseded_job_id,
            "photos": len(report.photo_list),
        }),
        created_at=now,
    ))
    db.commit()
    db.refresh(job)

    if superseded_job_id:
        logger.warning(
            "Analysis re-triggered while running",
            report_id=report_id,
            analysis_job_id=job_id,
            superseded_job_id=superseded_job_id,
        )

    logger.info(
        "Analysis triggered",
        report_id=report_id,
        analysis_job_id=job_id,
        queue_job_id=job.id,
    )

    return TriggerResult(
        accepted=True,
        job_id=job_id,
        queue_job_id=job.id,
        superseded_job_id=superseded_job_id,
    )


def reopen_analysis(db: Session, job: Job, requested_by: Optional[str] = None) -> None:
    """Put a failed analysis back in 'analyzing' so its queue job can run again.

    Does not commit; the caller re-queues the job in the same transaction.

    Raises:
        APIError: The job no longer owns the report, or its analysis completed
    """
    try:
        payload = json.loads(job.payload or "{}")
    except json.JSONDecodeError:
        payload = {}
    job_id = payload.get("analysis_job_id")

    report = db.get(Report, job.report_id)
    if not report or not job_id or report.analysis_job_id != job_id:
        raise APIError(
            message="A newer analysis owns this report",
            code="JOB_SUPERSEDED",
            status_code=409,
            details={"id": job.id, "analysisJobId": report.analysis_job_id if report else None},
        )

    if report.analysis_status == AnalysisStatus.COMPLETED.value:
        raise APIError(
            message="Analysis already completed",
            code="ANALYSIS_ALREADY_COMPLETED",
            status_code=409,
            details={"id": job.id, "analysisJobId": job_id},
        )

    if report.analysis_status == AnalysisStatus.ANALYZING.value:
        return

    now = utcnow()
    report.analysis_status = AnalysisStatus.ANALYZING.value
    report.analysis_started_at = now
    report.analysis_completed_at = None
    report.ai_analysis = None
    db.add(Activity(
        action="analysis_retried",
        report_id=report.id,
        user_id=requested_by,
        details=json.dumps({"analysis_job_id": job_id, "queue_job_id": job.id}),
        created_at=now,
    ))
    logger.info("Analysis reopened for retry", report_id=report.id, analysis_job_id=job_id)
