"""Report endpoints: read, analysis results and the analysis trigger."""

import json

import structlog
from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session

from api.config.database import get_db
from api.models import Activity, Report
from api.schemas.activities import ActivityResponse
from api.schemas.reports import (
    AnalysisResponse,
    AnalyzeResponse,
    CopyWarningItem,
    DetectionItem,
    ImageGroup,
    PerilMatchItem,
    ReportEnvelope,
    ReportResponse,
)
from api.services.analysis_trigger import trigger_analysis
from api.services.rbac import get_current_user, get_visible_report
from processor.analysis_result import (
    AnalysisStatus,
    group_detections_by_image,
    parse_analysis_result,
)

logger = structlog.get_logger()
router = APIRouter()


def safe_json_loads(data, default=None):
    if not data:
        return default
    try:
        return json.loads(data)
    except (json.JSONDecodeError, TypeError):
        return default


def to_report_response(report: Report) -> ReportResponse:
    return ReportResponse(
        id=report.id,
        company_id=report.company_id,
        incident_date=report.incident_date,
        description=report.description,
        reported_peril=report.reported_peril,
        photo_urls=report.photo_list,
        status=report.status,
        analysis_status=report.analysis_status,
        analysis_job_id=report.analysis_job_id,
        analysis_started_at=report.analysis_started_at,
        analysis_completed_at=report.analysis_completed_at,
        ai_analysis=report.ai_analysis,
        created_at=report.created_at,
        updated_at=report.updated_at,
    )


@router.get("/{report_id}", response_model=ReportEnvelope)
async def get_report(
    report_id: str,
    response: Response,
    db: Session = Depends(get_db),
    user: dict = Depends(get_current_user),
):
    """Get a report. Never cached, so status pollers always see the latest row."""
    report = get_visible_report(db, report_id, user)

    response.headers["Cache-Control"] = "no-store"
    return ReportEnvelope(report=to_report_response(report))


@router.get("/{report_id}/analysis", response_model=AnalysisResponse)
async def get_report_analysis(
    report_id: str,
    response: Response,
    db: Session = Depends(get_db),
    user: dict = Depends(get_current_user),
):
    """Get the parsed analysis with detections grouped per copied image."""
    report = get_visible_report(db, report_id, user)
    response.headers["Cache-Control"] = "no-store"

    stored = safe_json_loads(report.ai_analysis, {})
    if not isinstance(stored, dict):
        stored = {}

    analysis = AnalysisResponse(
        report_id=report.id,
        analysis_status=report.analysis_status,
        analysis_job_id=report.analysis_job_id,
    )

    if report.analysis_status == AnalysisStatus.FAILED.value:
        analysis.error = stored.get("error")
        analysis.error_type = stored.get("error_type")
        return analysis

    if report.analysis_status != AnalysisStatus.COMPLETED.value:
        return analysis

    result = parse_analysis_result(stored)
    groups = group_detections_by_image(result)

    analysis.total_images_analyzed = result.total_images_analyzed
    analysis.detections = [DetectionItem(**d.to_dict()) for d in result.detections]
    analysis.peril_match = PerilMatchItem(**result.peril_match.to_dict())
    analysis.fraud_signals = result.fraud_signals
    analysis.evidence_bullets = result.evidence_bullets
    analysis.final_assessment = result.final_assessment
    analysis.all_local_paths = result.all_local_paths
    analysis.copy_warnings = [CopyWarningItem(**w.to_dict()) for w in result.copy_warnings]
    analysis.images = [
        ImageGroup(
            local_output_path=path,
            detections=[DetectionItem(**d.to_dict()) for d in detections],
        )
        for path, detections in groups.items()
    ]
    return analysis


@router.post("/{report_id}/analyze", response_model=AnalyzeResponse, status_code=202)
async def analyze_report(
    report_id: str,
    db: Session = Depends(get_db),
    user: dict = Depends(get_current_user),
):
    """Start AI damage analysis of the report's photos.

    Returns as soon as the job is queued; poll GET /reports/{id} for the result.
    """
    get_visible_report(db, report_id, user)

    result = trigger_analysis(db, report_id, requested_by=user.get("sub"))
    return AnalyzeResponse(success=result.accepted, job_id=result.job_id)


@router.get("/{report_id}/activities", response_model=list[ActivityResponse])
async def get_report_activities(
    report_id: str,
    db: Session = Depends(get_db),
    user: dict = Depends(get_current_user),
):
    """Audit trail of a report, newest first."""
    get_visible_report(db, report_id, user)

    activities = (
        db.query(Activity)
        .filter(Activity.report_id == report_id)
        .order_by(Activity.created_at.desc(), Activity.id.desc())
        .all()
    )
    return [
        ActivityResponse(
            id=a.id,
            action=a.action,
            report_id=a.report_id,
            user_id=a.user_id,
            details=safe_json_loads(a.details),
            created_at=a.created_at,
        )
        for a in activities
    ]
