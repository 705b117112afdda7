"""Analysis status persistence on the report record.

The analysis job lives inside the report row. Each trigger stamps a fresh
``analysis_job_id``; a worker may only write a terminal status while its job
id still owns the row and the row is still ``analyzing``.
"""

import asyncio
import json
from dataclasses import dataclass, field
from typing import List, Optional

import structlog
from sqlalchemy import text
from sqlalchemy.orm import Session

from processor.analysis_result import AnalysisResult, AnalysisStatus
from processor.database import utcnow

logger = structlog.get_logger()


@dataclass
class ReportSnapshot:
    """The report fields the analysis pipeline reads."""

    id: str
    photo_urls: List[str] = field(default_factory=list)
    description: Optional[str] = None
    incident_date: Optional[str] = None
    reported_peril: Optional[str] = None
    analysis_status: Optional[str] = None
    analysis_job_id: Optional[str] = None
    ai_analysis: Optional[str] = None


class AnalysisOwnershipLost(Exception):
    """Raised when a terminal write is rejected because a newer job owns the report."""

    def __init__(self, report_id: str, job_id: str, current_job_id: Optional[str]):
        super().__init__(
            f"Analysis job {job_id} no longer owns report {report_id} "
            f"(current job: {current_job_id or 'none'})"
        )
        self.report_id = report_id
        self.job_id = job_id
        self.current_job_id = current_job_id


def _load_photo_urls(raw: Optional[str]) -> List[str]:
    if not raw:
        return []
    try:
        urls = json.loads(raw)
    except (json.JSONDecodeError, TypeError):
        return []
    return [u for u in urls if isinstance(u, str) and u] if isinstance(urls, list) else []


class ReportStatusStore:
    """Get and conditional-update access to a report's analysis fields."""

    def __init__(self, db: Session):
        self.db = db

    async def get(self, report_id: str) -> Optional[ReportSnapshot]:
        """Load a report, or None if it no longer exists."""
        def _query():
            query = text("""
                SELECT id, photo_urls, description, incident_date, reported_peril,
                       analysis_status, analysis_job_id, ai_analysis
                FROM reports
                WHERE id = :report_id
            """)
            return self.db.execute(query, {"report_id": report_id}).first()

        row = await asyncio.to_thread(_query)
        if not row:
            return None

        return ReportSnapshot(
            id=row.id,
            photo_urls=_load_photo_urls(row.photo_urls),
            description=row.description,
            incident_date=row.incident_date,
            reported_peril=row.reported_peril,
            analysis_status=row.analysis_status,
            analysis_job_id=row.analysis_job_id,
            ai_analysis=row.ai_analysis,
        )

    async def complete_if_owner(self, report_id: str, job_id: str, result: AnalysisResult) -> None:
        """Persist a merged result with status 'completed'.

        Raises:
            AnalysisOwnershipLost: If another job owns the report
        """
        await self._write_terminal(
            report_id,
            job_id,
            AnalysisStatus.COMPLETED,
            json.dumps(result.to_dict()),
        )

    async def fail_if_owner(
        self,
        report_id: str,
        job_id: str,
        error_message: str,
        error_type: str,
    ) -> None:
        """Mark the analysis 'failed', keeping the upstream error for diagnosis.

        Raises:
            AnalysisOwnershipLost: If another job owns the report
        """
        await self._write_terminal(
            report_id,
            job_id,
            AnalysisStatus.FAILED,
            json.dumps({"error": error_message, "error_type": error_type}),
        )

    async def _write_terminal(
        self,
        report_id: str,
        job_id: str,
        status: AnalysisStatus,
        payload: str,
    ) -> None:
        def _update():
            now = utcnow()
            query = text("""
                UPDATE reports
                SET analysis_status = :status,
                    ai_analysis = :payload,
                    analysis_completed_at = :now,
                    updated_at = :now
                WHERE id = :report_id
                  AND analysis_job_id = :job_id
                  AND analysis_status = :analyzing
            """)
            result = self.db.execute(
                query,
                {
                    "status": status.value,
                    "payload": payload,
                    "now": now,
                    "report_id": report_id,
                    "job_id": job_id,
                    "analyzing": AnalysisStatus.ANALYZING.value,
                },
            )
            self.db.commit()
            if result.rowcount:
                return True, None

            current = self.db.execute(
                text("SELECT analysis_job_id FROM reports WHERE id = :report_id"),
                {"report_id": report_id},
            ).first()
            return False, current.analysis_job_id if current else None

        written, current_job_id = await asyncio.to_thread(_update)
        if not written:
            logger.warning(
                "Terminal analysis write rejected",
                report_id=report_id,
                job_id=job_id,
                current_job_id=current_job_id,
                status=status.value,
            )
            raise AnalysisOwnershipLost(report_id, job_id, current_job_id)

        logger.info("Analysis status written", report_id=report_id, job_id=job_id, status=status.value)
