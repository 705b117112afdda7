"""Analyze report processor: AI damage analysis of a report's photos."""

import asyncio
from typing import Optional

from sqlalchemy.orm import Session

from processor.analysis_result import AnalysisStatus, merge_copied_images, parse_analysis_result
from processor.config import settings
from processor.integrations.inference import InferenceClient, InferenceError, InferenceRequest
from processor.integrations.s3 import S3Error, StorageSessionFactory
from processor.processors.base import BaseProcessor
from processor.queue_manager import QueueManager
from processor.report_store import AnalysisOwnershipLost, ReportStatusStore
from processor.services.image_copier import CopyReport, ImageCopier


class AnalyzeReportProcessor(BaseProcessor):
    """Runs one analysis job for a report.

    inference -> copy analyzed images -> merge -> ownership-guarded write.
    Inference failures end the job as 'failed'; image copy failures only
    produce warnings on a 'completed' result.
    """

    job_type = "analyze_report"

    def __init__(
        self,
        db: Session,
        queue: QueueManager,
        inference: Optional[InferenceClient] = None,
        storage_sessions: Optional[StorageSessionFactory] = None,
    ):
        super().__init__(db, queue)
        self.store = ReportStatusStore(db)
        self.inference = inference or InferenceClient()
        self.storage_sessions = storage_sessions or StorageSessionFactory()

    async def process(
        self,
        report_id: Optional[str] = None,
        payload: Optional[dict] = None,
    ) -> None:
        """Process an analysis job.

        Args:
            report_id: Report to analyze
            payload: Must carry the analysis_job_id stamped by the trigger
        """
        if not report_id:
            raise ValueError("report_id is required for analyze_report")

        job_id = (payload or {}).get("analysis_job_id")
        if not job_id:
            raise ValueError("analysis_job_id is required for analyze_report")

        log = self.logger.bind(report_id=report_id, analysis_job_id=job_id)
        log.info("Starting report analysis")

        report = await self.store.get(report_id)
        if not report:
            log.warning("Report no longer exists, dropping analysis")
            return

        if report.analysis_job_id != job_id:
            # Superseded before it started; the newer job will do the work
            await self._record_superseded(report_id, job_id, report.analysis_job_id, stage="start")
            return

        if report.analysis_status != AnalysisStatus.ANALYZING.value:
            # Rerun of a job whose outcome is already on the report
            log.warning("Analysis already settled, skipping rerun", analysis_status=report.analysis_status)
            return

        if not report.photo_urls:
            await self._finish_failed(
                report_id,
                job_id,
                "Report has no photos to analyze",
                "NoPhotosToAnalyze",
            )
            return

        request = InferenceRequest.for_report(
            report_id=report.id,
            photo_keys=report.photo_urls,
            bucket=settings.S3_BUCKET,
            reported_peril=report.reported_peril or settings.DEFAULT_REPORTED_PERIL,
            incident_date=report.incident_date,
            notes=report.description,
        )

        try:
            raw_result = await self.inference.analyze(request)
        except InferenceError as e:
            log.error("Inference failed", error=str(e), error_type=e.error_type)
            await self._finish_failed(report_id, job_id, str(e), e.error_type)
            return

        result = parse_analysis_result(raw_result)

        source_uris = result.unique_output_uris()
        if source_uris:
            try:
                storage = await asyncio.to_thread(self.storage_sessions.for_job, job_id)
            except S3Error as e:
                log.error("No storage credentials for image copy", error=str(e))
                copy_report = CopyReport.all_failed(source_uris, e)
            else:
                copier = ImageCopier(storage, max_concurrency=settings.COPY_MAX_CONCURRENCY)
                copy_report = await copier.copy(
                    source_uris,
                    destination_prefix=f"{settings.ANALYZED_IMAGE_PREFIX}/{report_id}",
                )
            merge_copied_images(result, copy_report.successes, copy_report.warnings)
        else:
            merge_copied_images(result, {}, [])

        try:
            await self.store.complete_if_owner(report_id, job_id, result)
        except AnalysisOwnershipLost as e:
            await self._record_superseded(report_id, job_id, e.current_job_id, stage="complete")
            return

        await asyncio.to_thread(
            self.log_activity,
            action="analysis_completed",
            report_id=report_id,
            details={
                "analysis_job_id": job_id,
                "detections": len(result.detections),
                "images_copied": len(result.all_local_paths),
                "copy_warnings": len(result.copy_warnings),
            },
        )

        log.info(
            "Report analysis complete",
            detections=len(result.detections),
            images_copied=len(result.all_local_paths),
            copy_warnings=len(result.copy_warnings),
        )

    async def _finish_failed(
        self,
        report_id: str,
        job_id: str,
        error_message: str,
        error_type: str,
    ) -> None:
        try:
            await self.store.fail_if_owner(report_id, job_id, error_message, error_type)
        except AnalysisOwnershipLost as e:
            await self._record_superseded(report_id, job_id, e.current_job_id, stage="fail")
            return

        await asyncio.to_thread(
            self.log_activity,
            action="analysis_failed",
            report_id=report_id,
            details={
                "analysis_job_id": job_id,
                "error": error_message,
                "error_type": error_type,
            },
        )

    async def _record_superseded(
        self,
        report_id: str,
        job_id: str,
        current_job_id: Optional[str],
        stage: str,
    ) -> None:
        """Audit a job whose work was discarded because a newer job owns the report."""
        self.logger.warning(
            "Analysis superseded, result discarded",
            report_id=report_id,
            analysis_job_id=job_id,
            current_job_id=current_job_id,
            stage=stage,
        )
        await asyncio.to_thread(
            self.log_activity,
            action="analysis_superseded",
            report_id=report_id,
            details={
                "analysis_job_id": job_id,
                "current_job_id": current_job_id,
                "stage": stage,
            },
        )
