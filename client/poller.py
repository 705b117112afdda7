"""Status reconciliation poller for report analyses.

A trigger returns before the analysis finishes, so consumers follow the
report by re-fetching it until the analysis reaches a terminal status.
"""

import asyncio
import inspect
import json
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional, Union

import httpx
import structlog

from processor.analysis_result import is_terminal_status

logger = structlog.get_logger()

DEFAULT_INTERVAL = 3.0

NO_CACHE_HEADERS = {
    "Cache-Control": "no-cache",
    "Pragma": "no-cache",
}


@dataclass
class ReportStatus:
    """The analysis fields of one fetched report."""

    report_id: str
    analysis_status: Optional[str] = None
    analysis_job_id: Optional[str] = None
    ai_analysis: dict = field(default_factory=dict)

    @property
    def detections(self) -> list:
        detections = self.ai_analysis.get("detections")
        return detections if isinstance(detections, list) else []

    @property
    def is_terminal(self) -> bool:
        return is_terminal_status(self.analysis_status)

    @classmethod
    def from_payload(cls, report_id: str, body: Any) -> "ReportStatus":
        """Build from a GET /reports/{id} body.

        Raises:
            ValueError: If the body is not a report envelope
        """
        if not isinstance(body, dict) or not isinstance(body.get("report"), dict):
            raise ValueError("Response has no report object")

        report = body["report"]
        raw_analysis = report.get("aiAnalysis")
        if isinstance(raw_analysis, str) and raw_analysis:
            analysis = json.loads(raw_analysis)
        elif isinstance(raw_analysis, dict):
            analysis = raw_analysis
        else:
            analysis = {}

        return cls(
            report_id=report.get("id") or report_id,
            analysis_status=report.get("analysisStatus"),
            analysis_job_id=report.get("analysisJobId"),
            ai_analysis=analysis if isinstance(analysis, dict) else {},
        )


UpdateCallback = Callable[[ReportStatus], Union[None, Awaitable[None]]]


class WatchHandle:
    """Cancellation token and join handle for one watch."""

    def __init__(self, report_id: str):
        self.report_id = report_id
        self._task: Optional[asyncio.Task] = None
        self._cancelled = False
        self._stopped = False

    @property
    def stopped(self) -> bool:
        # A task cancelled before its first step never runs its finally block
        return self._stopped or (self._task is not None and self._task.done())

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        """Stop watching; no fetch starts after this returns."""
        if self._stopped:
            return
        self._cancelled = True
        if self._task and not self._task.done():
            self._task.cancel()
        else:
            self._stopped = True
        logger.info("Report watch cancelled", report_id=self.report_id)

    async def wait(self) -> None:
        """Wait until the watch has stopped."""
        if self._task is None:
            return
        try:
            await self._task
        except asyncio.CancelledError:
            if not self._cancelled:
                raise


class StatusPoller:
    """Re-fetches reports on a fixed interval until their analysis settles."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        interval: float = DEFAULT_INTERVAL,
        base_path: str = "/api/v1/reports",
    ):
        self.http_client = http_client
        self.interval = interval
        self.base_path = base_path.rstrip("/")

    def watch(
        self,
        report_id: str,
        on_update: UpdateCallback,
        initial_status: Optional[str] = None,
    ) -> WatchHandle:
        """Start watching a report. Must be called from a running event loop.

        Args:
            report_id: Report to follow
            on_update: Called with each changed ReportStatus; may be async
            initial_status: Last known analysis status

        Returns:
            WatchHandle; already stopped if initial_status is terminal
        """
        handle = WatchHandle(report_id)
        if is_terminal_status(initial_status):
            handle._stopped = True
            return handle

        handle._task = asyncio.create_task(
            self._run(handle, on_update, initial_status),
            name=f"watch-report-{report_id}",
        )
        logger.info("Report watch started", report_id=report_id, interval=self.interval)
        return handle

    async def fetch(self, report_id: str) -> ReportStatus:
        """Fetch the current status, bypassing caches.

        Raises:
            httpx.HTTPError: On transport failure or non-2xx status
            ValueError: If the body cannot be decoded
        """
        response = await self.http_client.get(
            f"{self.base_path}/{report_id}",
            params={"t": int(time.time() * 1000)},
            headers=NO_CACHE_HEADERS,
        )
        response.raise_for_status()
        return ReportStatus.from_payload(report_id, response.json())

    async def _run(
        self,
        handle: WatchHandle,
        on_update: UpdateCallback,
        initial_status: Optional[str],
    ) -> None:
        report_id = handle.report_id
        last_status = initial_status
        had_detections = False

        try:
            while not handle.cancelled:
                await asyncio.sleep(self.interval)
                if handle.cancelled:
                    break

                try:
                    status = await self.fetch(report_id)
                except (httpx.HTTPError, ValueError) as e:
                    logger.warning(
                        "Report status fetch failed, retrying",
                        report_id=report_id,
                        error=str(e),
                        error_type=type(e).__name__,
                    )
                    continue

                has_detections = bool(status.detections)
                if status.analysis_status != last_status or (has_detections and not had_detections):
                    await self._notify(on_update, status)

                last_status = status.analysis_status
                had_detections = has_detections

                # Detections count as done even if the status field lags
                if status.is_terminal or has_detections:
                    logger.info(
                        "Report analysis settled",
                        report_id=report_id,
                        analysis_status=status.analysis_status,
                        detections=len(status.detections),
                    )
                    break
        finally:
            handle._stopped = True

    async def _notify(self, on_update: UpdateCallback, status: ReportStatus) -> None:
        try:
            result = on_update(status)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.error(
                "Report update callback failed",
                report_id=status.report_id,
                error=str(e),
                exc_info=True,
            )
