"""Tests for the status reconciliation poller."""

import asyncio
import json

import httpx

from client.poller import ReportStatus, StatusPoller

INTERVAL = 0.01


def report_body(status, analysis=None):
    return {
        "report": {
            "id": "R1",
            "analysisStatus": status,
            "analysisJobId": "job-1",
            "aiAnalysis": json.dumps(analysis) if analysis is not None else None,
        }
    }


class ScriptedApi:
    """Serves a fixed sequence of responses, repeating the last one."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests = []

    def handler(self, request):
        self.requests.append(request)
        index = min(len(self.requests), len(self.responses)) - 1
        response = self.responses[index]
        if isinstance(response, Exception):
            raise response
        if isinstance(response, httpx.Response):
            return response
        return httpx.Response(200, json=response)

    def client(self):
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler), base_url="http://api.test")


async def watch(api, on_update, initial_status="analyzing", settle=None):
    async with api.client() as http:
        handle = StatusPoller(http, interval=INTERVAL).watch("R1", on_update, initial_status=initial_status)
        if settle is not None:
            await settle(handle)
        await asyncio.wait_for(handle.wait(), timeout=5)
        fetches = len(api.requests)
        await asyncio.sleep(INTERVAL * 5)
        return handle, fetches


def test_stops_after_terminal_status():
    api = ScriptedApi(report_body("analyzing"), report_body("analyzing"), report_body("completed", {}))
    updates = []

    handle, fetches = asyncio.run(watch(api, updates.append))

    assert handle.stopped
    assert fetches == 3
    assert len(api.requests) == 3
    assert [u.analysis_status for u in updates] == ["completed"]


def test_status_change_to_failed_is_reported():
    api = ScriptedApi(report_body("failed", {"error": "boom", "error_type": "ConnectError"}))
    updates = []

    asyncio.run(watch(api, updates.append, initial_status="pending"))

    assert updates[0].analysis_status == "failed"
    assert updates[0].is_terminal
    assert updates[0].ai_analysis["error_type"] == "ConnectError"


def test_detections_stop_polling_even_if_status_lags():
    api = ScriptedApi(report_body("analyzing", {"detections": [{"label": "hail_dent"}]}))
    updates = []

    handle, fetches = asyncio.run(watch(api, updates.append))

    assert fetches == 1
    assert len(api.requests) == 1
    assert len(updates) == 1
    assert updates[0].detections == [{"label": "hail_dent"}]


def test_cancel_before_first_tick_makes_no_fetch():
    api = ScriptedApi(report_body("analyzing"))

    async def cancel_now(handle):
        handle.cancel()

    handle, fetches = asyncio.run(watch(api, lambda status: None, settle=cancel_now))

    assert handle.stopped
    assert handle.cancelled
    assert api.requests == []


def test_cancel_while_watching_stops_fetches():
    api = ScriptedApi(report_body("analyzing"))

    async def cancel_after_fetches(handle):
        while len(api.requests) < 2:
            await asyncio.sleep(INTERVAL / 2)
        handle.cancel()

    handle, fetches = asyncio.run(watch(api, lambda status: None, settle=cancel_after_fetches))

    assert handle.stopped
    assert len(api.requests) == fetches


def test_transient_errors_are_retried():
    api = ScriptedApi(
        httpx.Response(503, text="unavailable"),
        httpx.ConnectError("connection reset"),
        httpx.Response(200, text="not json"),
        report_body("completed", {}),
    )
    updates = []

    handle, fetches = asyncio.run(watch(api, updates.append))

    assert fetches == 4
    assert [u.analysis_status for u in updates] == ["completed"]


def test_callback_errors_do_not_stop_the_watch():
    api = ScriptedApi(report_body("analyzing"), report_body("completed", {}))
    updates = []

    def flaky(status):
        updates.append(status.analysis_status)
        if len(updates) == 1:
            raise RuntimeError("render failed")

    asyncio.run(watch(api, flaky, initial_status="pending"))

    assert updates == ["analyzing", "completed"]


def test_async_callback_is_awaited():
    api = ScriptedApi(report_body("completed", {}))
    updates = []

    async def on_update(status):
        await asyncio.sleep(0)
        updates.append(status.analysis_status)

    asyncio.run(watch(api, on_update))

    assert updates == ["completed"]


def test_terminal_initial_status_never_starts():
    api = ScriptedApi(report_body("completed", {}))

    handle, fetches = asyncio.run(watch(api, lambda status: None, initial_status="completed"))

    assert handle.stopped
    assert api.requests == []


def test_requests_bypass_caches():
    api = ScriptedApi(report_body("completed", {}))

    asyncio.run(watch(api, lambda status: None))

    request = api.requests[0]
    assert request.url.path == "/api/v1/reports/R1"
    assert request.url.params["t"].isdigit()
    assert request.headers["Cache-Control"] == "no-cache"
    assert request.headers["Pragma"] == "no-cache"


def test_report_status_from_payload_accepts_parsed_analysis():
    status = ReportStatus.from_payload("R1", {"report": {"analysisStatus": "completed", "aiAnalysis": {"detections": []}}})

    assert status.report_id == "R1"
    assert status.detections == []
    assert status.is_terminal
