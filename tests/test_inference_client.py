"""Tests for the inference client and request builder."""

import asyncio

import httpx
import pytest

from conftest import sample_inference_result

from processor.integrations.inference import InferenceClient, InferenceError, InferenceRequest


def make_request():
    return InferenceRequest.for_report(
        report_id="R1",
        photo_keys=["incident-photos/R1/front.jpg", "incident-photos/R1/roof.PNG", "incident-photos/R1/scan"],
        bucket="incident-report-storage",
        reported_peril="hail",
        incident_date="2024-05-01",
        notes="Roof damage",
    )


def client_for(handler):
    return InferenceClient(
        url="http://inference.test/analyze",
        timeout=5.0,
        api_key="secret",
        transport=httpx.MockTransport(handler),
    )


def test_request_payload():
    payload = make_request().to_payload()

    assert payload["images"] == [
        {"s3_uri": "s3://incident-report-storage/incident-photos/R1/front.jpg", "format": "image/jpeg"},
        {"s3_uri": "s3://incident-report-storage/incident-photos/R1/roof.PNG", "format": "image/png"},
        {"s3_uri": "s3://incident-report-storage/incident-photos/R1/scan", "format": "image/jpeg"},
    ]
    assert payload["analysis_context"] == {
        "image_id": "R1",
        "reported_peril": "hail",
        "weather_summary": "Analysis for incident on 2024-05-01",
        "notes": "Roof damage",
    }


def test_success_unwraps_result_envelope():
    seen = {}

    def handler(request):
        seen["api_key"] = request.headers.get("x-api-key")
        return httpx.Response(200, json={"result": sample_inference_result()})

    result = asyncio.run(client_for(handler).analyze(make_request()))

    assert len(result["detections"]) == 4
    assert seen["api_key"] == "secret"


def test_unwrapped_body_is_accepted():
    result = asyncio.run(
        client_for(lambda request: httpx.Response(200, json=sample_inference_result())).analyze(make_request())
    )

    assert result["final_assessment"] == "Hail damage likely"


def test_non_2xx_status_raises():
    client = client_for(lambda request: httpx.Response(503, text="model overloaded"))

    with pytest.raises(InferenceError) as exc_info:
        asyncio.run(client.analyze(make_request()))

    assert exc_info.value.error_type == "UpstreamHTTPError"
    assert exc_info.value.status_code == 503
    assert "model overloaded" in str(exc_info.value)


def test_embedded_error_is_a_hard_failure():
    body = {"result": {"error": "CUDA out of memory", "error_type": "RuntimeError"}}
    client = client_for(lambda request: httpx.Response(200, json=body))

    with pytest.raises(InferenceError) as exc_info:
        asyncio.run(client.analyze(make_request()))

    assert exc_info.value.error_type == "RuntimeError"
    assert str(exc_info.value) == "AI analysis internal error: CUDA out of memory"


def test_network_error_keeps_exception_type():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(InferenceError) as exc_info:
        asyncio.run(client_for(handler).analyze(make_request()))

    assert exc_info.value.error_type == "ConnectError"


def test_non_json_body_raises():
    client = client_for(lambda request: httpx.Response(200, text="<html>gateway</html>"))

    with pytest.raises(InferenceError) as exc_info:
        asyncio.run(client.analyze(make_request()))

    assert exc_info.value.error_type == "InvalidResponse"
