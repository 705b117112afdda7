"""Tests for queue observability endpoints."""

import json

import pytest

from api.config.settings import settings
from api.models import Job, Report


def set_job_status(session_factory, status):
    session = session_factory()
    try:
        job = session.query(Job).one()
        job.status = status
        job.attempts = 3
        job.last_error = "boom"
        session.commit()
        return job.id
    finally:
        session.close()


def test_queue_lists_triggered_job(client, make_report):
    make_report("R1")
    client.post("/api/v1/reports/R1/analyze")

    body = client.get("/api/v1/queue").json()

    assert body["pending"] == 1
    assert body["items"][0]["reportId"] == "R1"
    assert body["items"][0]["jobType"] == "analyze_report"


def test_retry_dead_job(client, make_report, session_factory):
    make_report("R1")
    client.post("/api/v1/reports/R1/analyze")
    job_id = set_job_status(session_factory, "dead")

    response = client.post(f"/api/v1/queue/{job_id}/retry")

    assert response.status_code == 200
    assert response.json()["status"] == "pending"
    body = client.get("/api/v1/queue", params={"status": "pending"}).json()
    assert body["items"][0]["attempts"] == 0
    assert body["items"][0]["lastError"] is None


def test_retry_pending_job_conflicts(client, make_report, session_factory):
    make_report("R1")
    client.post("/api/v1/reports/R1/analyze")
    job_id = set_job_status(session_factory, "pending")

    response = client.post(f"/api/v1/queue/{job_id}/retry")

    assert response.status_code == 409
    assert response.json()["error"]["code"] == "JOB_NOT_RETRYABLE"


def test_retry_missing_job(client):
    assert client.post("/api/v1/queue/999/retry").status_code == 404


@pytest.mark.parametrize("roles,expected", [("", 403), ("admin", 200)])
def test_queue_requires_admin(client, monkeypatch, roles, expected):
    monkeypatch.setattr(settings, "AUTH_ENABLED", True)

    response = client.get("/api/v1/queue", headers={"X-User-Id": "u1", "X-User-Roles": roles})

    assert response.status_code == expected


def set_report_status(session_factory, status):
    session = session_factory()
    try:
        report = session.get(Report, "R1")
        report.analysis_status = status
        report.ai_analysis = json.dumps({"error": "timed out", "error_type": "AnalysisTimedOut"})
        session.commit()
    finally:
        session.close()


def test_retry_reopens_timed_out_analysis(client, make_report, load_report, session_factory):
    make_report("R1")
    started = client.post("/api/v1/reports/R1/analyze").json()
    set_report_status(session_factory, "failed")
    job_id = set_job_status(session_factory, "dead")

    response = client.post(f"/api/v1/queue/{job_id}/retry")

    assert response.status_code == 200
    report = load_report("R1")
    assert report.analysis_status == "analyzing"
    assert report.analysis_job_id == started["jobId"]
    assert report.ai_analysis is None
    actions = [a["action"] for a in client.get("/api/v1/reports/R1/activities").json()]
    assert "analysis_retried" in actions


def test_retry_of_completed_analysis_conflicts(client, make_report, load_report, session_factory):
    make_report("R1")
    client.post("/api/v1/reports/R1/analyze")
    set_report_status(session_factory, "completed")
    job_id = set_job_status(session_factory, "failed")

    response = client.post(f"/api/v1/queue/{job_id}/retry")

    assert response.status_code == 409
    assert response.json()["error"]["code"] == "ANALYSIS_ALREADY_COMPLETED"
    assert load_report("R1").analysis_status == "completed"


def test_retry_of_superseded_job_conflicts(client, make_report, session_factory):
    make_report("R1")
    client.post("/api/v1/reports/R1/analyze")
    latest = client.post("/api/v1/reports/R1/analyze").json()

    session = session_factory()
    try:
        first = session.query(Job).order_by(Job.id).first()
        first.status = "dead"
        first_id = first.id
        session.commit()
    finally:
        session.close()

    response = client.post(f"/api/v1/queue/{first_id}/retry")

    assert response.status_code == 409
    error = response.json()["error"]
    assert error["code"] == "JOB_SUPERSEDED"
    assert error["details"]["analysisJobId"] == latest["jobId"]
