"""Pytest fixtures: test client, per-test SQLite database, storage and inference fakes."""
import io
import json
import os

import pytest

# Must be set before api/processor settings are imported
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("AUTH_ENABLED", "false")
os.environ.setdefault("ANALYSIS_SINGLE_FLIGHT", "false")
os.environ.setdefault("S3_BUCKET", "incident-report-storage")
os.environ.setdefault("S3_ROLE_ARN", "")
os.environ.setdefault("INFERENCE_URL", "http://inference.test/analyze")
os.environ.setdefault("LOG_FORMAT", "console")

import httpx
from botocore.exceptions import ClientError, NoCredentialsError
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from api.config.database import Base, build_engine, get_db
from api.main import app
from api.models import Report
from processor.integrations.inference import InferenceClient
from processor.integrations.s3 import S3Error, S3Service

INFERENCE_BUCKET = "inference-output"
REPORT_BUCKET = "incident-report-storage"


@pytest.fixture
def engine(tmp_path):
    """File-backed SQLite so API, processor and assertions share one database."""
    engine = build_engine(f"sqlite:///{tmp_path / 'reports.db'}")
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def client(session_factory):
    """TestClient whose requests use the per-test database."""
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def make_report(session_factory):
    """Insert a report and return its id."""
    def _make(report_id="R1", photos=None, **fields):
        if photos is None:
            photos = [
                f"incident-photos/{report_id}/front.jpg",
                f"incident-photos/{report_id}/roof.png",
                f"incident-photos/{report_id}/side.webp",
            ]
        values = {
            "id": report_id,
            "company_id": "C1",
            "incident_date": "2024-05-01",
            "description": "Hail storm damaged the roof and siding",
            "reported_peril": "hail",
            "photo_urls": json.dumps(list(photos)),
        }
        values.update(fields)

        session = session_factory()
        try:
            session.add(Report(**values))
            session.commit()
        finally:
            session.close()
        return report_id

    return _make


@pytest.fixture
def load_report(session_factory):
    """Read a report with a fresh session."""
    def _load(report_id):
        session = session_factory()
        try:
            report = session.get(Report, report_id)
            if report is not None:
                session.expunge(report)
            return report
        finally:
            session.close()

    return _load


class FakeS3Client:
    """In-memory stand-in for a boto3 S3 client."""

    def __init__(self):
        self.objects = {}
        self.get_errors = {}
        self.put_errors = {}
        self.puts = []

    def add_object(self, bucket, key, content=b"image-bytes", content_type="image/jpeg"):
        self.objects[(bucket, key)] = (content, content_type)

    def deny(self, bucket, key, code="AccessDenied"):
        self.get_errors[(bucket, key)] = ClientError(
            {"Error": {"Code": code, "Message": "Access Denied"}},
            "GetObject",
        )

    def get_object(self, Bucket, Key):
        if (Bucket, Key) in self.get_errors:
            raise self.get_errors[(Bucket, Key)]
        if (Bucket, Key) not in self.objects:
            raise ClientError(
                {"Error": {"Code": "NoSuchKey", "Message": "The specified key does not exist."}},
                "GetObject",
            )
        content, content_type = self.objects[(Bucket, Key)]
        return {"Body": io.BytesIO(content), "ContentType": content_type}

    def put_object(self, Bucket, Key, Body, ContentType):
        if Bucket in self.put_errors:
            raise self.put_errors[Bucket]
        self.puts.append({"Bucket": Bucket, "Key": Key, "Body": Body, "ContentType": ContentType})
        self.objects[(Bucket, Key)] = (Body, ContentType)


class FakeStorageSessions:
    """StorageSessionFactory stand-in that hands out the fake client."""

    def __init__(self, client, error=None):
        self.client = client
        self.error = error
        self.job_ids = []

    def for_job(self, job_id):
        self.job_ids.append(job_id)
        if self.error:
            raise self.error
        return S3Service(client=self.client, bucket=REPORT_BUCKET)


@pytest.fixture
def s3_client():
    return FakeS3Client()


@pytest.fixture
def storage_sessions(s3_client):
    return FakeStorageSessions(s3_client)


@pytest.fixture
def no_credentials_sessions(s3_client):
    error = S3Error.from_boto("Could not obtain job storage credentials", NoCredentialsError())
    return FakeStorageSessions(s3_client, error=error)


def output_uri(name):
    return f"s3://{INFERENCE_BUCKET}/outputs/{name}"


def sample_inference_result():
    """Two output images: four detections, three on A and one on B."""
    uri_a = output_uri("annotated-a.jpg")
    uri_b = output_uri("annotated-b.jpg")
    return {
        "total_images_analyzed": 3,
        "detections": [
            {"label": "hail_dent", "confidence": 0.91, "bbox": [10, 20, 30, 40],
             "notes": "roof panel", "image_reference": "front.jpg", "output_s3_uri": uri_a},
            {"label": "hail_dent", "confidence": 0.84, "bbox": [50, 60, 70, 80],
             "notes": "", "image_reference": "front.jpg", "output_s3_uri": uri_a},
            {"label": "cracked_shingle", "confidence": 0.77, "bbox": [5, 5, 15, 15],
             "notes": "", "image_reference": "front.jpg", "output_s3_uri": uri_a},
            {"label": "siding_damage", "confidence": 0.66, "bbox": [1, 2, 3, 4],
             "notes": "", "image_reference": "roof.png", "output_s3_uri": uri_b},
        ],
        "peril_match": {"reported_peril": "hail", "match": "match", "reason": "Dents consistent with hail"},
        "fraud_signals": [
            "No weather report available",
            "no weather report",
            "NO WEATHER REPORT!",
        ],
        "evidence_bullets": ["Circular dents on roof panels"],
        "final_assessment": "Hail damage likely",
    }


def inference_transport(result=None, status_code=200, envelope=True, calls=None):
    """MockTransport answering every inference POST with one canned response."""
    def handler(request):
        if calls is not None:
            calls.append(json.loads(request.content))
        body = {"result": result} if envelope else result
        return httpx.Response(status_code, json=body)

    return httpx.MockTransport(handler)


@pytest.fixture
def make_inference():
    def _make(result=None, status_code=200, envelope=True, calls=None, transport=None):
        return InferenceClient(
            url="http://inference.test/analyze",
            timeout=5.0,
            api_key="",
            transport=transport or inference_transport(
                sample_inference_result() if result is None else result,
                status_code=status_code,
                envelope=envelope,
                calls=calls,
            ),
        )

    return _make
