"""Processor configuration settings."""

from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class ProcessorSettings(BaseSettings):
    """Settings for the processor service."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Database
    DATABASE_URL: str = "sqlite:///./incident_reports.db"

    # Queue/Worker
    QUEUE_MAX_CONCURRENCY: int = 10  # Parallel job limit
    QUEUE_MAX_ATTEMPTS: int = 3  # Default retry limit
    QUEUE_POLL_INTERVAL: int = 5  # Seconds between queue checks when idle
    QUEUE_RETRY_BASE_DELAY: int = 30  # Base delay for exponential backoff (seconds)
    QUEUE_STUCK_JOB_MINUTES: int = 30

    # Analysis
    ANALYSIS_STALE_MINUTES: int = 15  # Reports stuck in 'analyzing' are failed after this
    DEFAULT_REPORTED_PERIL: str = ""

    # Inference service
    INFERENCE_URL: str = "http://localhost:9000/analyze"
    INFERENCE_TIMEOUT: float = 300.0
    INFERENCE_API_KEY: Optional[str] = None

    # S3 (report storage bucket)
    S3_BUCKET: str = "incident-report-storage"
    S3_REGION: str = "us-east-1"
    S3_ACCESS_KEY_ID: Optional[str] = None
    S3_SECRET_ACCESS_KEY: Optional[str] = None
    S3_ROLE_ARN: Optional[str] = None  # Assumed per job for copy credentials
    S3_ROLE_SESSION_SECONDS: int = 900
    ANALYZED_IMAGE_PREFIX: str = "incident-photos"
    COPY_MAX_CONCURRENCY: int = 4

    # Monitoring
    HEARTBEAT_INTERVAL: int = 30  # Seconds between heartbeat writes
    HEARTBEAT_FILE: str = "/tmp/incident_analysis_heartbeat"

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "json"


@lru_cache
def get_settings() -> ProcessorSettings:
    """Get cached settings instance."""
    return ProcessorSettings()


settings = get_settings()
