"""Application settings loaded from environment variables."""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    APP_NAME: str = "Incident Reports API"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    ENVIRONMENT: str = "development"  # development, staging, production

    # Database (shared with the processor)
    DATABASE_URL: str = "sqlite:///./incident_reports.db"

    # Caller identity from the upstream gateway
    AUTH_ENABLED: bool = False
    ADMIN_ROLE: str = "admin"

    # Analysis trigger
    ANALYSIS_SINGLE_FLIGHT: bool = False  # Reject re-trigger while analyzing
    ANALYSIS_JOB_PRIORITY: int = 0
    ANALYSIS_MAX_ATTEMPTS: int = 3

    # Processor liveness
    PROCESSOR_HEARTBEAT_FILE: str = "/tmp/incident_analysis_heartbeat"
    PROCESSOR_HEARTBEAT_MAX_AGE: int = 120  # seconds

    # CORS
    CORS_ORIGINS: list[str] = ["http://localhost:3000"]


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
