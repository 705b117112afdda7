"""Database configuration for processor."""

from datetime import datetime, timezone
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from processor.config import settings


def build_engine(database_url: str):
    """Create an engine with driver-appropriate pool settings."""
    if database_url.startswith("sqlite"):
        # Jobs hand sessions to worker threads via asyncio.to_thread
        return create_engine(
            database_url,
            connect_args={"check_same_thread": False},
        )

    return create_engine(
        database_url,
        pool_pre_ping=True,
        pool_size=5,
        max_overflow=10,
        pool_recycle=3600,
    )


engine = build_engine(settings.DATABASE_URL)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def utcnow() -> datetime:
    """Naive UTC timestamp, matching how the API stores datetimes."""
    return datetime.now(timezone.utc).replace(tzinfo=None)

