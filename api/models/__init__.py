"""SQLAlchemy ORM models for incident reports.

All models are imported here to ensure they're registered with Base.metadata
before any database operations.
"""

# Import base first
from api.config.database import Base

# Core models
from .reports import Report

# Queue model
from .jobs import Job

# Audit models
from .activities import Activity

__all__ = [
    "Base",
    "Report",
    "Job",
    "Activity",
]
