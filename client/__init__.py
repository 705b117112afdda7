"""Client-side helpers for following report analyses."""

from .poller import ReportStatus, StatusPoller, WatchHandle

__all__ = ["ReportStatus", "StatusPoller", "WatchHandle"]
