"""Service layer for the incident reports API."""

from .analysis_trigger import TriggerResult, reopen_analysis, trigger_analysis

__all__ = ["TriggerResult", "reopen_analysis", "trigger_analysis"]
