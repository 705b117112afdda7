"""Job processors for the analysis pipeline.

1. AnalyzeReportProcessor - AI damage analysis of a report's photos, copies
   the analyzed images into report storage and stores the merged result
"""

from .base import BaseProcessor
from .analyze_report import AnalyzeReportProcessor

__all__ = [
    "BaseProcessor",
    "AnalyzeReportProcessor",
]
