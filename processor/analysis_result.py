"""Analysis result types shared by the worker and the API.

The persisted JSON uses the inference service's snake_case vocabulary so a
stored result can be read back without a translation table.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional

from processor.utils.signals import dedupe_signals


class AnalysisStatus(str, Enum):
    """Status of the analysis job embedded in a report."""

    PENDING = "pending"
    ANALYZING = "analyzing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (AnalysisStatus.COMPLETED, AnalysisStatus.FAILED)


TERMINAL_STATUSES = frozenset({AnalysisStatus.COMPLETED.value, AnalysisStatus.FAILED.value})

PERIL_MATCH_VALUES = ("match", "partial_match", "no_match")


def is_terminal_status(status: Optional[str]) -> bool:
    """True for 'completed' and 'failed'. None (never analyzed) is non-terminal."""
    return status in TERMINAL_STATUSES


@dataclass
class PerilMatch:
    reported_peril: str = ""
    match: str = "no_match"
    reason: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "reported_peril": self.reported_peril,
            "match": self.match,
            "reason": self.reason,
        }


@dataclass
class Detection:
    """One labeled region of interest on one analyzed image."""

    label: str
    confidence: float
    bbox: List[float]
    notes: str = ""
    image_reference: Optional[str] = None
    output_s3_uri: Optional[str] = None
    local_output_path: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "label": self.label,
            "confidence": self.confidence,
            "bbox": list(self.bbox),
            "notes": self.notes,
            "image_reference": self.image_reference,
            "output_s3_uri": self.output_s3_uri,
        }
        if self.local_output_path:
            data["local_output_path"] = self.local_output_path
        return data


@dataclass
class CopyWarning:
    """A non-fatal failure to copy one analyzed image."""

    source_uri: str
    error_name: str
    error_message: str

    def to_dict(self) -> Dict[str, str]:
        return {
            "source_uri": self.source_uri,
            "error_name": self.error_name,
            "error_message": self.error_message,
        }


@dataclass
class AnalysisResult:
    """Merged result persisted on the report once the job completes."""

    total_images_analyzed: int = 0
    detections: List[Detection] = field(default_factory=list)
    peril_match: PerilMatch = field(default_factory=PerilMatch)
    fraud_signals: List[str] = field(default_factory=list)
    evidence_bullets: List[str] = field(default_factory=list)
    final_assessment: str = ""
    all_local_paths: List[str] = field(default_factory=list)
    copy_warnings: List[CopyWarning] = field(default_factory=list)

    def unique_output_uris(self) -> List[str]:
        """Distinct output URIs across detections, in first-seen order."""
        seen: Dict[str, None] = {}
        for detection in self.detections:
            if detection.output_s3_uri:
                seen.setdefault(detection.output_s3_uri, None)
        return list(seen)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_images_analyzed": self.total_images_analyzed,
            "detections": [d.to_dict() for d in self.detections],
            "peril_match": self.peril_match.to_dict(),
            "fraud_signals": list(self.fraud_signals),
            "evidence_bullets": list(self.evidence_bullets),
            "final_assessment": self.final_assessment,
            "all_local_paths": list(self.all_local_paths),
            "copy_warnings": [w.to_dict() for w in self.copy_warnings],
        }


def _coerce_confidence(value: Any) -> float:
    try:
        confidence = float(value)
    except (TypeError, ValueError):
        return 0.0
    if confidence != confidence:  # NaN
        return 0.0
    return min(max(confidence, 0.0), 1.0)


def _coerce_bbox(value: Any) -> List[float]:
    if not isinstance(value, (list, tuple)) or len(value) != 4:
        return [0.0, 0.0, 0.0, 0.0]
    try:
        return [float(v) for v in value]
    except (TypeError, ValueError):
        return [0.0, 0.0, 0.0, 0.0]


def _string_list(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    return [str(item) for item in value if item is not None and str(item).strip()]


def _mapping_list(value: Any) -> List[Mapping[str, Any]]:
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, Mapping)]


def _parse_detection(raw: Mapping[str, Any]) -> Detection:
    return Detection(
        label=str(raw.get("label") or "unknown"),
        confidence=_coerce_confidence(raw.get("confidence")),
        bbox=_coerce_bbox(raw.get("bbox")),
        notes=str(raw.get("notes") or ""),
        image_reference=raw.get("image_reference"),
        output_s3_uri=raw.get("output_s3_uri") or None,
        local_output_path=raw.get("local_output_path") or None,
    )


def parse_analysis_result(raw: Mapping[str, Any]) -> AnalysisResult:
    """Build an AnalysisResult from inference output or a stored result.

    Tolerates missing keys and malformed values; fraud signals are
    deduplicated by canonical key.
    """
    detections = [_parse_detection(item) for item in _mapping_list(raw.get("detections"))]

    peril_raw = raw.get("peril_match") if isinstance(raw.get("peril_match"), Mapping) else {}
    match = str(peril_raw.get("match") or "no_match")
    peril_match = PerilMatch(
        reported_peril=str(peril_raw.get("reported_peril") or ""),
        match=match if match in PERIL_MATCH_VALUES else "no_match",
        reason=str(peril_raw.get("reason") or ""),
    )

    total = raw.get("total_images_analyzed")
    if not isinstance(total, int) or isinstance(total, bool) or total < 0:
        total = len({d.image_reference for d in detections if d.image_reference})

    copy_warnings = [
        CopyWarning(
            source_uri=str(w.get("source_uri", "")),
            error_name=str(w.get("error_name", "")),
            error_message=str(w.get("error_message", "")),
        )
        for w in _mapping_list(raw.get("copy_warnings"))
    ]

    return AnalysisResult(
        total_images_analyzed=total,
        detections=detections,
        peril_match=peril_match,
        fraud_signals=dedupe_signals(_string_list(raw.get("fraud_signals"))),
        evidence_bullets=_string_list(raw.get("evidence_bullets")),
        final_assessment=str(raw.get("final_assessment") or ""),
        all_local_paths=_string_list(raw.get("all_local_paths")),
        copy_warnings=copy_warnings,
    )


def merge_copied_images(
    result: AnalysisResult,
    local_paths: Mapping[str, str],
    warnings: Iterable[CopyWarning],
) -> AnalysisResult:
    """Attach local storage keys and copy warnings to a result.

    Detections whose source image was not copied keep no local path.
    """
    for detection in result.detections:
        detection.local_output_path = (
            local_paths.get(detection.output_s3_uri) if detection.output_s3_uri else None
        )

    result.all_local_paths = list(local_paths.values())
    result.copy_warnings = list(warnings)
    return result


def group_detections_by_image(result: AnalysisResult) -> Dict[str, List[Detection]]:
    """Detections per local image path.

    Every copied image gets an entry, even without detections; a detection
    with no local path belongs to no group.
    """
    groups: Dict[str, List[Detection]] = {path: [] for path in result.all_local_paths}
    for detection in result.detections:
        if detection.local_output_path:
            groups.setdefault(detection.local_output_path, []).append(detection)
    return groups
