"""Data types produced by the visual anomaly detector."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Any

from page_integrity.extraction.models import BoundingBox


class AnomalyType(StrEnum):
    """Kinds of physical alteration a page can show."""

    STRIKE_THROUGH = "strike_through"
    RED_MARK = "red_mark"
    OVERWRITE = "overwrite"
    ERASURE = "erasure"
    CORRECTION_FLUID = "correction_fluid"
    SCRIBBLE = "scribble"


class Severity(StrEnum):
    """Alert severity levels, most severe first."""

    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    INFO = "info"


class LineOrientation(StrEnum):
    HORIZONTAL = "horizontal"
    DIAGONAL = "diagonal"


@dataclass
class DetectedLine:
    """A candidate stroke found during one detector pass."""

    x1: int
    y1: int
    x2: int
    y2: int
    angle: float
    length: float
    thickness: float
    orientation: LineOrientation = LineOrientation.HORIZONTAL
    continuity: float = 1.0

    @property
    def left(self) -> int:
        return min(self.x1, self.x2)

    @property
    def right(self) -> int:
        return max(self.x1, self.x2)

    @property
    def top(self) -> int:
        return min(self.y1, self.y2)

    @property
    def bottom(self) -> int:
        return max(self.y1, self.y2)

    def to_bounding_box(self) -> BoundingBox:
        """Box around the stroke, padded by its thickness (at least 3px)."""
        padding = max(self.thickness, 3.0)
        return BoundingBox(
            x=self.left - padding,
            y=self.top - padding,
            width=(self.right - self.left) + padding * 2,
            height=(self.bottom - self.top) + padding * 2 + self.thickness,
        )


@dataclass
class ColorRegion:
    """A connected patch of similarly colored pixels."""

    bounding_box: BoundingBox
    dominant_color: tuple[int, int, int]
    pixel_count: int


@dataclass(frozen=True)
class VisualAnomaly:
    """A physical alteration detected on a page image."""

    id: str
    type: AnomalyType
    confidence: float
    page_number: int
    bounding_box: BoundingBox
    severity: Severity
    description: str
    detection_method: str
    affected_text_region: BoundingBox | None = None
    affected_text: str | None = None
    thumbnail_path: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": str(self.type),
            "confidence": self.confidence,
            "page_number": self.page_number,
            "bounding_box": self.bounding_box.to_dict(),
            "affected_text_region": (
                self.affected_text_region.to_dict()
                if self.affected_text_region
                else None
            ),
            "affected_text": self.affected_text,
            "thumbnail_path": self.thumbnail_path,
            "severity": str(self.severity),
            "description": self.description,
            "detection_method": self.detection_method,
        }


@dataclass
class VisualAnalysisResult:
    """Outcome of analyzing one page image."""

    page_number: int
    image_path: str
    anomalies: list[VisualAnomaly] = field(default_factory=list)
    analysis_timestamp: datetime = field(default_factory=datetime.now)
    processing_time_ms: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "page_number": self.page_number,
            "image_path": self.image_path,
            "anomalies": [a.to_dict() for a in self.anomalies],
            "analysis_timestamp": self.analysis_timestamp.isoformat(),
            "processing_time_ms": round(self.processing_time_ms, 2),
        }
