"""Typed OCR/layout primitives consumed by the page analyzers.

These mirror what the external extraction service produces for one page.
All boxes share the pixel space of the rendered page raster.
"""

import math
from dataclasses import dataclass, field


@dataclass(frozen=True)
class BoundingBox:
    """Axis-aligned bounding box, pixel space, top-left origin."""

    x: float
    y: float
    width: float
    height: float

    @property
    def right(self) -> float:
        return self.x + self.width

    @property
    def bottom(self) -> float:
        return self.y + self.height

    @property
    def area(self) -> float:
        return max(0.0, self.width) * max(0.0, self.height)

    @property
    def center(self) -> tuple[float, float]:
        return (self.x + self.width / 2, self.y + self.height / 2)

    def center_distance(self, other: "BoundingBox") -> float:
        """Euclidean distance between the centers of two boxes."""
        ax, ay = self.center
        bx, by = other.center
        return math.hypot(ax - bx, ay - by)

    def union(self, other: "BoundingBox") -> "BoundingBox":
        """Smallest box enclosing both boxes."""
        x = min(self.x, other.x)
        y = min(self.y, other.y)
        right = max(self.right, other.right)
        bottom = max(self.bottom, other.bottom)
        return BoundingBox(x, y, right - x, bottom - y)

    def intersection_area(self, other: "BoundingBox") -> float:
        overlap_x = max(0.0, min(self.right, other.right) - max(self.x, other.x))
        overlap_y = max(0.0, min(self.bottom, other.bottom) - max(self.y, other.y))
        return overlap_x * overlap_y

    def contains_point(self, px: float, py: float) -> bool:
        return self.x <= px <= self.right and self.y <= py <= self.bottom

    def pad(self, amount: float) -> "BoundingBox":
        return BoundingBox(
            self.x - amount,
            self.y - amount,
            self.width + 2 * amount,
            self.height + 2 * amount,
        )

    def clamp(self, width: float, height: float) -> "BoundingBox":
        """Clip the box to ``[0, width] x [0, height]``."""
        x = min(max(self.x, 0.0), width)
        y = min(max(self.y, 0.0), height)
        right = min(max(self.right, 0.0), width)
        bottom = min(max(self.bottom, 0.0), height)
        return BoundingBox(x, y, max(0.0, right - x), max(0.0, bottom - y))

    def to_dict(self) -> dict[str, float]:
        return {"x": self.x, "y": self.y, "width": self.width, "height": self.height}


@dataclass
class TextBlock:
    """A run of printed text recognized by OCR."""

    text: str
    bounding_box: BoundingBox | None = None
    confidence: float = 0.0


@dataclass
class FormField:
    """A key/value pair detected by the form parser."""

    field_name: str
    field_value: str = ""
    name_bounding_box: BoundingBox | None = None
    value_bounding_box: BoundingBox | None = None
    confidence: float = 0.0


@dataclass
class TableCell:
    """One cell of a detected table."""

    row_index: int
    col_index: int
    text: str = ""
    is_header: bool = False
    bounding_box: BoundingBox | None = None
    confidence: float = 0.0


@dataclass
class Table:
    """A detected table made of cells."""

    cells: list[TableCell] = field(default_factory=list)
    bounding_box: BoundingBox | None = None

    def header_cells(self) -> list[TableCell]:
        """Return header cells, falling back to row 0 when none are flagged."""
        flagged = [c for c in self.cells if c.is_header]
        if flagged:
            return flagged
        return [c for c in self.cells if c.row_index == 0]


@dataclass
class HandwrittenRegion:
    """A region the extractor classified as handwriting."""

    text: str = ""
    bounding_box: BoundingBox | None = None
    confidence: float = 0.0


@dataclass
class SignatureBlock:
    """A region the extractor classified as a signature."""

    bounding_box: BoundingBox | None = None
    confidence: float = 0.0
    text: str = ""


@dataclass
class Checkbox:
    """A detected checkbox and its state."""

    state: str
    bounding_box: BoundingBox | None = None
    label: str = ""
    confidence: float = 0.0

    @property
    def is_checked(self) -> bool:
        return self.state == "checked"


@dataclass
class PageDimensions:
    """Rendered page size in pixels."""

    width: float
    height: float


@dataclass
class PageExtractionData:
    """All OCR/layout primitives extracted from a single page."""

    text_blocks: list[TextBlock] = field(default_factory=list)
    form_fields: list[FormField] = field(default_factory=list)
    tables: list[Table] = field(default_factory=list)
    handwritten_regions: list[HandwrittenRegion] = field(default_factory=list)
    signatures: list[SignatureBlock] = field(default_factory=list)
    checkboxes: list[Checkbox] = field(default_factory=list)
    page_dimensions: PageDimensions | None = None
