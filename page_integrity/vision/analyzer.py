"""Visual anomaly detection for rendered batch-record pages.

Runs the strike-through, red-ink and erasure detectors over one page
raster, consolidates their findings, and writes thumbnails. Analysis is
advisory: every failure path resolves to an empty result.
"""

import dataclasses
import time
import uuid
from pathlib import Path

import numpy as np

from page_integrity.errors import AnalysisFailure, InputUnavailable
from page_integrity.extraction.models import BoundingBox, PageExtractionData
from page_integrity.utils.config import VisualConfig
from page_integrity.utils.logger import get_logger, get_page_logger

from .consolidate import ThumbnailWriter, clamp_anomalies, consolidate_anomalies
from .erasure import ErasureDetector
from .models import (
    AnomalyType,
    LineOrientation,
    Severity,
    VisualAnalysisResult,
    VisualAnomaly,
)
from .raster import ensure_rgba, load_rgba, sobel_magnitude, to_luminance
from .red_ink import RedInkDetector, red_mark_severity
from .strikethrough import StrikethroughDetector

logger = get_logger(__name__)

HORIZONTAL_STRIKE_CONFIDENCE = 80.0
DIAGONAL_STRIKE_CONFIDENCE = 90.0
RED_MARK_CONFIDENCE = 75.0
ERASURE_CONFIDENCE = 60.0

_ID_PREFIXES = {
    AnomalyType.STRIKE_THROUGH: "strike",
    AnomalyType.RED_MARK: "red",
    AnomalyType.ERASURE: "erasure",
}


def extract_text_regions(page: PageExtractionData) -> list[BoundingBox]:
    """Collect the boxes of everything OCR recognized as text.

    Includes text blocks, form-field values, non-empty table cells and
    handwritten regions.

    Args:
        page: Page extraction data.

    Returns:
        Text regions in extraction order.
    """
    regions: list[BoundingBox] = []
    regions.extend(b.bounding_box for b in page.text_blocks if b.bounding_box)
    regions.extend(
        f.value_bounding_box for f in page.form_fields if f.value_bounding_box
    )
    for table in page.tables:
        regions.extend(
            c.bounding_box for c in table.cells if c.bounding_box and c.text.strip()
        )
    regions.extend(
        h.bounding_box for h in page.handwritten_regions if h.bounding_box
    )
    return regions


def attach_affected_text(
    result: VisualAnalysisResult, page: PageExtractionData
) -> VisualAnalysisResult:
    """Fill ``affected_text`` from the OCR text of each anomaly's region."""
    texts: dict[BoundingBox, str] = {}
    for block in page.text_blocks:
        if block.bounding_box:
            texts.setdefault(block.bounding_box, block.text)
    for form_field in page.form_fields:
        if form_field.value_bounding_box:
            texts.setdefault(form_field.value_bounding_box, form_field.field_value)
    for table in page.tables:
        for cell in table.cells:
            if cell.bounding_box:
                texts.setdefault(cell.bounding_box, cell.text)
    for region in page.handwritten_regions:
        if region.bounding_box:
            texts.setdefault(region.bounding_box, region.text)

    result.anomalies = [
        dataclasses.replace(a, affected_text=texts.get(a.affected_text_region))
        if a.affected_text_region is not None
        else a
        for a in result.anomalies
    ]
    return result


class VisualAnalyzer:
    """Detects strike-throughs, red marks and erasures on page images.

    Args:
        config: Visual detector configuration.
        thumbnail_dir: Overrides ``config.thumbnail_dir`` when given.
    """

    def __init__(
        self,
        config: VisualConfig | None = None,
        thumbnail_dir: Path | str | None = None,
    ) -> None:
        self.config = config or VisualConfig()
        self.strikes = StrikethroughDetector(self.config)
        self.red_ink = RedInkDetector(self.config)
        self.erasures = ErasureDetector(self.config.erasure)
        self.thumbnails = ThumbnailWriter(
            thumbnail_dir or self.config.thumbnail_dir,
            padding=self.config.thumbnail_padding,
            max_width=self.config.thumbnail_max_width,
            workers=self.config.thumbnail_workers,
        )

    def analyze_page_image(
        self,
        image_path: Path | str,
        page_number: int,
        text_regions: list[BoundingBox],
        document_id: str,
    ) -> VisualAnalysisResult:
        """Analyze a rendered page image file.

        Args:
            image_path: Path to the rendered page raster.
            page_number: 1-based page number.
            text_regions: OCR text boxes in the raster's pixel space.
            document_id: Owning document identifier, used in anomaly ids.

        Returns:
            Analysis result; empty when the image is missing or analysis fails.
        """
        start = time.perf_counter()
        page_log = get_page_logger(logger, page_number, document_id)
        try:
            rgba = load_rgba(image_path)
        except InputUnavailable as exc:
            page_log.warning("%s", exc)
            return self._empty(page_number, str(image_path), start)
        return self._run(
            rgba, str(image_path), page_number, text_regions, document_id, start
        )

    def analyze_raster(
        self,
        image: np.ndarray,
        page_number: int,
        text_regions: list[BoundingBox],
        document_id: str,
        image_path: str = "",
    ) -> VisualAnalysisResult:
        """Analyze an in-memory raster (grayscale, RGB or RGBA).

        Args:
            image: Page raster.
            page_number: 1-based page number.
            text_regions: OCR text boxes in the raster's pixel space.
            document_id: Owning document identifier.
            image_path: Path recorded in the result.

        Returns:
            Analysis result; empty when analysis fails.
        """
        start = time.perf_counter()
        try:
            rgba = ensure_rgba(image)
        except (ValueError, IndexError) as exc:
            get_page_logger(logger, page_number, document_id).error(
                "Unusable raster: %s", exc
            )
            return self._empty(page_number, image_path, start)
        return self._run(
            rgba, image_path, page_number, text_regions, document_id, start
        )

    def _run(
        self,
        rgba: np.ndarray,
        image_path: str,
        page_number: int,
        text_regions: list[BoundingBox],
        document_id: str,
        start: float,
    ) -> VisualAnalysisResult:
        page_log = get_page_logger(logger, page_number, document_id)
        try:
            anomalies = self.detect(rgba, page_number, text_regions, document_id)
        except AnalysisFailure as exc:
            page_log.error("%s", exc, exc_info=exc.__cause__ is not None)
            return self._empty(page_number, image_path, start)

        if self.config.thumbnails_enabled:
            anomalies = self.thumbnails.attach(rgba, anomalies)

        elapsed = (time.perf_counter() - start) * 1000
        if anomalies:
            page_log.info(
                "Visual anomalies detected: %d in %.0f ms", len(anomalies), elapsed
            )
        else:
            page_log.debug("No visual anomalies (%.0f ms)", elapsed)
        return VisualAnalysisResult(
            page_number=page_number,
            image_path=image_path,
            anomalies=anomalies,
            processing_time_ms=elapsed,
        )

    def detect(
        self,
        rgba: np.ndarray,
        page_number: int,
        text_regions: list[BoundingBox],
        document_id: str,
    ) -> list[VisualAnomaly]:
        """Run all detectors and consolidate their anomalies.

        Unlike the ``analyze_*`` entry points this raises on failure and
        does not write thumbnails.

        Args:
            rgba: RGBA raster.
            page_number: 1-based page number.
            text_regions: OCR text boxes.
            document_id: Owning document identifier.

        Returns:
            Consolidated anomalies clamped to the page.

        Raises:
            AnalysisFailure: If the raster is unusable or a detector fails.
        """
        height, width = rgba.shape[:2]
        if height < 3 or width < 3:
            raise AnalysisFailure(f"Raster too small to analyze: {width}x{height}")
        try:
            anomalies = self._detect_all(rgba, page_number, text_regions, document_id)
        except Exception as exc:
            raise AnalysisFailure(f"Visual analysis failed: {exc}") from exc

        consolidated = consolidate_anomalies(
            anomalies, self.config.anomaly_merge_distance
        )
        return clamp_anomalies(consolidated, width, height)

    def _detect_all(
        self,
        rgba: np.ndarray,
        page_number: int,
        text_regions: list[BoundingBox],
        document_id: str,
    ) -> list[VisualAnomaly]:
        gray = to_luminance(rgba)
        edges = sobel_magnitude(gray)

        anomalies: list[VisualAnomaly] = []
        anomalies.extend(
            self._strike_anomalies(gray, edges, text_regions, page_number, document_id)
        )
        anomalies.extend(
            self._red_anomalies(rgba, text_regions, page_number, document_id)
        )
        anomalies.extend(
            self._erasure_anomalies(rgba, gray, text_regions, page_number, document_id)
        )
        return anomalies

    def _strike_anomalies(
        self,
        gray: np.ndarray,
        edges: np.ndarray,
        text_regions: list[BoundingBox],
        page_number: int,
        document_id: str,
    ) -> list[VisualAnomaly]:
        best: dict[int, tuple] = {}
        for line in self.strikes.detect(gray, edges, text_regions):
            for index, region in enumerate(text_regions):
                if not self.strikes.strikes_region(line, region):
                    continue
                rank = (line.orientation is LineOrientation.DIAGONAL, line.length)
                if index not in best or rank > best[index][0]:
                    best[index] = (rank, line)

        anomalies = []
        for index in sorted(best):
            _, line = best[index]
            diagonal = line.orientation is LineOrientation.DIAGONAL
            anomaly_id = _anomaly_id(
                AnomalyType.STRIKE_THROUGH, document_id, page_number
            )
            anomalies.append(
                VisualAnomaly(
                    id=anomaly_id,
                    type=AnomalyType.STRIKE_THROUGH,
                    confidence=(
                        DIAGONAL_STRIKE_CONFIDENCE
                        if diagonal
                        else HORIZONTAL_STRIKE_CONFIDENCE
                    ),
                    page_number=page_number,
                    bounding_box=line.to_bounding_box(),
                    affected_text_region=text_regions[index],
                    severity=Severity.HIGH,
                    description=(
                        f"{'Diagonal' if diagonal else 'Horizontal'} strike-through "
                        "line detected crossing text region"
                    ),
                    detection_method="line_detection",
                )
            )
        return anomalies

    def _red_anomalies(
        self,
        rgba: np.ndarray,
        text_regions: list[BoundingBox],
        page_number: int,
        document_id: str,
    ) -> list[VisualAnomaly]:
        anomalies = []
        for region in self.red_ink.detect(rgba):
            overlapping = self.red_ink.overlapping_text(region, text_regions)
            if not self.red_ink.should_report(region, overlapping):
                continue
            anomalies.append(
                VisualAnomaly(
                    id=_anomaly_id(AnomalyType.RED_MARK, document_id, page_number),
                    type=AnomalyType.RED_MARK,
                    confidence=RED_MARK_CONFIDENCE,
                    page_number=page_number,
                    bounding_box=region.bounding_box,
                    affected_text_region=overlapping[0] if overlapping else None,
                    severity=red_mark_severity(region, overlapping),
                    description=(
                        "Red ink/pen mark detected"
                        + (" near text" if overlapping else "")
                    ),
                    detection_method="color_mask",
                )
            )
        return anomalies

    def _erasure_anomalies(
        self,
        rgba: np.ndarray,
        gray: np.ndarray,
        text_regions: list[BoundingBox],
        page_number: int,
        document_id: str,
    ) -> list[VisualAnomaly]:
        return [
            VisualAnomaly(
                id=_anomaly_id(AnomalyType.ERASURE, document_id, page_number),
                type=AnomalyType.ERASURE,
                confidence=ERASURE_CONFIDENCE,
                page_number=page_number,
                bounding_box=region,
                affected_text_region=region,
                severity=Severity.MEDIUM,
                description="Possible erasure or correction fluid detected",
                detection_method="brightness_analysis",
            )
            for region in self.erasures.detect(rgba, gray, text_regions)
        ]

    @staticmethod
    def _empty(page_number: int, image_path: str, start: float) -> VisualAnalysisResult:
        return VisualAnalysisResult(
            page_number=page_number,
            image_path=image_path,
            anomalies=[],
            processing_time_ms=(time.perf_counter() - start) * 1000,
        )


def _anomaly_id(kind: AnomalyType, document_id: str, page_number: int) -> str:
    return f"{_ID_PREFIXES[kind]}_{document_id}_p{page_number}_{uuid.uuid4().hex[:9]}"
