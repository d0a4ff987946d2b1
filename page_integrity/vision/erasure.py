"""Erasure and correction-fluid detection.

A text region is suspicious when it is a brightness outlier among the
page's text-bearing regions, is mostly white, and has a sharp luminance
step along its border. The border step separates a physical patch of
correction fluid from ordinary blank paper.
"""

from dataclasses import dataclass

import numpy as np

from page_integrity.extraction.models import BoundingBox
from page_integrity.utils.config import ErasureConfig
from page_integrity.utils.logger import get_logger

from .raster import region_slice

logger = get_logger(__name__)

_INK_LEVEL = 100
_WHITE_LEVEL = 240
_NEUTRAL_SPREAD = 10
_BORDER_INSET = 2
_BORDER_OUTSET = (3, 6)


@dataclass
class RegionStats:
    """Brightness statistics for one text region."""

    region: BoundingBox
    brightness: float
    white_ratio: float
    ink_ratio: float


class ErasureDetector:
    """Flags text regions that look whited out.

    Args:
        config: Erasure thresholds.
    """

    def __init__(self, config: ErasureConfig) -> None:
        self.config = config

    def detect(
        self,
        rgba: np.ndarray,
        gray: np.ndarray,
        text_regions: list[BoundingBox],
    ) -> list[BoundingBox]:
        """Return text regions that show signs of erasure.

        Args:
            rgba: RGBA raster.
            gray: Luminance raster.
            text_regions: OCR text boxes on the page.

        Returns:
            Suspicious regions, in input order.
        """
        if len(text_regions) < self.config.min_regions:
            logger.debug(
                "Skipping erasure scan: %d text regions, need %d",
                len(text_regions),
                self.config.min_regions,
            )
            return []

        stats = [
            s
            for s in (self.region_stats(rgba, gray, r) for r in text_regions)
            if s is not None and s.ink_ratio >= self.config.min_ink_ratio
        ]
        if len(stats) < self.config.min_regions:
            return []

        values = np.array([s.brightness for s in stats], dtype=np.float64)
        mean = float(values.mean())
        stdev = float(values.std())
        if stdev == 0:
            return []

        erasures = []
        for s in stats:
            z_score = (s.brightness - mean) / stdev
            if (
                z_score > self.config.z_score_threshold
                and s.white_ratio > self.config.white_ratio_threshold
                and s.brightness > self.config.brightness_threshold
                and self.edge_coverage(gray, s.region) >= self.config.edge_coverage
            ):
                logger.debug(
                    "Erasure candidate at (%.0f, %.0f): z=%.2f white=%.2f",
                    s.region.x,
                    s.region.y,
                    z_score,
                    s.white_ratio,
                )
                erasures.append(s.region)
        return erasures

    def region_stats(
        self, rgba: np.ndarray, gray: np.ndarray, region: BoundingBox
    ) -> RegionStats | None:
        """Measure brightness, whiteness and ink coverage inside a region.

        Args:
            rgba: RGBA raster.
            gray: Luminance raster.
            region: Text region.

        Returns:
            Statistics, or ``None`` if the region lies off the page.
        """
        height, width = gray.shape
        window = region_slice(region, width, height)
        if window is None:
            return None
        rows, cols = window
        rgb = rgba[rows, cols, :3].astype(np.int32)
        r, g, b = rgb[..., 0], rgb[..., 1], rgb[..., 2]
        brightness = (r + g + b) / 3.0
        white = (
            (brightness > _WHITE_LEVEL)
            & (np.abs(r - g) < _NEUTRAL_SPREAD)
            & (np.abs(g - b) < _NEUTRAL_SPREAD)
        )
        ink = gray[rows, cols] < _INK_LEVEL
        return RegionStats(
            region=region,
            brightness=float(brightness.mean()),
            white_ratio=float(white.mean()),
            ink_ratio=float(ink.mean()),
        )

    def edge_coverage(self, gray: np.ndarray, region: BoundingBox) -> float:
        """Fraction of border samples with a luminance step to the outside.

        Each sample compares the pixel just inside the region border with
        the mean of a short strip just outside it.

        Args:
            gray: Luminance raster.
            region: Text region.

        Returns:
            Share of sampled border points showing a discontinuity.
        """
        height, width = gray.shape
        window = region_slice(region, width, height)
        if window is None:
            return 0.0
        rows, cols = window
        x0, x1 = cols.start, cols.stop - 1
        y0, y1 = rows.start, rows.stop - 1
        step = max(1, self.config.border_sample_step)
        near, far = _BORDER_OUTSET

        sampled = 0
        broken = 0

        def compare_across(
            inside: tuple[int, int], outside: list[tuple[int, int]]
        ) -> None:
            nonlocal sampled, broken
            points = [(y, x) for y, x in outside if 0 <= y < height and 0 <= x < width]
            if not points:
                return
            iy, ix = inside
            outer = np.mean([gray[y, x] for y, x in points])
            sampled += 1
            if abs(float(gray[iy, ix]) - float(outer)) > self.config.edge_contrast:
                broken += 1

        for x in range(x0, x1 + 1, step):
            compare_across(
                (min(y0 + _BORDER_INSET, y1), x),
                [(y0 - d, x) for d in range(near, far)],
            )
            compare_across(
                (max(y1 - _BORDER_INSET, y0), x),
                [(y1 + d, x) for d in range(near, far)],
            )
        for y in range(y0, y1 + 1, step):
            compare_across(
                (y, min(x0 + _BORDER_INSET, x1)),
                [(y, x0 - d) for d in range(near, far)],
            )
            compare_across(
                (y, max(x1 - _BORDER_INSET, x0)),
                [(y, x1 + d) for d in range(near, far)],
            )

        return broken / sampled if sampled else 0.0
