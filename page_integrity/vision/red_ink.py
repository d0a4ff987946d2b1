"""Red-ink detection by color classification and flood fill.

Pixels are classified by three disjoint rules (bright red, dark red,
pink-red), grown into connected regions with an explicit-stack flood
fill, and regions whose centers are close are merged.
"""

import numpy as np

from page_integrity.extraction.models import BoundingBox
from page_integrity.utils.config import VisualConfig
from page_integrity.utils.logger import get_logger

from .models import ColorRegion, Severity

logger = get_logger(__name__)


def redish_mask(rgba: np.ndarray) -> np.ndarray:
    """Classify pixels as red ink.

    Args:
        rgba: RGBA raster.

    Returns:
        Boolean mask of shape ``(height, width)``.
    """
    r = rgba[..., 0].astype(np.int32)
    g = rgba[..., 1].astype(np.int32)
    b = rgba[..., 2].astype(np.int32)

    bright = (r > 150) & (r * 2 > g * 3) & (r * 2 > b * 3)
    dark = (
        ~bright
        & (r > 80)
        & (r * 10 > g * 13)
        & (r * 10 > b * 13)
        & (g < 100)
        & (b < 100)
    )
    pink = (
        ~bright
        & ~dark
        & (r > 180)
        & (g > 80)
        & (g < 160)
        & (b > 80)
        & (b < 160)
        & (r > g)
        & (r > b)
    )
    return bright | dark | pink


def flood_fill(
    rgba: np.ndarray,
    mask: np.ndarray,
    visited: np.ndarray,
    start_x: int,
    start_y: int,
    cap: int,
) -> ColorRegion:
    """Grow a 4-connected region of masked pixels from a seed.

    Uses an explicit stack and stops after ``cap`` pixels, so memory and
    run time stay bounded on pages that are mostly red.

    Args:
        rgba: RGBA raster, used for the region's mean color.
        mask: Pixels eligible for the region.
        visited: Shared visit map, updated in place.
        start_x: Seed column.
        start_y: Seed row.
        cap: Maximum number of pixels to collect.

    Returns:
        The grown region.
    """
    height, width = mask.shape
    stack = [(start_x, start_y)]
    min_x = max_x = start_x
    min_y = max_y = start_y
    total = np.zeros(3, dtype=np.int64)
    count = 0

    while stack and count < cap:
        x, y = stack.pop()
        if visited[y, x]:
            continue
        visited[y, x] = True
        if not mask[y, x]:
            continue

        min_x = min(min_x, x)
        max_x = max(max_x, x)
        min_y = min(min_y, y)
        max_y = max(max_y, y)
        total += rgba[y, x, :3]
        count += 1

        if x > 0 and not visited[y, x - 1]:
            stack.append((x - 1, y))
        if x < width - 1 and not visited[y, x + 1]:
            stack.append((x + 1, y))
        if y > 0 and not visited[y - 1, x]:
            stack.append((x, y - 1))
        if y < height - 1 and not visited[y + 1, x]:
            stack.append((x, y + 1))

    if count:
        color = tuple(int(round(c / count)) for c in total)
    else:
        color = (0, 0, 0)
    return ColorRegion(
        bounding_box=BoundingBox(min_x, min_y, max_x - min_x + 1, max_y - min_y + 1),
        dominant_color=color,
        pixel_count=count,
    )


def merge_color_regions(a: ColorRegion, b: ColorRegion) -> ColorRegion:
    """Combine two regions, weighting the mean color by pixel count."""
    total = a.pixel_count + b.pixel_count
    color = tuple(
        int(round((ca * a.pixel_count + cb * b.pixel_count) / total)) if total else 0
        for ca, cb in zip(a.dominant_color, b.dominant_color)
    )
    return ColorRegion(
        bounding_box=a.bounding_box.union(b.bounding_box),
        dominant_color=color,
        pixel_count=total,
    )


def merge_nearby_regions(
    regions: list[ColorRegion], distance: float
) -> list[ColorRegion]:
    """Greedily merge regions whose centers lie within ``distance``.

    Args:
        regions: Regions in detection order.
        distance: Center-to-center merge radius in pixels.

    Returns:
        Merged regions.
    """
    if len(regions) <= 1:
        return regions

    merged: list[ColorRegion] = []
    used: set[int] = set()
    for i, region in enumerate(regions):
        if i in used:
            continue
        used.add(i)
        current = region
        for j in range(i + 1, len(regions)):
            if j in used:
                continue
            other = regions[j]
            if current.bounding_box.center_distance(other.bounding_box) < distance:
                current = merge_color_regions(current, other)
                used.add(j)
        merged.append(current)
    return merged


class RedInkDetector:
    """Finds red pen marks on a page.

    Args:
        config: Visual detector configuration.
    """

    def __init__(self, config: VisualConfig) -> None:
        self.config = config

    def detect(self, rgba: np.ndarray) -> list[ColorRegion]:
        """Return merged red regions of at least ``min_red_pixels`` pixels.

        Args:
            rgba: RGBA raster.

        Returns:
            Red regions in scan order.
        """
        mask = redish_mask(rgba)
        visited = np.zeros(mask.shape, dtype=bool)
        regions: list[ColorRegion] = []

        for y, x in np.argwhere(mask):
            if visited[y, x]:
                continue
            region = flood_fill(
                rgba, mask, visited, int(x), int(y), self.config.red_fill_cap
            )
            if region.pixel_count >= self.config.min_red_pixels:
                regions.append(region)

        merged = merge_nearby_regions(regions, self.config.red_merge_distance)
        logger.debug(
            "Red ink: %d red pixels, %d regions, %d after merge",
            int(mask.sum()),
            len(regions),
            len(merged),
        )
        return merged

    def overlapping_text(
        self, region: ColorRegion, text_regions: list[BoundingBox]
    ) -> list[BoundingBox]:
        """Text regions covered by more than 10% of their area."""
        overlapping = []
        for text in text_regions:
            if text.area <= 0:
                continue
            overlap = region.bounding_box.intersection_area(text)
            if overlap > 0 and overlap / text.area > 0.1:
                overlapping.append(text)
        return overlapping

    def should_report(
        self, region: ColorRegion, overlapping: list[BoundingBox]
    ) -> bool:
        """Report marks on text, and free-floating marks above the size floor."""
        return bool(overlapping) or region.pixel_count > self.config.red_emit_floor


def red_mark_severity(region: ColorRegion, overlapping: list[BoundingBox]) -> Severity:
    """Grade a red mark by whether it touches text and how large it is."""
    if overlapping and region.pixel_count > 200:
        return Severity.HIGH
    if overlapping or region.pixel_count > 500:
        return Severity.MEDIUM
    return Severity.LOW
