"""Anomaly consolidation and thumbnail generation."""

import dataclasses
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

import cv2
import numpy as np
from PIL import Image

from page_integrity.errors import ThumbnailFailure
from page_integrity.extraction.models import BoundingBox
from page_integrity.utils.logger import get_logger

from .models import VisualAnomaly

logger = get_logger(__name__)


def consolidate_anomalies(
    anomalies: list[VisualAnomaly], merge_distance: float
) -> list[VisualAnomaly]:
    """Merge same-type anomalies whose box centers are close.

    Merging unions the boxes and keeps the highest confidence; the first
    anomaly of a cluster supplies the remaining fields. Passes repeat until
    no two same-type anomalies have centers within ``merge_distance``,
    because a growing union can pull in a neighbour that was out of reach
    earlier.

    Args:
        anomalies: Anomalies in detection order.
        merge_distance: Center-to-center merge radius in pixels.

    Returns:
        Consolidated anomalies.
    """
    current = list(anomalies)
    while True:
        merged: list[VisualAnomaly] = []
        used: set[int] = set()
        changed = False
        for i, anomaly in enumerate(current):
            if i in used:
                continue
            used.add(i)
            box = anomaly.bounding_box
            confidence = anomaly.confidence
            for j in range(i + 1, len(current)):
                other = current[j]
                if j in used or other.type != anomaly.type:
                    continue
                if box.center_distance(other.bounding_box) < merge_distance:
                    box = box.union(other.bounding_box)
                    confidence = max(confidence, other.confidence)
                    used.add(j)
                    changed = True
            merged.append(
                dataclasses.replace(anomaly, bounding_box=box, confidence=confidence)
            )
        current = merged
        if not changed:
            return current


def clamp_anomalies(
    anomalies: list[VisualAnomaly], width: int, height: int
) -> list[VisualAnomaly]:
    """Clip anomaly boxes to the page."""
    return [
        dataclasses.replace(a, bounding_box=a.bounding_box.clamp(width, height))
        for a in anomalies
    ]


class ThumbnailWriter:
    """Writes cropped PNG previews of anomalies.

    The output directory is created on first write.

    Args:
        output_dir: Directory for thumbnail files.
        padding: Pixels added around the anomaly box before cropping.
        max_width: Thumbnails wider than this are scaled down.
        workers: Number of threads writing thumbnails concurrently.
    """

    def __init__(
        self,
        output_dir: Path | str,
        padding: int = 20,
        max_width: int = 400,
        workers: int = 1,
    ) -> None:
        self.output_dir = Path(output_dir)
        self.padding = padding
        self.max_width = max_width
        self.workers = max(1, workers)

    def render(self, rgba: np.ndarray, box: BoundingBox) -> np.ndarray:
        """Crop a padded region and shrink it to the maximum width.

        Args:
            rgba: RGBA raster.
            box: Region to crop.

        Returns:
            Thumbnail pixels.

        Raises:
            ThumbnailFailure: If the padded box does not intersect the page.
        """
        height, width = rgba.shape[:2]
        x = max(0, int(np.floor(box.x - self.padding)))
        y = max(0, int(np.floor(box.y - self.padding)))
        crop_w = min(int(np.floor(box.width + self.padding * 2)), width - x)
        crop_h = min(int(np.floor(box.height + self.padding * 2)), height - y)
        if crop_w <= 0 or crop_h <= 0:
            raise ThumbnailFailure(f"Empty crop for box {box}")

        crop = rgba[y : y + crop_h, x : x + crop_w]
        if crop_w > self.max_width:
            scale = self.max_width / crop_w
            new_size = (self.max_width, max(1, int(round(crop_h * scale))))
            crop = cv2.resize(crop, new_size, interpolation=cv2.INTER_AREA)
        return crop

    def write(self, rgba: np.ndarray, anomaly: VisualAnomaly) -> str | None:
        """Write one thumbnail; failures are logged and yield ``None``.

        Args:
            rgba: RGBA raster.
            anomaly: Anomaly to preview.

        Returns:
            Path of the written PNG, or ``None`` on failure.
        """
        try:
            pixels = self.render(rgba, anomaly.bounding_box)
            self.output_dir.mkdir(parents=True, exist_ok=True)
            path = self.output_dir / f"{anomaly.id}.png"
            Image.fromarray(np.ascontiguousarray(pixels)).save(path, format="PNG")
            return str(path)
        except (ThumbnailFailure, OSError, ValueError) as exc:
            logger.warning("Thumbnail for %s not written: %s", anomaly.id, exc)
            return None

    def attach(
        self, rgba: np.ndarray, anomalies: list[VisualAnomaly]
    ) -> list[VisualAnomaly]:
        """Write thumbnails and return anomalies carrying their paths.

        Args:
            rgba: RGBA raster.
            anomalies: Consolidated anomalies.

        Returns:
            Anomalies with ``thumbnail_path`` set (``None`` where writing failed).
        """
        if not anomalies:
            return []
        if self.workers == 1 or len(anomalies) == 1:
            paths = [self.write(rgba, a) for a in anomalies]
        else:
            with ThreadPoolExecutor(max_workers=self.workers) as executor:
                paths = list(executor.map(lambda a: self.write(rgba, a), anomalies))
        return [
            dataclasses.replace(a, thumbnail_path=p) for a, p in zip(anomalies, paths)
        ]
