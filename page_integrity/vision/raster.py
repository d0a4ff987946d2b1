"""Raster loading and per-pixel primitives shared by the detectors.

Rasters are ``(height, width, 4)`` uint8 RGBA arrays in the same pixel
space as the OCR bounding boxes.
"""

from pathlib import Path

import cv2
import numpy as np
from PIL import Image, UnidentifiedImageError

from page_integrity.errors import InputUnavailable
from page_integrity.extraction.models import BoundingBox
from page_integrity.utils.logger import get_logger

logger = get_logger(__name__)


def load_rgba(path: Path | str) -> np.ndarray:
    """Load an image file as an RGBA array.

    Args:
        path: Path to the rendered page image.

    Returns:
        RGBA raster of shape ``(height, width, 4)``.

    Raises:
        InputUnavailable: If the file is missing or cannot be decoded.
    """
    path = Path(path)
    if not path.exists():
        raise InputUnavailable(f"Image not found: {path}")
    try:
        with Image.open(path) as img:
            rgba = np.array(img.convert("RGBA"))
    except (UnidentifiedImageError, OSError) as exc:
        raise InputUnavailable(f"Cannot decode image {path}: {exc}") from exc
    logger.debug("Loaded raster %s (%dx%d)", path, rgba.shape[1], rgba.shape[0])
    return rgba


def ensure_rgba(image: np.ndarray) -> np.ndarray:
    """Coerce grayscale, RGB or RGBA arrays to RGBA uint8.

    Args:
        image: Raster as a numpy array.

    Returns:
        RGBA raster.
    """
    if image.ndim == 2:
        rgb = np.stack([image] * 3, axis=-1)
    elif image.shape[2] == 3:
        rgb = image
    elif image.shape[2] == 4:
        return image.astype(np.uint8, copy=False)
    else:
        raise ValueError(f"Unsupported raster shape: {image.shape}")
    alpha = np.full(rgb.shape[:2] + (1,), 255, dtype=np.uint8)
    return np.concatenate([rgb.astype(np.uint8), alpha], axis=-1)


def to_luminance(rgba: np.ndarray) -> np.ndarray:
    """Convert RGBA to 8-bit luminance (0.299R + 0.587G + 0.114B).

    Args:
        rgba: RGBA raster.

    Returns:
        Grayscale raster of shape ``(height, width)``.
    """
    rgb = rgba[..., :3].astype(np.float64)
    gray = 0.299 * rgb[..., 0] + 0.587 * rgb[..., 1] + 0.114 * rgb[..., 2]
    return np.clip(np.rint(gray), 0, 255).astype(np.uint8)


def sobel_magnitude(gray: np.ndarray) -> np.ndarray:
    """Compute the Sobel gradient magnitude, saturated at 255.

    The one-pixel frame is left at zero because the 3x3 kernel does not
    fit there.

    Args:
        gray: Grayscale raster.

    Returns:
        Gradient magnitude map as uint8.
    """
    src = gray.astype(np.float64)
    gx = cv2.Sobel(src, cv2.CV_64F, 1, 0, ksize=3)
    gy = cv2.Sobel(src, cv2.CV_64F, 0, 1, ksize=3)
    magnitude = np.minimum(255.0, np.sqrt(gx * gx + gy * gy)).astype(np.uint8)
    magnitude[0, :] = 0
    magnitude[-1, :] = 0
    magnitude[:, 0] = 0
    magnitude[:, -1] = 0
    return magnitude


def region_slice(
    box: BoundingBox, width: int, height: int
) -> tuple[slice, slice] | None:
    """Integer pixel window for a box, clipped to the raster.

    Args:
        box: Region in pixel space.
        width: Raster width.
        height: Raster height.

    Returns:
        ``(rows, cols)`` slices, or ``None`` if the box lies off the page.
    """
    x0 = max(0, int(np.floor(box.x)))
    y0 = max(0, int(np.floor(box.y)))
    x1 = min(width, int(np.floor(box.right)))
    y1 = min(height, int(np.floor(box.bottom)))
    if x1 <= x0 or y1 <= y0:
        return None
    return slice(y0, y1), slice(x0, x1)
