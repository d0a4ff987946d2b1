"""Tests for raster loading and pixel primitives."""

from pathlib import Path

import numpy as np
import pytest
from PIL import Image

from page_integrity.errors import InputUnavailable
from page_integrity.extraction.models import BoundingBox
from page_integrity.vision.raster import (
    ensure_rgba,
    load_rgba,
    region_slice,
    sobel_magnitude,
    to_luminance,
)


class TestLoadRgba:
    """Tests for load_rgba."""

    def test_loads_rgb_png_as_rgba(self, tmp_path: Path) -> None:
        path = tmp_path / "page.png"
        Image.fromarray(np.zeros((20, 30, 3), dtype=np.uint8)).save(path)
        rgba = load_rgba(path)
        assert rgba.shape == (20, 30, 4)
        assert rgba.dtype == np.uint8
        assert (rgba[..., 3] == 255).all()

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(InputUnavailable, match="not found"):
            load_rgba(tmp_path / "missing.png")

    def test_undecodable_file(self, tmp_path: Path) -> None:
        path = tmp_path / "page.png"
        path.write_bytes(b"not an image")
        with pytest.raises(InputUnavailable, match="Cannot decode"):
            load_rgba(path)


class TestEnsureRgba:
    """Tests for ensure_rgba."""

    def test_grayscale(self) -> None:
        rgba = ensure_rgba(np.full((4, 5), 7, dtype=np.uint8))
        assert rgba.shape == (4, 5, 4)
        assert (rgba[..., :3] == 7).all()
        assert (rgba[..., 3] == 255).all()

    def test_rgb(self) -> None:
        rgb = np.zeros((4, 5, 3), dtype=np.uint8)
        rgb[..., 0] = 200
        rgba = ensure_rgba(rgb)
        assert rgba.shape == (4, 5, 4)
        assert (rgba[..., 0] == 200).all()

    def test_rgba_passthrough(self) -> None:
        rgba = np.zeros((4, 5, 4), dtype=np.uint8)
        assert ensure_rgba(rgba) is rgba

    def test_unsupported_channels(self) -> None:
        with pytest.raises(ValueError):
            ensure_rgba(np.zeros((4, 5, 2), dtype=np.uint8))


class TestLuminance:
    """Tests for to_luminance."""

    def test_weights(self) -> None:
        rgba = np.zeros((1, 3, 4), dtype=np.uint8)
        rgba[0, 0, :3] = (255, 0, 0)
        rgba[0, 1, :3] = (0, 255, 0)
        rgba[0, 2, :3] = (255, 255, 255)
        gray = to_luminance(rgba)
        assert gray.tolist() == [[76, 150, 255]]


class TestSobelMagnitude:
    """Tests for sobel_magnitude."""

    def test_uniform_image_has_no_edges(self) -> None:
        gray = np.full((10, 10), 128, dtype=np.uint8)
        assert not sobel_magnitude(gray).any()

    def test_step_saturates_and_frame_is_zero(self) -> None:
        gray = np.zeros((10, 10), dtype=np.uint8)
        gray[:, 5:] = 255
        edges = sobel_magnitude(gray)
        assert edges[5, 4] == 255
        assert edges[5, 5] == 255
        assert edges[5, 1] == 0
        assert not edges[0, :].any()
        assert not edges[:, -1].any()


class TestRegionSlice:
    """Tests for region_slice."""

    def test_clips_to_raster(self) -> None:
        rows, cols = region_slice(BoundingBox(-5, 2.7, 20, 5), 10, 6)
        assert (rows.start, rows.stop) == (2, 6)
        assert (cols.start, cols.stop) == (0, 10)

    def test_off_page(self) -> None:
        assert region_slice(BoundingBox(50, 50, 5, 5), 10, 10) is None
