"""Shared test fixtures for the page integrity test suite."""

from collections.abc import Callable
from pathlib import Path

import cv2
import numpy as np
import pytest

from page_integrity.extraction.models import (
    BoundingBox,
    Checkbox,
    PageExtractionData,
    SignatureBlock,
    Table,
    TableCell,
    TextBlock,
)
from page_integrity.utils.config import AppConfig, VisualConfig

APPROVAL_ROWS = (100, 250, 400, 550, 700)
APPROVAL_LABELS = (
    "Operator:",
    "Reviewed by:",
    "QA Review:",
    "QA Approval:",
    "Verified by:",
)


def noisy_ink(rng: np.random.Generator, count: int) -> np.ndarray:
    """Dark pen-like pixel values with some spread."""
    return rng.integers(10, 70, count).astype(np.uint8)[:, None]


def _approval_page(
    labels: tuple[str, ...] = APPROVAL_LABELS,
    dated: bool = True,
    checkboxes: list[Checkbox] | None = None,
) -> PageExtractionData:
    """A sign-off block: one label, signature and date per row.

    Rows are 150 px apart, so each signature is within reach of its own
    label and date only.
    """
    text_blocks = []
    signatures = []
    for y, label in zip(APPROVAL_ROWS, labels):
        text_blocks.append(TextBlock(label, BoundingBox(50, y, 100, 20), 95.0))
        signatures.append(SignatureBlock(BoundingBox(200, y, 120, 30), 88.0))
        if dated:
            text_blocks.append(
                TextBlock("12/03/2024", BoundingBox(340, y, 90, 20), 92.0)
            )
    return PageExtractionData(
        text_blocks=text_blocks,
        signatures=signatures,
        checkboxes=checkboxes or [],
    )


def _signature_table_page() -> PageExtractionData:
    """A step table whose "Verified By" column holds initials."""
    cells = [
        TableCell(0, 0, "Step", True, BoundingBox(50, 100, 100, 30)),
        TableCell(0, 1, "Verified By", True, BoundingBox(150, 100, 100, 30)),
        TableCell(0, 2, "Date", True, BoundingBox(250, 100, 100, 30)),
        TableCell(1, 0, "Mix", False, BoundingBox(50, 130, 100, 30)),
        TableCell(1, 1, "JS", False, BoundingBox(150, 130, 100, 30), 91.0),
        TableCell(1, 2, "12/03/2024", False, BoundingBox(250, 130, 100, 30)),
        TableCell(2, 0, "Dry", False, BoundingBox(50, 160, 100, 30)),
        TableCell(2, 1, "", False, BoundingBox(150, 160, 100, 30)),
        TableCell(2, 2, "", False, BoundingBox(250, 160, 100, 30)),
    ]
    return PageExtractionData(tables=[Table(cells=cells)])


@pytest.fixture
def make_approval_page() -> Callable[..., PageExtractionData]:
    """Factory for sign-off blocks; see ``_approval_page``."""
    return _approval_page


@pytest.fixture
def signature_table_page() -> PageExtractionData:
    return _signature_table_page()


@pytest.fixture
def project_root() -> Path:
    """Return the project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def config_dir(project_root: Path) -> Path:
    """Return the configs directory path."""
    return project_root / "configs"


@pytest.fixture
def rng() -> np.random.Generator:
    return np.random.default_rng(7)


@pytest.fixture
def visual_config(tmp_path: Path) -> VisualConfig:
    """Visual config that writes no thumbnails unless a test opts in."""
    return VisualConfig(
        thumbnails_enabled=False, thumbnail_dir=str(tmp_path / "thumbnails")
    )


@pytest.fixture
def app_config(visual_config: VisualConfig) -> AppConfig:
    return AppConfig(visual=visual_config)


@pytest.fixture
def blank_page() -> np.ndarray:
    """A white 300x200 RGB page."""
    return np.full((200, 300, 3), 255, dtype=np.uint8)


@pytest.fixture
def horizontal_strike_page(
    blank_page: np.ndarray, rng: np.random.Generator
) -> tuple[np.ndarray, BoundingBox]:
    """A text box crossed through its middle by a two-pixel pen stroke."""
    region = BoundingBox(60, 80, 120, 30)
    stroke = blank_page[94:96, 55:186]
    stroke[:] = noisy_ink(rng, stroke.shape[0] * stroke.shape[1]).reshape(
        stroke.shape[0], stroke.shape[1], 1
    )
    return blank_page, region


@pytest.fixture
def diagonal_strike_page(
    blank_page: np.ndarray, rng: np.random.Generator
) -> tuple[np.ndarray, BoundingBox]:
    """A text box crossed corner to corner by a 45 degree stroke."""
    region = BoundingBox(110, 75, 80, 40)
    mask = np.zeros(blank_page.shape[:2], dtype=np.uint8)
    cv2.line(mask, (122, 67), (178, 123), 255, 3)
    ink = mask > 0
    blank_page[ink] = noisy_ink(rng, int(ink.sum()))
    return blank_page, region


@pytest.fixture
def grid_page(rng: np.random.Generator) -> tuple[np.ndarray, list[BoundingBox]]:
    """Six evenly spaced ruled lines, each under its own text band."""
    page = np.full((260, 300, 3), 255, dtype=np.uint8)
    regions = []
    for y in (30, 70, 110, 150, 190, 230):
        row = page[y, 20:281]
        row[:] = noisy_ink(rng, row.shape[0])
        regions.append(BoundingBox(20, y - 15, 260, 30))
    return page, regions


@pytest.fixture
def erasure_page() -> tuple[np.ndarray, list[BoundingBox], BoundingBox]:
    """Ten handwritten entries on grey paper, one covered by correction fluid.

    Returns:
        The raster, all text regions, and the whited-out region.
    """
    page = np.full((160, 420, 3), 190, dtype=np.uint8)
    regions = []
    for row in range(2):
        for col in range(5):
            regions.append(BoundingBox(20 + col * 80, 30 + row * 60, 60, 20))

    erased = regions[7]
    for region in regions:
        x, y = int(region.x), int(region.y)
        if region is erased:
            page[y : y + 20, x : x + 60] = 255
            page[y + 7 : y + 13, x + 28 : x + 32] = 30
            continue
        for i in range(6):
            bx = x + 3 + i * 10
            page[y + 6 : y + 14, bx : bx + 5] = 30
    return page, regions, erased
