"""Build :class:`PageExtractionData` from extraction-service JSON.

The extraction service emits camelCase keys (``textBlocks``,
``boundingBox``); files written by this package use snake_case. Both are
accepted, and every section is optional.
"""

import json
import re
from pathlib import Path
from typing import Any

from page_integrity.errors import ExtractionFormatError
from page_integrity.utils.logger import get_logger

from .models import (
    BoundingBox,
    Checkbox,
    FormField,
    HandwrittenRegion,
    PageDimensions,
    PageExtractionData,
    SignatureBlock,
    Table,
    TableCell,
    TextBlock,
)

logger = get_logger(__name__)

_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")


def _snake(key: str) -> str:
    return _CAMEL_BOUNDARY.sub("_", key).lower()


def _normalize_keys(raw: dict[str, Any]) -> dict[str, Any]:
    return {_snake(k): v for k, v in raw.items()}


def _get(raw: dict[str, Any], key: str, default: Any = None) -> Any:
    value = raw.get(key, default)
    return default if value is None else value


def parse_bounding_box(raw: Any) -> BoundingBox | None:
    """Parse a ``{x, y, width, height}`` mapping.

    Args:
        raw: Mapping, or ``None`` when the primitive has no geometry.

    Returns:
        Parsed box, or ``None`` if ``raw`` is empty.

    Raises:
        ExtractionFormatError: If the mapping lacks a coordinate or holds
            a non-numeric value.
    """
    if not raw:
        return None
    if not isinstance(raw, dict):
        raise ExtractionFormatError(f"Bounding box must be an object, got {raw!r}")
    try:
        return BoundingBox(
            x=float(raw["x"]),
            y=float(raw["y"]),
            width=float(raw["width"]),
            height=float(raw["height"]),
        )
    except (KeyError, TypeError, ValueError) as exc:
        raise ExtractionFormatError(f"Invalid bounding box {raw!r}") from exc


def _items(data: dict[str, Any], key: str) -> list[dict[str, Any]]:
    value = _get(data, key, [])
    if not isinstance(value, list):
        raise ExtractionFormatError(f"'{key}' must be a list")
    items = []
    for item in value:
        if not isinstance(item, dict):
            raise ExtractionFormatError(f"Entries of '{key}' must be objects")
        items.append(_normalize_keys(item))
    return items


def _parse_table(raw: dict[str, Any]) -> Table:
    cells = []
    for cell in _items(raw, "cells"):
        cells.append(
            TableCell(
                row_index=int(_get(cell, "row_index", 0)),
                col_index=int(_get(cell, "col_index", _get(cell, "column_index", 0))),
                text=str(_get(cell, "text", "")),
                is_header=bool(_get(cell, "is_header", False)),
                bounding_box=parse_bounding_box(cell.get("bounding_box")),
                confidence=float(_get(cell, "confidence", 0.0)),
            )
        )
    return Table(cells=cells, bounding_box=parse_bounding_box(raw.get("bounding_box")))


def page_from_dict(raw: dict[str, Any]) -> PageExtractionData:
    """Convert one page of extraction JSON into typed primitives.

    Args:
        raw: Page extraction mapping (camelCase or snake_case keys).

    Returns:
        Parsed page extraction data.

    Raises:
        ExtractionFormatError: If a section has the wrong shape.
    """
    if not isinstance(raw, dict):
        raise ExtractionFormatError("Page extraction must be a JSON object")
    try:
        page = _parse_sections(_normalize_keys(raw))
    except ExtractionFormatError:
        raise
    except (TypeError, ValueError) as exc:
        raise ExtractionFormatError(f"Invalid value in page extraction: {exc}") from exc

    logger.debug(
        "Parsed page extraction: %d text blocks, %d fields, %d tables, "
        "%d handwritten, %d signatures, %d checkboxes",
        len(page.text_blocks),
        len(page.form_fields),
        len(page.tables),
        len(page.handwritten_regions),
        len(page.signatures),
        len(page.checkboxes),
    )
    return page


def _parse_sections(data: dict[str, Any]) -> PageExtractionData:
    text_blocks = [
        TextBlock(
            text=str(_get(b, "text", "")),
            bounding_box=parse_bounding_box(b.get("bounding_box")),
            confidence=float(_get(b, "confidence", 0.0)),
        )
        for b in _items(data, "text_blocks")
    ]
    form_fields = [
        FormField(
            field_name=str(_get(f, "field_name", "")),
            field_value=str(_get(f, "field_value", "")),
            name_bounding_box=parse_bounding_box(f.get("name_bounding_box")),
            value_bounding_box=parse_bounding_box(f.get("value_bounding_box")),
            confidence=float(_get(f, "confidence", 0.0)),
        )
        for f in _items(data, "form_fields")
    ]
    tables = [_parse_table(t) for t in _items(data, "tables")]
    handwritten = [
        HandwrittenRegion(
            text=str(_get(h, "text", "")),
            bounding_box=parse_bounding_box(h.get("bounding_box")),
            confidence=float(_get(h, "confidence", 0.0)),
        )
        for h in _items(data, "handwritten_regions")
    ]
    signatures = [
        SignatureBlock(
            bounding_box=parse_bounding_box(s.get("bounding_box")),
            confidence=float(_get(s, "confidence", 0.0)),
            text=str(_get(s, "text", "")),
        )
        for s in _items(data, "signatures")
    ]
    checkboxes = [
        Checkbox(
            state=str(_get(c, "state", "unchecked")).lower(),
            bounding_box=parse_bounding_box(c.get("bounding_box")),
            label=str(_get(c, "label", "")),
            confidence=float(_get(c, "confidence", 0.0)),
        )
        for c in _items(data, "checkboxes")
    ]

    dimensions = None
    raw_dims = data.get("page_dimensions")
    if raw_dims:
        try:
            dimensions = PageDimensions(
                width=float(raw_dims["width"]), height=float(raw_dims["height"])
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise ExtractionFormatError("Invalid pageDimensions") from exc

    return PageExtractionData(
        text_blocks=text_blocks,
        form_fields=form_fields,
        tables=tables,
        handwritten_regions=handwritten,
        signatures=signatures,
        checkboxes=checkboxes,
        page_dimensions=dimensions,
    )


def load_page_extraction(path: Path) -> PageExtractionData:
    """Read a page extraction JSON file.

    Args:
        path: JSON file holding a single page's extraction.

    Returns:
        Parsed page extraction data.

    Raises:
        ExtractionFormatError: If the file is not valid extraction JSON.
    """
    try:
        raw = json.loads(Path(path).read_text())
    except json.JSONDecodeError as exc:
        raise ExtractionFormatError(f"{path} is not valid JSON: {exc}") from exc
    return page_from_dict(raw)
