"""Tests for extraction JSON parsing and the OCR primitive types."""

import json
from pathlib import Path

import pytest

from page_integrity.errors import ExtractionFormatError
from page_integrity.extraction.loader import (
    load_page_extraction,
    page_from_dict,
    parse_bounding_box,
)
from page_integrity.extraction.models import BoundingBox, Checkbox, Table, TableCell


def _camel_page() -> dict:
    return {
        "textBlocks": [
            {
                "text": "Recorded by:",
                "boundingBox": {"x": 10, "y": 20, "width": 80, "height": 15},
                "confidence": 97.5,
            }
        ],
        "formFields": [
            {
                "fieldName": "Batch No",
                "fieldValue": "B-1042",
                "nameBoundingBox": {"x": 10, "y": 50, "width": 60, "height": 15},
                "valueBoundingBox": {"x": 80, "y": 50, "width": 60, "height": 15},
            }
        ],
        "tables": [
            {
                "cells": [
                    {
                        "rowIndex": 0,
                        "columnIndex": 1,
                        "text": "Initials",
                        "isHeader": True,
                    },
                    {"rowIndex": 1, "colIndex": 1, "text": "AB"},
                ]
            }
        ],
        "handwrittenRegions": [
            {"text": "JS", "boundingBox": {"x": 1, "y": 2, "width": 3, "height": 4}}
        ],
        "signatures": [{"boundingBox": {"x": 5, "y": 6, "width": 7, "height": 8}}],
        "checkboxes": [{"state": "CHECKED", "label": "Approved"}],
        "pageDimensions": {"width": 2550, "height": 3300},
    }


class TestBoundingBox:
    """Tests for BoundingBox geometry helpers."""

    def test_edges_and_center(self) -> None:
        box = BoundingBox(10, 20, 30, 40)
        assert box.right == 40
        assert box.bottom == 60
        assert box.center == (25, 40)
        assert box.area == 1200

    def test_center_distance(self) -> None:
        a = BoundingBox(0, 0, 10, 10)
        b = BoundingBox(30, 40, 10, 10)
        assert a.center_distance(b) == pytest.approx(50.0)

    def test_union_and_intersection(self) -> None:
        a = BoundingBox(0, 0, 10, 10)
        b = BoundingBox(5, 5, 10, 10)
        assert a.union(b) == BoundingBox(0, 0, 15, 15)
        assert a.intersection_area(b) == 25
        assert a.intersection_area(BoundingBox(20, 20, 5, 5)) == 0

    def test_clamp_to_page(self) -> None:
        box = BoundingBox(-5, 90, 20, 20).clamp(100, 100)
        assert box == BoundingBox(0, 90, 15, 10)

    def test_clamp_off_page_is_empty(self) -> None:
        box = BoundingBox(150, 150, 10, 10).clamp(100, 100)
        assert box.width == 0
        assert box.height == 0

    def test_hashable(self) -> None:
        assert {BoundingBox(1, 2, 3, 4): "x"}[BoundingBox(1, 2, 3, 4)] == "x"


class TestTableHeaders:
    """Tests for header-cell selection."""

    def test_flagged_headers_win(self) -> None:
        table = Table(
            cells=[TableCell(0, 0, "a"), TableCell(1, 0, "Signed", is_header=True)]
        )
        assert [c.text for c in table.header_cells()] == ["Signed"]

    def test_falls_back_to_first_row(self) -> None:
        table = Table(cells=[TableCell(0, 0, "Step"), TableCell(1, 0, "Mix")])
        assert [c.text for c in table.header_cells()] == ["Step"]


class TestParseBoundingBox:
    """Tests for parse_bounding_box."""

    def test_parses_numbers(self) -> None:
        box = parse_bounding_box({"x": "1", "y": 2, "width": 3.5, "height": 4})
        assert box == BoundingBox(1.0, 2.0, 3.5, 4.0)

    def test_empty_is_none(self) -> None:
        assert parse_bounding_box(None) is None
        assert parse_bounding_box({}) is None

    def test_missing_coordinate_raises(self) -> None:
        with pytest.raises(ExtractionFormatError):
            parse_bounding_box({"x": 1, "y": 2, "width": 3})

    def test_non_object_raises(self) -> None:
        with pytest.raises(ExtractionFormatError):
            parse_bounding_box([1, 2, 3, 4])


class TestPageFromDict:
    """Tests for page_from_dict."""

    def test_camel_case_keys(self) -> None:
        page = page_from_dict(_camel_page())

        assert page.text_blocks[0].text == "Recorded by:"
        assert page.text_blocks[0].bounding_box == BoundingBox(10, 20, 80, 15)
        assert page.text_blocks[0].confidence == 97.5
        assert page.form_fields[0].field_value == "B-1042"
        assert page.form_fields[0].value_bounding_box == BoundingBox(80, 50, 60, 15)
        assert page.tables[0].cells[0].col_index == 1
        assert page.tables[0].cells[0].is_header is True
        assert page.tables[0].cells[1].text == "AB"
        assert page.handwritten_regions[0].text == "JS"
        assert page.signatures[0].bounding_box == BoundingBox(5, 6, 7, 8)
        assert page.checkboxes[0].is_checked
        assert page.page_dimensions.width == 2550

    def test_snake_case_keys(self) -> None:
        page = page_from_dict(
            {
                "text_blocks": [
                    {
                        "text": "Operator",
                        "bounding_box": {"x": 1, "y": 1, "width": 1, "height": 1},
                    }
                ],
                "checkboxes": [{"state": "unchecked"}],
            }
        )
        assert page.text_blocks[0].bounding_box == BoundingBox(1, 1, 1, 1)
        assert page.checkboxes[0].is_checked is False

    def test_all_sections_optional(self) -> None:
        page = page_from_dict({})
        assert page.text_blocks == []
        assert page.tables == []
        assert page.page_dimensions is None

    def test_null_sections_are_empty(self) -> None:
        page = page_from_dict({"textBlocks": None, "signatures": None})
        assert page.text_blocks == []
        assert page.signatures == []

    def test_not_an_object(self) -> None:
        with pytest.raises(ExtractionFormatError):
            page_from_dict([])

    def test_section_not_a_list(self) -> None:
        with pytest.raises(ExtractionFormatError, match="textBlocks|text_blocks"):
            page_from_dict({"textBlocks": {"text": "x"}})

    def test_bad_number_is_format_error(self) -> None:
        with pytest.raises(ExtractionFormatError):
            page_from_dict({"textBlocks": [{"text": "x", "confidence": "high"}]})

    def test_invalid_dimensions(self) -> None:
        with pytest.raises(ExtractionFormatError):
            page_from_dict({"pageDimensions": {"width": 100}})


class TestLoadPageExtraction:
    """Tests for reading extraction files."""

    def test_reads_file(self, tmp_path: Path) -> None:
        path = tmp_path / "page_001.json"
        path.write_text(json.dumps(_camel_page()))
        page = load_page_extraction(path)
        assert len(page.text_blocks) == 1

    def test_invalid_json(self, tmp_path: Path) -> None:
        path = tmp_path / "broken.json"
        path.write_text("{not json")
        with pytest.raises(ExtractionFormatError, match="not valid JSON"):
            load_page_extraction(path)

    def test_checkbox_state(self) -> None:
        assert Checkbox("checked").is_checked
        assert not Checkbox("unchecked").is_checked
