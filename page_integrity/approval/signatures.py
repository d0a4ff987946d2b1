"""Signature detection from OCR primitives.

Signatures come from two sources. Free-floating signatures are handwriting
or signature blocks matched to the nearest role label; table signatures are
the filled cells of columns whose header names a sign-off.
"""

import re
from dataclasses import dataclass

from page_integrity.extraction.models import BoundingBox, PageExtractionData, Table
from page_integrity.utils.config import ApprovalConfig
from page_integrity.utils.logger import get_logger

from .models import DetectedSignature, SignatureRole, SignatureSource, SignatureType
from .patterns import find_date, identify_role, is_date_only, is_signature_column

logger = get_logger(__name__)

_INITIALS = re.compile(r"[A-Za-z](?:[.\s]{0,2}[A-Za-z]){0,3}\.?")


@dataclass
class TextElement:
    """A piece of page text with its box."""

    text: str
    bounding_box: BoundingBox


@dataclass
class SignatureCandidate:
    """A handwriting or signature primitive that may be a sign-off."""

    bounding_box: BoundingBox
    confidence: float
    signature_type: SignatureType


def label_elements(page: PageExtractionData) -> list[TextElement]:
    """Text that can act as a field label: text blocks and form-field names."""
    elements = [
        TextElement(b.text, b.bounding_box) for b in page.text_blocks if b.bounding_box
    ]
    elements.extend(
        TextElement(f.field_name, f.name_bounding_box)
        for f in page.form_fields
        if f.name_bounding_box
    )
    return elements


def date_elements(page: PageExtractionData) -> list[TextElement]:
    """Text that can hold a sign-off date.

    Form-field values and handwritten regions are included because dates
    are usually written by hand next to the signature.
    """
    elements = label_elements(page)
    elements.extend(
        TextElement(f.field_value, f.value_bounding_box)
        for f in page.form_fields
        if f.value_bounding_box and f.field_value
    )
    elements.extend(
        TextElement(h.text, h.bounding_box)
        for h in page.handwritten_regions
        if h.bounding_box and h.text
    )
    return elements


def signature_candidates(
    page: PageExtractionData, default_confidence: float
) -> list[SignatureCandidate]:
    """Collect primitives that may be signatures.

    Handwriting that is only a date is skipped. Short letter-only
    handwriting is treated as initials.
    """
    candidates = [
        SignatureCandidate(
            s.bounding_box,
            s.confidence or default_confidence,
            SignatureType.HANDWRITTEN,
        )
        for s in page.signatures
        if s.bounding_box
    ]
    for region in page.handwritten_regions:
        if not region.bounding_box or is_date_only(region.text):
            continue
        candidates.append(
            SignatureCandidate(
                region.bounding_box,
                region.confidence or default_confidence,
                signature_type_for(region.text),
            )
        )
    return candidates


def signature_type_for(text: str) -> SignatureType:
    if _INITIALS.fullmatch(text.strip()):
        return SignatureType.INITIAL
    return SignatureType.HANDWRITTEN


def nearest_label(
    box: BoundingBox, labels: list[TextElement], radius: float
) -> tuple[TextElement, SignatureRole] | None:
    """Find the closest role label within ``radius`` of ``box``."""
    best: tuple[float, TextElement, SignatureRole] | None = None
    for element in labels:
        distance = box.center_distance(element.bounding_box)
        if distance > radius:
            continue
        role = identify_role(element.text)
        if role is None:
            continue
        if best is None or distance < best[0]:
            best = (distance, element, role)
    if best is None:
        return None
    return best[1], best[2]


def nearest_date(
    box: BoundingBox, elements: list[TextElement], radius: float
) -> tuple[str, BoundingBox] | None:
    """Find the closest date within ``radius`` of ``box``."""
    best: tuple[float, str, BoundingBox] | None = None
    for element in elements:
        distance = box.center_distance(element.bounding_box)
        if distance > radius:
            continue
        date = find_date(element.text)
        if date is None:
            continue
        if best is None or distance < best[0]:
            best = (distance, date, element.bounding_box)
    if best is None:
        return None
    return best[1], best[2]


def signature_columns(table: Table) -> dict[int, str]:
    """Map column index to header text for columns that collect signatures."""
    return {
        cell.col_index: cell.text.strip()
        for cell in table.header_cells()
        if is_signature_column(cell.text)
    }


class SignatureDetector:
    """Finds signatures and the roles they sign for.

    Args:
        config: Approval analyzer configuration.
    """

    def __init__(self, config: ApprovalConfig) -> None:
        self.config = config

    def detect(self, page: PageExtractionData) -> list[DetectedSignature]:
        """Detect free-floating and table signatures on a page.

        Free-floating signatures whose center falls inside a table
        signature cell are dropped, as the cell already accounts for them.

        Args:
            page: Page extraction data.

        Returns:
            Signatures in detection order.
        """
        table_signatures = self.table_signatures(page)
        cell_boxes = [s.bounding_box for s in table_signatures]
        floating = [
            s
            for s in self.free_floating_signatures(page)
            if not any(box.contains_point(*s.bounding_box.center) for box in cell_boxes)
        ]
        logger.debug(
            "Signatures found: %d free-floating, %d in tables",
            len(floating),
            len(table_signatures),
        )
        return floating + table_signatures

    def free_floating_signatures(
        self, page: PageExtractionData
    ) -> list[DetectedSignature]:
        labels = label_elements(page)
        dates = date_elements(page)
        signatures = []
        for candidate in signature_candidates(page, self.config.default_confidence):
            match = nearest_label(
                candidate.bounding_box, labels, self.config.label_radius_px
            )
            if match is None:
                continue
            label, role = match
            date = nearest_date(
                candidate.bounding_box, dates, self.config.date_radius_px
            )
            signatures.append(
                DetectedSignature(
                    role=role,
                    field_label=label.text.strip(),
                    bounding_box=candidate.bounding_box,
                    confidence=candidate.confidence,
                    signature_type=candidate.signature_type,
                    associated_date=date[0] if date else None,
                    date_bounding_box=date[1] if date else None,
                    source=SignatureSource.LABEL,
                )
            )
        return signatures

    def table_signatures(self, page: PageExtractionData) -> list[DetectedSignature]:
        signatures = []
        for table in page.tables:
            columns = signature_columns(table)
            if not columns:
                continue
            header_ids = {id(c) for c in table.header_cells()}
            for cell in table.cells:
                if (
                    cell.col_index not in columns
                    or id(cell) in header_ids
                    or not cell.text.strip()
                    or cell.bounding_box is None
                ):
                    continue
                header = columns[cell.col_index]
                date, date_box = self._row_date(table, cell.row_index, cell.col_index)
                signatures.append(
                    DetectedSignature(
                        role=identify_role(header) or SignatureRole.UNKNOWN,
                        field_label=header,
                        bounding_box=cell.bounding_box,
                        confidence=cell.confidence or self.config.default_confidence,
                        signature_type=signature_type_for(cell.text),
                        associated_date=date,
                        date_bounding_box=date_box,
                        source=SignatureSource.TABLE,
                    )
                )
        return signatures

    @staticmethod
    def _row_date(
        table: Table, row_index: int, col_index: int
    ) -> tuple[str | None, BoundingBox | None]:
        row = sorted(
            (
                c
                for c in table.cells
                if c.row_index == row_index and c.col_index != col_index
            ),
            key=lambda c: c.col_index,
        )
        for cell in row:
            date = find_date(cell.text)
            if date:
                return date, cell.bounding_box
        return None, None
