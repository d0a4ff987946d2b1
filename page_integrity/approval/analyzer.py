"""Signature and approval-sequence analysis for batch-record pages.

``ApprovalAnalyzer`` runs in one of two modes. ``sequence`` matches
signatures to the canonical approval checkpoints and validates their
order; ``presence`` only reports which signature fields are signed.
Pages without an approval section, and any failure, yield the
compliant-empty report.
"""

from page_integrity.extraction.models import PageExtractionData
from page_integrity.utils.config import ApprovalConfig, ApprovalMode
from page_integrity.utils.logger import get_logger, get_page_logger

from .models import ApprovalAnalysis, SignatureField, SignatureRole
from .patterns import contains_trigger, identify_role
from .sequence import build_canonical_checkpoints, sort_top_to_bottom, validate_sequence
from .signatures import (
    SignatureDetector,
    label_elements,
    signature_candidates,
    signature_columns,
)

logger = get_logger(__name__)


def page_texts(page: PageExtractionData) -> list[str]:
    """Text searched for trigger phrases: blocks, form fields, table headers."""
    texts = [b.text for b in page.text_blocks]
    for form_field in page.form_fields:
        texts.append(form_field.field_name)
        texts.append(form_field.field_value)
    for table in page.tables:
        texts.extend(c.text for c in table.header_cells())
    return texts


class ApprovalAnalyzer:
    """Checks that approval sign-offs are present, dated and in order.

    Args:
        config: Approval analyzer configuration.
    """

    def __init__(self, config: ApprovalConfig | None = None) -> None:
        self.config = config or ApprovalConfig()
        self.detector = SignatureDetector(self.config)

    def has_approval_section(self, page: PageExtractionData) -> bool:
        return any(
            contains_trigger(text, self.config.trigger_phrases)
            for text in page_texts(page)
            if text
        )

    def analyze(
        self, page: PageExtractionData, page_number: int | None = None
    ) -> ApprovalAnalysis:
        """Analyze one page. Never raises.

        Args:
            page: Page extraction data.
            page_number: Used for log context only.

        Returns:
            The approval report; compliant-empty when the page has no
            approval section or analysis fails.
        """
        page_log = get_page_logger(logger, page_number)
        try:
            if not self.has_approval_section(page):
                page_log.debug("No approval section, skipping signature analysis")
                return ApprovalAnalysis(mode=self.config.mode)
            if self.config.mode is ApprovalMode.PRESENCE:
                analysis = self.analyze_presence(page)
            else:
                analysis = self.analyze_sequence(page)
        except Exception:
            page_log.exception("Approval analysis failed")
            return ApprovalAnalysis(mode=self.config.mode)

        page_log.info(
            "Approval analysis: %d signatures, %d missing, sequence %s",
            len(analysis.signatures),
            len(analysis.missing_signatures),
            "valid" if analysis.sequence_valid else "INVALID",
        )
        return analysis

    def analyze_sequence(self, page: PageExtractionData) -> ApprovalAnalysis:
        """Role- and order-aware analysis against the canonical sequence."""
        signatures = self.detector.detect(page)
        ordered = sort_top_to_bottom(signatures)
        checkpoints, final_role = build_canonical_checkpoints(
            ordered, page.checkboxes, self.config.checkbox_radius_px
        )
        paired = [cp.checkbox for cp in checkpoints if cp.checkbox is not None]
        return ApprovalAnalysis(
            signatures=signatures,
            checkpoints=checkpoints,
            approval_chain=[
                cp.role for cp in checkpoints if cp.signature and not cp.is_missing
            ],
            missing_signatures=[cp.role for cp in checkpoints if cp.is_missing],
            sequence_valid=validate_sequence(ordered),
            all_dates_present=all(s.has_date for s in signatures),
            all_checkboxes_checked=all(c.is_checked for c in paired),
            final_approval_role=final_role,
            mode=ApprovalMode.SEQUENCE,
        )

    def analyze_presence(self, page: PageExtractionData) -> ApprovalAnalysis:
        """Presence-only analysis: is each signature field signed?"""
        fields = self.signature_fields(page)
        signatures = self.detector.detect(page)
        ordered = sorted(
            (f for f in fields if f.bounding_box is not None),
            key=lambda f: f.bounding_box.y,
        )
        return ApprovalAnalysis(
            signatures=signatures,
            approval_chain=[f.role for f in ordered if f.is_signed],
            missing_signatures=[f.role for f in fields if not f.is_signed],
            sequence_valid=True,
            all_dates_present=all(s.has_date for s in signatures),
            all_checkboxes_checked=True,
            mode=ApprovalMode.PRESENCE,
            signature_fields=fields,
        )

    def signature_fields(self, page: PageExtractionData) -> list[SignatureField]:
        """List signature fields from role labels and signature columns.

        A label field is signed when a handwriting or signature primitive
        lies within the label radius, or its form field has a value. A table
        field is signed when its cell is not empty.

        Args:
            page: Page extraction data.

        Returns:
            Fields in page order: labels first, then table cells.
        """
        candidates = signature_candidates(page, self.config.default_confidence)
        filled_names = {
            f.field_name.strip() for f in page.form_fields if f.field_value.strip()
        }
        fields = []
        for label in label_elements(page):
            role = identify_role(label.text)
            if role is None:
                continue
            signed = label.text.strip() in filled_names or any(
                label.bounding_box.center_distance(c.bounding_box)
                <= self.config.label_radius_px
                for c in candidates
            )
            fields.append(
                SignatureField(
                    field_label=label.text.strip(),
                    role=role,
                    is_signed=signed,
                    bounding_box=label.bounding_box,
                )
            )

        for table in page.tables:
            columns = signature_columns(table)
            if not columns:
                continue
            header_ids = {id(c) for c in table.header_cells()}
            for cell in table.cells:
                if cell.col_index not in columns or id(cell) in header_ids:
                    continue
                header = columns[cell.col_index]
                fields.append(
                    SignatureField(
                        field_label=f"{header} (row {cell.row_index})",
                        role=identify_role(header) or SignatureRole.UNKNOWN,
                        is_signed=bool(cell.text.strip()),
                        bounding_box=cell.bounding_box,
                    )
                )
        return fields
