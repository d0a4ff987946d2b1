"""Data types produced by the signature and approval analyzer."""

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from page_integrity.extraction.models import BoundingBox, Checkbox
from page_integrity.utils.config import ApprovalMode


class SignatureRole(StrEnum):
    """Sign-off roles recognized on batch-record pages."""

    OPERATOR = "operator"
    SUPERVISOR = "supervisor"
    REVIEWER = "reviewer"
    QA_REVIEWER = "qa_reviewer"
    QA_APPROVER = "qa_approver"
    VERIFIER = "verifier"
    MANAGER = "manager"
    RELEASED_BY = "released_by"
    CHECKED_BY = "checked_by"
    PERFORMED_BY = "performed_by"
    UNKNOWN = "unknown"


class SignatureType(StrEnum):
    HANDWRITTEN = "handwritten"
    STAMP = "stamp"
    INITIAL = "initial"


class SignatureSource(StrEnum):
    """Where a signature occurrence was found."""

    LABEL = "label"
    TABLE = "table"


@dataclass
class DetectedSignature:
    """A signature matched to the role label it sits next to."""

    role: SignatureRole
    field_label: str
    bounding_box: BoundingBox
    confidence: float
    signature_type: SignatureType
    associated_date: str | None = None
    date_bounding_box: BoundingBox | None = None
    source: SignatureSource = SignatureSource.LABEL

    @property
    def has_date(self) -> bool:
        return bool(self.associated_date)

    def to_dict(self) -> dict[str, Any]:
        return {
            "role": str(self.role),
            "field_label": self.field_label,
            "bounding_box": self.bounding_box.to_dict(),
            "associated_date": self.associated_date,
            "date_bounding_box": (
                self.date_bounding_box.to_dict() if self.date_bounding_box else None
            ),
            "confidence": self.confidence,
            "signature_type": str(self.signature_type),
            "has_date": self.has_date,
            "source": str(self.source),
        }


@dataclass
class ApprovalCheckpoint:
    """One slot of the canonical approval sequence."""

    role: SignatureRole
    is_complete: bool
    is_missing: bool
    associated_text: str
    signature: DetectedSignature | None = None
    checkbox: Checkbox | None = None
    is_final_approval: bool = False

    def to_dict(self) -> dict[str, Any]:
        checkbox = None
        if self.checkbox is not None:
            checkbox = {
                "state": self.checkbox.state,
                "label": self.checkbox.label,
                "bounding_box": (
                    self.checkbox.bounding_box.to_dict()
                    if self.checkbox.bounding_box
                    else None
                ),
            }
        return {
            "role": str(self.role),
            "signature": self.signature.to_dict() if self.signature else None,
            "checkbox": checkbox,
            "is_complete": self.is_complete,
            "is_missing": self.is_missing,
            "associated_text": self.associated_text,
            "is_final_approval": self.is_final_approval,
        }


@dataclass
class SignatureField:
    """Presence-only view of a signature slot."""

    field_label: str
    role: SignatureRole
    is_signed: bool
    bounding_box: BoundingBox | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "field_label": self.field_label,
            "role": str(self.role),
            "is_signed": self.is_signed,
            "bounding_box": self.bounding_box.to_dict() if self.bounding_box else None,
        }


@dataclass
class ApprovalAnalysis:
    """Approval completeness and sequence report for one page.

    The default instance is the compliant-empty report returned for pages
    without approval sections and for failed analyses.
    """

    signatures: list[DetectedSignature] = field(default_factory=list)
    checkpoints: list[ApprovalCheckpoint] = field(default_factory=list)
    approval_chain: list[SignatureRole] = field(default_factory=list)
    missing_signatures: list[SignatureRole] = field(default_factory=list)
    sequence_valid: bool = True
    all_dates_present: bool = True
    all_checkboxes_checked: bool = True
    final_approval_role: SignatureRole | None = None
    mode: ApprovalMode = ApprovalMode.SEQUENCE
    signature_fields: list[SignatureField] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "signatures": [s.to_dict() for s in self.signatures],
            "checkpoints": [c.to_dict() for c in self.checkpoints],
            "approval_chain": [str(r) for r in self.approval_chain],
            "missing_signatures": [str(r) for r in self.missing_signatures],
            "sequence_valid": self.sequence_valid,
            "all_dates_present": self.all_dates_present,
            "all_checkboxes_checked": self.all_checkboxes_checked,
            "final_approval_role": (
                str(self.final_approval_role) if self.final_approval_role else None
            ),
            "mode": str(self.mode),
            "signature_fields": [f.to_dict() for f in self.signature_fields],
        }
