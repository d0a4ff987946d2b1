"""Quality alerts derived from visual and approval analysis results.

Alerts are the reviewer-facing form of a finding: one alert per anomaly,
missing signature, undated signature, unchecked approval checkbox, or
out-of-order approval chain.
"""

from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from page_integrity.approval.models import ApprovalAnalysis
from page_integrity.extraction.models import BoundingBox
from page_integrity.utils.config import ApprovalMode
from page_integrity.utils.logger import get_logger
from page_integrity.vision.models import AnomalyType, Severity, VisualAnomaly

logger = get_logger(__name__)


class AlertCategory(StrEnum):
    MISSING_VALUE = "missing_value"
    SEQUENCE_ERROR = "sequence_error"
    DATA_INTEGRITY = "data_integrity"


@dataclass
class QualityAlert:
    """A finding raised for reviewer attention."""

    id: str
    category: AlertCategory
    severity: Severity
    title: str
    message: str
    details: str
    page_number: int
    suggested_action: str
    rule_id: str
    bounding_box: BoundingBox | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "category": str(self.category),
            "severity": str(self.severity),
            "title": self.title,
            "message": self.message,
            "details": self.details,
            "page_number": self.page_number,
            "bounding_box": self.bounding_box.to_dict() if self.bounding_box else None,
            "suggested_action": self.suggested_action,
            "rule_id": self.rule_id,
        }


_ANOMALY_TEXT: dict[AnomalyType, tuple[str, str]] = {
    AnomalyType.STRIKE_THROUGH: (
        "Strike-through Detected",
        "Verify the correction is initialled, dated and justified",
    ),
    AnomalyType.RED_MARK: (
        "Red Ink Mark Detected",
        "Confirm the red ink entry is an authorized annotation",
    ),
    AnomalyType.ERASURE: (
        "Possible Erasure Detected",
        "Inspect the original record; erasures and correction fluid are not permitted",
    ),
}
_DEFAULT_ANOMALY_TEXT = ("Visual Anomaly Detected", "Review the marked region")


def _label(role: Any) -> str:
    return str(role).replace("_", " ")


def build_visual_alerts(anomalies: list[VisualAnomaly]) -> list[QualityAlert]:
    """Create one data-integrity alert per visual anomaly.

    Args:
        anomalies: Consolidated anomalies of one or more pages.

    Returns:
        Alerts carrying each anomaly's severity and box.
    """
    alerts = []
    for anomaly in anomalies:
        title, action = _ANOMALY_TEXT.get(anomaly.type, _DEFAULT_ANOMALY_TEXT)
        details = (
            f"Detection: {anomaly.detection_method}; "
            f"confidence {anomaly.confidence:.0f}%"
        )
        if anomaly.affected_text:
            details += f"; affected text: {anomaly.affected_text}"
        alerts.append(
            QualityAlert(
                id=f"visual-{anomaly.id}",
                category=AlertCategory.DATA_INTEGRITY,
                severity=anomaly.severity,
                title=title,
                message=f"{anomaly.description} on Page {anomaly.page_number}",
                details=details,
                page_number=anomaly.page_number,
                bounding_box=anomaly.bounding_box,
                suggested_action=action,
                rule_id=f"visual_{anomaly.type}",
            )
        )
    return alerts


def build_approval_alerts(
    analysis: ApprovalAnalysis, page_number: int
) -> list[QualityAlert]:
    """Create alerts for gaps in a page's approval report.

    Args:
        analysis: Approval report of one page.
        page_number: 1-based page number.

    Returns:
        Alerts for missing or undated signatures, unchecked approval
        checkboxes and an invalid approval sequence.
    """
    if analysis.mode is ApprovalMode.PRESENCE:
        alerts = _presence_alerts(analysis, page_number)
    else:
        alerts = _sequence_alerts(analysis, page_number)
    if alerts:
        logger.debug("Page %d: %d approval alerts", page_number, len(alerts))
    return alerts


def _missing_signature(
    page_number: int,
    index: int,
    label: str,
    box: BoundingBox | None,
    details: str,
) -> QualityAlert:
    slug = label.replace(" ", "_")
    return QualityAlert(
        id=f"sig-missing-{page_number}-{index}-{slug}",
        category=AlertCategory.MISSING_VALUE,
        severity=Severity.HIGH,
        title="Missing Signature",
        message=f'Signature field "{label}" is empty on Page {page_number}',
        details=details,
        page_number=page_number,
        bounding_box=box,
        suggested_action="Obtain signature for this field",
        rule_id="signature_required",
    )


def _presence_alerts(
    analysis: ApprovalAnalysis, page_number: int
) -> list[QualityAlert]:
    return [
        _missing_signature(
            page_number,
            index,
            f.field_label,
            f.bounding_box,
            f"Field: {f.field_label}",
        )
        for index, f in enumerate(analysis.signature_fields)
        if not f.is_signed
    ]


def _sequence_alerts(
    analysis: ApprovalAnalysis, page_number: int
) -> list[QualityAlert]:
    alerts = [
        _missing_signature(
            page_number, index, _label(cp.role), None, cp.associated_text
        )
        for index, cp in enumerate(analysis.checkpoints)
        if cp.is_missing
    ]

    if not analysis.sequence_valid:
        ordered = sorted(analysis.signatures, key=lambda s: s.bounding_box.y)
        chain = " -> ".join(_label(s.role) for s in ordered)
        alerts.append(
            QualityAlert(
                id=f"sig-sequence-{page_number}",
                category=AlertCategory.SEQUENCE_ERROR,
                severity=Severity.HIGH,
                title="Approval Sequence Out of Order",
                message=(
                    f"Signatures on Page {page_number} are not in the "
                    "required approval order"
                ),
                details=f"Observed order: {chain}",
                page_number=page_number,
                suggested_action=(
                    "Confirm sign-offs follow operator, reviewer, QA review, "
                    "QA approval and final approval"
                ),
                rule_id="approval_sequence",
            )
        )

    for index, signature in enumerate(analysis.signatures):
        if signature.has_date:
            continue
        alerts.append(
            QualityAlert(
                id=f"sig-undated-{page_number}-{index}",
                category=AlertCategory.MISSING_VALUE,
                severity=Severity.MEDIUM,
                title="Undated Signature",
                message=(
                    f'Signature for "{signature.field_label}" on Page {page_number} '
                    "has no date"
                ),
                details=f"Role: {_label(signature.role)}",
                page_number=page_number,
                bounding_box=signature.bounding_box,
                suggested_action="Add the signing date next to the signature",
                rule_id="signature_date_required",
            )
        )

    for index, cp in enumerate(analysis.checkpoints):
        if cp.checkbox is None or cp.checkbox.is_checked:
            continue
        alerts.append(
            QualityAlert(
                id=f"sig-checkbox-{page_number}-{index}-{cp.role}",
                category=AlertCategory.MISSING_VALUE,
                severity=Severity.MEDIUM,
                title="Approval Checkbox Not Checked",
                message=(
                    f"Checkbox for {_label(cp.role)} approval on Page {page_number} "
                    "is not checked"
                ),
                details=f"Checkbox label: {cp.checkbox.label or '-'}",
                page_number=page_number,
                bounding_box=cp.checkbox.bounding_box,
                suggested_action=(
                    "Check the approval box or document why it is left blank"
                ),
                rule_id="approval_checkbox_checked",
            )
        )
    return alerts
