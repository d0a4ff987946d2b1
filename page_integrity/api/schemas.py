"""Pydantic response schemas for the FastAPI endpoints."""

from pydantic import BaseModel


class BoundingBoxModel(BaseModel):
    x: float
    y: float
    width: float
    height: float


class VisualAnomalyResponse(BaseModel):
    """Response schema for a single visual anomaly."""

    id: str
    type: str
    confidence: float
    page_number: int
    bounding_box: BoundingBoxModel
    affected_text_region: BoundingBoxModel | None = None
    affected_text: str | None = None
    severity: str
    description: str
    detection_method: str
    thumbnail_path: str | None = None


class VisualAnalysisResponse(BaseModel):
    """Response schema for the visual analysis of one page."""

    page_number: int
    image_path: str
    anomalies: list[VisualAnomalyResponse]
    analysis_timestamp: str
    processing_time_ms: float


class CheckboxResponse(BaseModel):
    state: str
    label: str
    bounding_box: BoundingBoxModel | None = None


class SignatureResponse(BaseModel):
    """Response schema for a detected signature."""

    role: str
    field_label: str
    bounding_box: BoundingBoxModel
    associated_date: str | None = None
    date_bounding_box: BoundingBoxModel | None = None
    confidence: float
    signature_type: str
    has_date: bool
    source: str


class CheckpointResponse(BaseModel):
    """Response schema for one approval checkpoint."""

    role: str
    signature: SignatureResponse | None = None
    checkbox: CheckboxResponse | None = None
    is_complete: bool
    is_missing: bool
    associated_text: str
    is_final_approval: bool


class SignatureFieldResponse(BaseModel):
    field_label: str
    role: str
    is_signed: bool
    bounding_box: BoundingBoxModel | None = None


class ApprovalAnalysisResponse(BaseModel):
    """Response schema for the approval analysis of one page."""

    signatures: list[SignatureResponse]
    checkpoints: list[CheckpointResponse]
    approval_chain: list[str]
    missing_signatures: list[str]
    sequence_valid: bool
    all_dates_present: bool
    all_checkboxes_checked: bool
    final_approval_role: str | None = None
    mode: str
    signature_fields: list[SignatureFieldResponse]


class QualityAlertResponse(BaseModel):
    """Response schema for a quality alert."""

    id: str
    category: str
    severity: str
    title: str
    message: str
    details: str
    page_number: int
    bounding_box: BoundingBoxModel | None = None
    suggested_action: str
    rule_id: str


class PageAnalysisResponse(BaseModel):
    """Response schema for combined page integrity analysis."""

    page_number: int
    status: str
    visual: VisualAnalysisResponse
    approval: ApprovalAnalysisResponse
    alerts: list[QualityAlertResponse]


class HealthResponse(BaseModel):
    """Response schema for the health check endpoint."""

    status: str
    version: str
    opencv_version: str
    approval_mode: str
