"""FastAPI application for the page integrity analyzers.

Provides REST endpoints for visual anomaly detection, approval sequence
analysis, combined page analysis, and health checks.
"""

import io
import json
import time
import uuid
from typing import Annotated, Any

import cv2
import numpy as np
from fastapi import Body, FastAPI, File, Form, HTTPException, Query, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from PIL import Image, UnidentifiedImageError

from page_integrity.alerts import build_approval_alerts, build_visual_alerts
from page_integrity.approval.analyzer import ApprovalAnalyzer
from page_integrity.errors import ExtractionFormatError
from page_integrity.extraction.loader import page_from_dict
from page_integrity.extraction.models import PageExtractionData
from page_integrity.utils.config import load_config
from page_integrity.utils.logger import get_logger
from page_integrity.vision.analyzer import (
    VisualAnalyzer,
    attach_affected_text,
    extract_text_regions,
)

from .schemas import (
    ApprovalAnalysisResponse,
    HealthResponse,
    PageAnalysisResponse,
    VisualAnalysisResponse,
)

logger = get_logger(__name__)

API_VERSION = "1.0.0"

app = FastAPI(
    title="Page Integrity API",
    description=(
        "Detect strike-throughs, red ink and erasures on batch-record pages "
        "and validate approval sign-offs"
    ),
    version=API_VERSION,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

_ALLOWED_CONTENT_TYPES = {
    "image/png",
    "image/jpeg",
    "image/tiff",
    "application/octet-stream",
}


def _get_analyzers() -> tuple[VisualAnalyzer, ApprovalAnalyzer]:
    """Build analyzers from the current configuration.

    Returns:
        Tuple of (visual_analyzer, approval_analyzer).
    """
    config = load_config()
    return VisualAnalyzer(config.visual), ApprovalAnalyzer(config.approval)


async def _read_image(file: UploadFile) -> np.ndarray:
    if file.content_type and file.content_type not in _ALLOWED_CONTENT_TYPES:
        raise HTTPException(
            status_code=400,
            detail=f"Unsupported file type: {file.content_type}",
        )
    content = await file.read()
    try:
        with Image.open(io.BytesIO(content)) as image:
            return np.array(image.convert("RGBA"))
    except (UnidentifiedImageError, OSError) as exc:
        raise HTTPException(
            status_code=400, detail=f"Unreadable image: {file.filename}"
        ) from exc


def _parse_extraction(raw: Any) -> PageExtractionData:
    if raw is None or raw == "":
        return PageExtractionData()
    try:
        if isinstance(raw, str):
            raw = json.loads(raw)
        return page_from_dict(raw)
    except (json.JSONDecodeError, ExtractionFormatError) as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc


@app.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Return system health status."""
    return HealthResponse(
        status="healthy",
        version=API_VERSION,
        opencv_version=cv2.__version__,
        approval_mode=str(load_config().approval.mode),
    )


@app.post("/analyze/visual", response_model=VisualAnalysisResponse)
async def analyze_visual(
    file: Annotated[UploadFile, File(...)],
    extraction: Annotated[str | None, Form()] = None,
    page_number: Annotated[int, Query(ge=1)] = 1,
    document_id: Annotated[str | None, Query()] = None,
) -> VisualAnalysisResponse:
    """Detect visual anomalies on an uploaded page image.

    Args:
        file: Rendered page image (PNG, JPEG or TIFF).
        extraction: Page extraction JSON supplying the text regions.
        page_number: 1-based page number.
        document_id: Document identifier used in anomaly ids.

    Returns:
        Visual analysis result.
    """
    rgba = await _read_image(file)
    page = _parse_extraction(extraction)
    visual_analyzer, _ = _get_analyzers()
    result = visual_analyzer.analyze_raster(
        rgba,
        page_number,
        extract_text_regions(page),
        document_id or uuid.uuid4().hex[:8],
        image_path=file.filename or "",
    )
    attach_affected_text(result, page)
    return VisualAnalysisResponse.model_validate(result.to_dict())


@app.post("/analyze/approval", response_model=ApprovalAnalysisResponse)
async def analyze_approval(
    extraction: Annotated[dict[str, Any], Body(...)],
    page_number: Annotated[int, Query(ge=1)] = 1,
) -> ApprovalAnalysisResponse:
    """Validate approval sign-offs on one page's extraction.

    Args:
        extraction: Page extraction JSON (camelCase or snake_case keys).
        page_number: 1-based page number.

    Returns:
        Approval analysis report.
    """
    page = _parse_extraction(extraction)
    _, approval_analyzer = _get_analyzers()
    analysis = approval_analyzer.analyze(page, page_number)
    return ApprovalAnalysisResponse.model_validate(analysis.to_dict())


@app.post("/analyze/page", response_model=PageAnalysisResponse)
async def analyze_page(
    file: Annotated[UploadFile, File(...)],
    extraction: Annotated[str | None, Form()] = None,
    page_number: Annotated[int, Query(ge=1)] = 1,
    document_id: Annotated[str | None, Query()] = None,
) -> PageAnalysisResponse:
    """Run visual and approval analysis on one page and raise alerts.

    Args:
        file: Rendered page image.
        extraction: Page extraction JSON.
        page_number: 1-based page number.
        document_id: Document identifier used in anomaly ids.

    Returns:
        Combined analysis with quality alerts.
    """
    start_time = time.time()
    rgba = await _read_image(file)
    page = _parse_extraction(extraction)
    visual_analyzer, approval_analyzer = _get_analyzers()

    visual = visual_analyzer.analyze_raster(
        rgba,
        page_number,
        extract_text_regions(page),
        document_id or uuid.uuid4().hex[:8],
        image_path=file.filename or "",
    )
    attach_affected_text(visual, page)
    approval = approval_analyzer.analyze(page, page_number)
    alerts = build_visual_alerts(visual.anomalies) + build_approval_alerts(
        approval, page_number
    )
    logger.info(
        "Page %d analyzed in %.0f ms: %d alerts",
        page_number,
        (time.time() - start_time) * 1000,
        len(alerts),
    )
    return PageAnalysisResponse.model_validate(
        {
            "page_number": page_number,
            "status": "ok",
            "visual": visual.to_dict(),
            "approval": approval.to_dict(),
            "alerts": [a.to_dict() for a in alerts],
        }
    )
