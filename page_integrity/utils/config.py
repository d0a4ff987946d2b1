"""Configuration management for the page integrity analyzers.

Loads and validates YAML configuration with defaults for the visual
anomaly detector, the approval analyzer, and the per-page runner.
"""

import logging
from enum import StrEnum
from pathlib import Path

import yaml
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class ErasureConfig(BaseModel):
    """Statistical thresholds for correction-fluid detection.

    These values are calibration parameters rather than fixed contracts;
    tune them against a labeled corpus.
    """

    min_regions: int = 3
    min_ink_ratio: float = 0.005
    z_score_threshold: float = 2.5
    white_ratio_threshold: float = 0.80
    brightness_threshold: float = 235.0
    edge_contrast: float = 50.0
    edge_coverage: float = 0.20
    border_sample_step: int = 4


class VisualConfig(BaseModel):
    """Configuration for the visual anomaly detector."""

    min_line_length: int = 30
    line_angle_tolerance: float = 15.0
    dark_threshold: int = 100
    edge_threshold: int = 50
    diagonal_angles: list[int] = Field(
        default_factory=lambda: [30, 45, 60, 120, 135, 150]
    )
    diagonal_length_factor: float = 1.4
    diagonal_stride: int = 3
    min_continuity: float = 0.7
    border_band_px: int = 5
    min_stroke_stddev: float = 2.0
    corner_search_px: int = 8
    corner_dark_ratio: float = 0.6
    grid_min_lines: int = 5
    grid_spacing_tolerance: float = 0.15
    grid_regular_fraction: float = 0.7
    underline_band: float = 0.2
    border_span_ratio: float = 0.7
    min_region_coverage: float = 0.3
    max_region_overhang: float = 0.12
    min_red_pixels: int = 20
    red_fill_cap: int = 10_000
    red_merge_distance: float = 20.0
    red_emit_floor: int = 100
    anomaly_merge_distance: float = 30.0
    thumbnail_dir: str = "uploads/thumbnails"
    thumbnail_padding: int = 20
    thumbnail_max_width: int = 400
    thumbnail_workers: int = 1
    thumbnails_enabled: bool = True
    erasure: ErasureConfig = Field(default_factory=ErasureConfig)


class ApprovalMode(StrEnum):
    """Strategy used by the approval analyzer."""

    SEQUENCE = "sequence"
    PRESENCE = "presence"


class ApprovalConfig(BaseModel):
    """Configuration for the signature and approval analyzer."""

    mode: ApprovalMode = ApprovalMode.SEQUENCE
    trigger_phrases: list[str] = Field(
        default_factory=lambda: ["recorded by", "verified by"]
    )
    label_radius_px: float = 200.0
    date_radius_px: float = 150.0
    checkbox_radius_px: float = 100.0
    default_confidence: float = 80.0


class PipelineConfig(BaseModel):
    """Configuration for concurrent per-page analysis."""

    max_workers: int = 4
    page_timeout_s: float = 30.0


class ServerConfig(BaseModel):
    """Configuration for the API server."""

    host: str = "0.0.0.0"
    port: int = 8000


class AppConfig(BaseModel):
    """Top-level application configuration."""

    visual: VisualConfig = Field(default_factory=VisualConfig)
    approval: ApprovalConfig = Field(default_factory=ApprovalConfig)
    pipeline: PipelineConfig = Field(default_factory=PipelineConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    log_level: str = "INFO"
    log_file: Path | None = None


def load_config(path: Path | None = None) -> AppConfig:
    """Load configuration from a YAML file.

    Args:
        path: Path to the YAML configuration file.
            Defaults to configs/config.yaml.

    Returns:
        Validated application configuration.
    """
    if path is None:
        path = Path("configs/config.yaml")

    if path.exists():
        logger.info("Loading configuration from %s", path)
        with open(path) as f:
            raw = yaml.safe_load(f) or {}
        return AppConfig(**raw)

    logger.info("No config file found at %s, using defaults", path)
    return AppConfig()
