"""Tests for configuration loading and validation."""

from pathlib import Path

import pytest
import yaml
from pydantic import ValidationError

from page_integrity.utils.config import (
    AppConfig,
    ApprovalConfig,
    ApprovalMode,
    ErasureConfig,
    PipelineConfig,
    ServerConfig,
    VisualConfig,
    load_config,
)


class TestVisualConfig:
    """Tests for VisualConfig defaults and overrides."""

    def test_defaults(self) -> None:
        cfg = VisualConfig()
        assert cfg.min_line_length == 30
        assert cfg.dark_threshold == 100
        assert cfg.edge_threshold == 50
        assert cfg.diagonal_angles == [30, 45, 60, 120, 135, 150]
        assert cfg.min_continuity == 0.7
        assert cfg.anomaly_merge_distance == 30.0
        assert cfg.thumbnails_enabled is True

    def test_override(self) -> None:
        cfg = VisualConfig(min_line_length=50, thumbnails_enabled=False)
        assert cfg.min_line_length == 50
        assert cfg.thumbnails_enabled is False

    def test_diagonal_angles_not_shared(self) -> None:
        a = VisualConfig()
        b = VisualConfig()
        a.diagonal_angles.append(90)
        assert 90 not in b.diagonal_angles


class TestErasureConfig:
    """Tests for ErasureConfig defaults."""

    def test_defaults(self) -> None:
        cfg = ErasureConfig()
        assert cfg.min_regions == 3
        assert cfg.z_score_threshold == 2.5
        assert cfg.white_ratio_threshold == 0.80
        assert cfg.brightness_threshold == 235.0
        assert cfg.edge_coverage == 0.20


class TestApprovalConfig:
    """Tests for ApprovalConfig defaults and validation."""

    def test_defaults(self) -> None:
        cfg = ApprovalConfig()
        assert cfg.mode is ApprovalMode.SEQUENCE
        assert cfg.trigger_phrases == ["recorded by", "verified by"]
        assert cfg.label_radius_px == 200.0
        assert cfg.date_radius_px == 150.0
        assert cfg.checkbox_radius_px == 100.0

    def test_mode_from_string(self) -> None:
        assert ApprovalConfig(mode="presence").mode is ApprovalMode.PRESENCE

    def test_invalid_mode_rejected(self) -> None:
        with pytest.raises(ValidationError):
            ApprovalConfig(mode="signature-count")


class TestAppConfig:
    """Tests for the top-level AppConfig."""

    def test_defaults(self) -> None:
        cfg = AppConfig()
        assert isinstance(cfg.visual, VisualConfig)
        assert isinstance(cfg.visual.erasure, ErasureConfig)
        assert isinstance(cfg.approval, ApprovalConfig)
        assert isinstance(cfg.pipeline, PipelineConfig)
        assert isinstance(cfg.server, ServerConfig)
        assert cfg.log_level == "INFO"
        assert cfg.log_file is None

    def test_nested_override(self) -> None:
        cfg = AppConfig(
            pipeline=PipelineConfig(max_workers=1, page_timeout_s=5),
            log_level="DEBUG",
        )
        assert cfg.pipeline.max_workers == 1
        assert cfg.pipeline.page_timeout_s == 5.0
        assert cfg.log_level == "DEBUG"


class TestLoadConfig:
    """Tests for the load_config function."""

    def test_load_project_config(self, config_dir: Path) -> None:
        cfg = load_config(config_dir / "config.yaml")
        assert isinstance(cfg, AppConfig)
        assert cfg.approval.mode is ApprovalMode.SEQUENCE
        assert cfg.visual.thumbnail_workers == 2
        assert cfg.server.port == 8000

    def test_load_missing_file_returns_defaults(self) -> None:
        cfg = load_config(Path("/nonexistent/path/config.yaml"))
        assert isinstance(cfg, AppConfig)
        assert cfg.pipeline.max_workers == 4

    def test_load_custom_yaml(self, tmp_path: Path) -> None:
        config_data = {
            "visual": {"min_line_length": 40, "erasure": {"min_regions": 5}},
            "approval": {"mode": "presence", "trigger_phrases": ["signed by"]},
            "pipeline": {"page_timeout_s": 10},
            "log_level": "DEBUG",
            "log_file": str(tmp_path / "logs" / "run.log"),
        }
        config_file = tmp_path / "config.yaml"
        with open(config_file, "w") as f:
            yaml.dump(config_data, f)

        cfg = load_config(config_file)
        assert cfg.visual.min_line_length == 40
        assert cfg.visual.erasure.min_regions == 5
        assert cfg.visual.erasure.z_score_threshold == 2.5
        assert cfg.approval.mode is ApprovalMode.PRESENCE
        assert cfg.approval.trigger_phrases == ["signed by"]
        assert cfg.pipeline.page_timeout_s == 10.0
        assert cfg.log_level == "DEBUG"
        assert cfg.log_file == tmp_path / "logs" / "run.log"

    def test_load_empty_yaml(self, tmp_path: Path) -> None:
        config_file = tmp_path / "empty.yaml"
        config_file.write_text("")
        cfg = load_config(config_file)
        assert isinstance(cfg, AppConfig)

    def test_load_none_defaults_to_standard_path(self) -> None:
        cfg = load_config()
        assert isinstance(cfg, AppConfig)
