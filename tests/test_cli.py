"""Tests for the command-line interface and CSV export."""

import csv
import json
from pathlib import Path

import numpy as np
import pytest
import yaml
from PIL import Image

from page_integrity.cli import (
    _CSV_COLUMNS,
    _find_pages,
    _page_number,
    _print_summary,
    _write_csv,
    analyze_folder,
    main,
)
from page_integrity.extraction.models import BoundingBox
from page_integrity.utils.config import AppConfig, PipelineConfig, VisualConfig


def _box(x: float, y: float, width: float, height: float) -> dict[str, float]:
    return {"x": x, "y": y, "width": width, "height": height}


def _write_json(path: Path, data: dict) -> Path:
    path.write_text(json.dumps(data))
    return path


def _approval_json(labels: list[str]) -> dict:
    text_blocks = []
    signatures = []
    for i, label in enumerate(labels):
        y = 100 + i * 150
        text_blocks.append({"text": label, "bounding_box": _box(50, y, 100, 20)})
        text_blocks.append({"text": "12/03/2024", "bounding_box": _box(340, y, 90, 20)})
        signatures.append({"bounding_box": _box(200, y, 120, 30)})
    return {"text_blocks": text_blocks, "signatures": signatures}


@pytest.fixture
def config_file(tmp_path: Path) -> Path:
    """YAML config that runs pages inline and writes no thumbnails."""
    path = tmp_path / "config.yaml"
    path.write_text(
        yaml.safe_dump(
            {
                "visual": {
                    "thumbnails_enabled": False,
                    "thumbnail_dir": str(tmp_path / "thumbs"),
                },
                "pipeline": {"max_workers": 1},
                "log_level": "WARNING",
            }
        )
    )
    return path


@pytest.fixture
def page_dir(
    tmp_path: Path,
    blank_page: np.ndarray,
    horizontal_strike_page: tuple[np.ndarray, BoundingBox],
) -> Path:
    """Three rendered pages: a struck entry, a blank page and a sign-off page."""
    folder = tmp_path / "pages"
    folder.mkdir()
    image, region = horizontal_strike_page
    Image.fromarray(image).save(folder / "page_001.png")
    _write_json(
        folder / "page_001.json",
        {"text_blocks": [{"text": "25.0 kg", "bounding_box": region.to_dict()}]},
    )
    Image.fromarray(np.full_like(blank_page, 255)).save(folder / "page_002.png")
    Image.fromarray(np.full_like(blank_page, 255)).save(folder / "page_003.png")
    _write_json(folder / "page_003.json", _approval_json(["Operator:", "Verified by:"]))
    return folder


@pytest.fixture
def inline_config(visual_config: VisualConfig) -> AppConfig:
    return AppConfig(visual=visual_config, pipeline=PipelineConfig(max_workers=1))


class TestFindPages:
    """Tests for page discovery."""

    def test_pairs_images_with_extraction(self, page_dir: Path) -> None:
        pairs = _find_pages(page_dir)
        assert [image.name for image, _ in pairs] == [
            "page_001.png",
            "page_002.png",
            "page_003.png",
        ]
        assert pairs[0][1] == page_dir / "page_001.json"
        assert pairs[1][1] is None

    def test_uppercase_extensions(self, tmp_path: Path, blank_page: np.ndarray) -> None:
        Image.fromarray(blank_page).save(tmp_path / "SCAN.PNG")
        assert [image.name for image, _ in _find_pages(tmp_path)] == ["SCAN.PNG"]

    def test_no_pages(self, tmp_path: Path) -> None:
        assert _find_pages(tmp_path) == []

    def test_page_number_from_stem(self) -> None:
        assert _page_number(Path("page_012.png"), 1) == 12
        assert _page_number(Path("cover.png"), 4) == 4


class TestWriteCsv:
    """Tests for CSV export."""

    def test_creates_parent_dirs(self, tmp_path: Path) -> None:
        output = tmp_path / "nested" / "dir" / "out.csv"
        _write_csv([], output)
        assert output.exists()

    def test_header(self, tmp_path: Path) -> None:
        output = tmp_path / "out.csv"
        _write_csv([{"page_number": 1, "status": "ok", "extra": "dropped"}], output)
        with open(output) as f:
            rows = list(csv.reader(f))
        assert rows[0] == _CSV_COLUMNS
        assert rows[1][0] == "1"
        assert "dropped" not in rows[1]


class TestPrintSummary:
    """Tests for summary printing."""

    def test_print_summary(self, capsys: pytest.CaptureFixture[str]) -> None:
        summary = {"total": 3, "clean": 1, "flagged": 2, "degraded": 0}
        _print_summary(summary, Path("out.csv"))
        captured = capsys.readouterr()
        assert "Pages:    3" in captured.out
        assert "Flagged:  2" in captured.out
        assert "out.csv" in captured.out


class TestAnalyzeFolder:
    """Tests for folder analysis."""

    def test_summary_and_rows(
        self, page_dir: Path, tmp_path: Path, inline_config: AppConfig
    ) -> None:
        output = tmp_path / "out.csv"
        summary = analyze_folder(page_dir, output, "batch-7", inline_config)

        assert summary == {"total": 3, "clean": 1, "flagged": 2, "degraded": 0}
        with open(output) as f:
            rows = list(csv.DictReader(f))
        assert [r["page_number"] for r in rows] == ["1", "2", "3"]
        assert rows[0]["strike_through"] == "1"
        assert rows[0]["alerts"] == "1"
        assert rows[2]["missing_signatures"] == "reviewer;qa_reviewer;qa_approver"
        assert rows[2]["sequence_valid"] == "True"

    def test_empty_folder(self, tmp_path: Path, inline_config: AppConfig) -> None:
        output = tmp_path / "out.csv"
        summary = analyze_folder(tmp_path, output, "doc", inline_config)
        assert summary["total"] == 0
        assert not output.exists()

    def test_bad_extraction_is_skipped(
        self, page_dir: Path, tmp_path: Path, inline_config: AppConfig
    ) -> None:
        (page_dir / "page_003.json").write_text("{broken")
        summary = analyze_folder(page_dir, tmp_path / "out.csv", "doc", inline_config)
        assert summary == {"total": 3, "clean": 2, "flagged": 1, "degraded": 0}

    def test_verbose(
        self,
        page_dir: Path,
        tmp_path: Path,
        inline_config: AppConfig,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        analyze_folder(page_dir, tmp_path / "out.csv", "doc", inline_config, True)
        captured = capsys.readouterr()
        assert "Page 1: ok, 1 anomalies, 1 alerts" in captured.out


class TestCLIMain:
    """Tests for the main CLI entry point."""

    def test_no_command_shows_help(self, capsys: pytest.CaptureFixture[str]) -> None:
        with pytest.raises(SystemExit) as exc_info:
            main([])
        assert exc_info.value.code == 0
        assert "usage" in capsys.readouterr().out.lower()

    def test_visual_command(
        self, config_file: Path, page_dir: Path, tmp_path: Path
    ) -> None:
        output = tmp_path / "visual.json"
        main(
            [
                "-c",
                str(config_file),
                "visual",
                str(page_dir / "page_001.png"),
                "-e",
                str(page_dir / "page_001.json"),
                "-p",
                "1",
                "-o",
                str(output),
            ]
        )
        data = json.loads(output.read_text())
        assert len(data["anomalies"]) == 1
        assert data["anomalies"][0]["affected_text"] == "25.0 kg"
        assert data["anomalies"][0]["thumbnail_path"] is None

    def test_approval_command(
        self, config_file: Path, page_dir: Path, tmp_path: Path
    ) -> None:
        output = tmp_path / "approval.json"
        main(
            [
                "-c",
                str(config_file),
                "approval",
                str(page_dir / "page_003.json"),
                "-o",
                str(output),
            ]
        )
        data = json.loads(output.read_text())
        assert data["mode"] == "sequence"
        assert data["final_approval_role"] == "verifier"
        assert data["missing_signatures"] == ["reviewer", "qa_reviewer", "qa_approver"]

    def test_approval_presence_mode(
        self,
        config_file: Path,
        page_dir: Path,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        main(
            [
                "-c",
                str(config_file),
                "approval",
                str(page_dir / "page_003.json"),
                "-m",
                "presence",
            ]
        )
        data = json.loads(capsys.readouterr().out)
        assert data["mode"] == "presence"
        assert data["missing_signatures"] == []
        assert data["approval_chain"] == ["operator", "verifier"]

    def test_page_command(
        self, config_file: Path, page_dir: Path, tmp_path: Path
    ) -> None:
        output = tmp_path / "page.json"
        main(
            [
                "-c",
                str(config_file),
                "page",
                str(page_dir / "page_003.png"),
                str(page_dir / "page_003.json"),
                "-p",
                "3",
                "-o",
                str(output),
            ]
        )
        data = json.loads(output.read_text())
        assert data["status"] == "ok"
        assert data["page_number"] == 3
        assert len(data["alerts"]) == 3

    def test_batch_command(
        self, config_file: Path, page_dir: Path, tmp_path: Path
    ) -> None:
        output = tmp_path / "batch.csv"
        main(["-c", str(config_file), "batch", str(page_dir), "-o", str(output)])
        with open(output) as f:
            assert len(list(csv.DictReader(f))) == 3

    def test_batch_nonexistent_directory(
        self, config_file: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        with pytest.raises(SystemExit) as exc_info:
            main(["-c", str(config_file), "batch", "/nonexistent/path"])
        assert exc_info.value.code == 1
        assert "not a directory" in capsys.readouterr().err

    def test_visual_nonexistent_file(
        self, config_file: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        with pytest.raises(SystemExit) as exc_info:
            main(["-c", str(config_file), "visual", "/nonexistent/file.png"])
        assert exc_info.value.code == 1
        assert "does not exist" in capsys.readouterr().err

    def test_malformed_extraction(
        self,
        config_file: Path,
        tmp_path: Path,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        broken = tmp_path / "broken.json"
        broken.write_text("{broken")
        with pytest.raises(SystemExit) as exc_info:
            main(["-c", str(config_file), "approval", str(broken)])
        assert exc_info.value.code == 1
        assert "not valid JSON" in capsys.readouterr().err
