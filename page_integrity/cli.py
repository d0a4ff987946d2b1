"""Command-line interface for page integrity analysis.

Provides subcommands for analyzing a single page image, a single page's
approval section, both at once, and folders of rendered pages with a CSV
summary.
"""

import argparse
import csv
import json
import re
import sys
import time
from pathlib import Path
from typing import Any

from page_integrity.approval.analyzer import ApprovalAnalyzer
from page_integrity.errors import ExtractionFormatError
from page_integrity.extraction.loader import load_page_extraction
from page_integrity.extraction.models import PageExtractionData
from page_integrity.pipeline import (
    PageIntegrityResult,
    PageIntegrityRunner,
    PageTask,
    analyze_page_task,
)
from page_integrity.utils.config import AppConfig, ApprovalMode, load_config
from page_integrity.utils.logger import get_logger, setup_logging
from page_integrity.vision.analyzer import (
    VisualAnalyzer,
    attach_affected_text,
    extract_text_regions,
)
from page_integrity.vision.models import AnomalyType

logger = get_logger(__name__)

_IMAGE_EXTENSIONS = ("*.png", "*.jpg", "*.jpeg", "*.tiff", "*.tif")
_PAGE_NUMBER = re.compile(r"(\d+)$")
_COUNTED_TYPES = (AnomalyType.STRIKE_THROUGH, AnomalyType.RED_MARK, AnomalyType.ERASURE)
_CSV_COLUMNS = [
    "page_number",
    "image",
    "status",
    "anomalies",
    *(str(t) for t in _COUNTED_TYPES),
    "signatures",
    "missing_signatures",
    "sequence_valid",
    "all_dates_present",
    "alerts",
]


def _find_pages(input_dir: Path) -> list[tuple[Path, Path | None]]:
    """Pair each page image with the extraction JSON sharing its stem.

    Args:
        input_dir: Directory holding rendered pages.

    Returns:
        Sorted ``(image, extraction)`` pairs; extraction is ``None`` when
        no JSON file exists for the image.
    """
    images: set[Path] = set()
    for ext in _IMAGE_EXTENSIONS:
        images.update(input_dir.glob(ext))
        images.update(input_dir.glob(ext.upper()))
    pairs = []
    for image in sorted(images):
        extraction = image.with_suffix(".json")
        pairs.append((image, extraction if extraction.exists() else None))
    return pairs


def _page_number(image: Path, fallback: int) -> int:
    match = _PAGE_NUMBER.search(image.stem)
    return int(match.group(1)) if match else fallback


def _load_extraction(path: Path | None) -> PageExtractionData:
    if path is None:
        return PageExtractionData()
    return load_page_extraction(path)


def analyze_visual(
    image: Path,
    extraction: Path | None,
    page_number: int,
    document_id: str,
    config: AppConfig,
) -> dict[str, Any]:
    page = _load_extraction(extraction)
    analyzer = VisualAnalyzer(config.visual)
    result = analyzer.analyze_page_image(
        image, page_number, extract_text_regions(page), document_id
    )
    attach_affected_text(result, page)
    return result.to_dict()


def analyze_approval(
    extraction: Path, page_number: int, config: AppConfig
) -> dict[str, Any]:
    page = load_page_extraction(extraction)
    return ApprovalAnalyzer(config.approval).analyze(page, page_number).to_dict()


def analyze_folder(
    input_dir: Path,
    output_csv: Path,
    document_id: str,
    config: AppConfig,
    verbose: bool = False,
) -> dict[str, int]:
    """Analyze every page image in a folder and export a CSV summary.

    Args:
        input_dir: Directory of page images with optional extraction JSON.
        output_csv: Path for the output CSV file.
        document_id: Document identifier used in anomaly ids.
        config: Application configuration.
        verbose: Whether to print per-page progress.

    Returns:
        Summary dict with total, clean, flagged and degraded counts.
    """
    pairs = _find_pages(input_dir)
    if not pairs:
        logger.warning("No page images found in %s", input_dir)
        return {"total": 0, "clean": 0, "flagged": 0, "degraded": 0}

    tasks = []
    for index, (image, extraction) in enumerate(pairs, 1):
        try:
            page = _load_extraction(extraction)
        except ExtractionFormatError as exc:
            logger.error("Skipping extraction for %s: %s", image.name, exc)
            page = PageExtractionData()
        tasks.append(
            PageTask(
                page_number=_page_number(image, index),
                image_path=str(image),
                extraction=page,
                document_id=document_id,
            )
        )
    logger.info("Found %d pages to analyze", len(tasks))

    results = PageIntegrityRunner(config).run(tasks)
    rows = []
    for result in results:
        row = _summary_row(result)
        rows.append(row)
        if verbose:
            print(
                f"Page {row['page_number']}: {row['status']}, "
                f"{row['anomalies']} anomalies, {row['alerts']} alerts"
            )

    _write_csv(rows, output_csv)
    logger.info("Results written to %s", output_csv)

    summary = {
        "total": len(rows),
        "clean": sum(1 for r in rows if r["status"] == "ok" and not r["alerts"]),
        "flagged": sum(1 for r in rows if r["status"] == "ok" and r["alerts"]),
        "degraded": sum(1 for r in rows if r["status"] != "ok"),
    }
    _print_summary(summary, output_csv)
    return summary


def _summary_row(result: PageIntegrityResult) -> dict[str, object]:
    anomalies = result.visual.anomalies
    row: dict[str, object] = {
        "page_number": result.page_number,
        "image": Path(result.visual.image_path).name,
        "status": str(result.status),
        "anomalies": len(anomalies),
        "signatures": len(result.approval.signatures),
        "missing_signatures": ";".join(
            str(r) for r in result.approval.missing_signatures
        ),
        "sequence_valid": result.approval.sequence_valid,
        "all_dates_present": result.approval.all_dates_present,
        "alerts": len(result.alerts),
    }
    for kind in _COUNTED_TYPES:
        row[str(kind)] = sum(1 for a in anomalies if a.type == kind)
    return row


def _write_csv(rows: list[dict[str, object]], output_path: Path) -> None:
    """Write per-page summary rows to a CSV file.

    Args:
        rows: Summary dictionaries.
        output_path: Path for the output CSV file.
    """
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, "w", newline="") as f:
        writer = csv.DictWriter(f, fieldnames=_CSV_COLUMNS, extrasaction="ignore")
        writer.writeheader()
        writer.writerows(rows)


def _print_summary(summary: dict[str, int], output_csv: Path) -> None:
    print(f"\n{'=' * 50}")
    print("Page Integrity Analysis Complete")
    print(f"{'=' * 50}")
    print(f"Pages:    {summary['total']}")
    print(f"Clean:    {summary['clean']}")
    print(f"Flagged:  {summary['flagged']}")
    print(f"Degraded: {summary['degraded']}")
    print(f"Output:   {output_csv}")


def _emit(result: dict[str, Any], output: Path | None) -> None:
    output_str = json.dumps(result, indent=2)
    if output:
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text(output_str)
        print(f"Output written to {output}")
    else:
        print(output_str)


def _require_file(path: Path) -> None:
    if not path.exists():
        print(f"Error: {path} does not exist", file=sys.stderr)
        sys.exit(1)


def _add_page_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "-p", "--page", type=int, default=1, help="1-based page number (default: 1)"
    )
    parser.add_argument(
        "-d",
        "--document-id",
        default="document",
        help="Document identifier used in anomaly ids (default: document)",
    )
    parser.add_argument("-o", "--output", type=Path, help="Output JSON file")


def main(argv: list[str] | None = None) -> None:
    """Parse CLI arguments and dispatch to the appropriate command.

    Args:
        argv: Command-line arguments (defaults to sys.argv).
    """
    parser = argparse.ArgumentParser(
        description="Batch-record page integrity analyzer",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "-c", "--config", type=Path, help="YAML config (default: configs/config.yaml)"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    visual_parser = subparsers.add_parser(
        "visual", help="Detect visual anomalies on a page image"
    )
    visual_parser.add_argument("image", type=Path, help="Rendered page image")
    visual_parser.add_argument(
        "-e", "--extraction", type=Path, help="Page extraction JSON with text regions"
    )
    visual_parser.add_argument(
        "--no-thumbnails", action="store_true", help="Do not write anomaly thumbnails"
    )
    _add_page_options(visual_parser)

    approval_parser = subparsers.add_parser(
        "approval", help="Validate approval sign-offs in a page extraction"
    )
    approval_parser.add_argument("extraction", type=Path, help="Page extraction JSON")
    approval_parser.add_argument(
        "-m",
        "--mode",
        choices=[m.value for m in ApprovalMode],
        help="Approval analysis mode (default: from config)",
    )
    _add_page_options(approval_parser)

    page_parser = subparsers.add_parser(
        "page", help="Run visual and approval analysis on one page"
    )
    page_parser.add_argument("image", type=Path, help="Rendered page image")
    page_parser.add_argument("extraction", type=Path, help="Page extraction JSON")
    _add_page_options(page_parser)

    batch_parser = subparsers.add_parser(
        "batch", help="Analyze a folder of page images"
    )
    batch_parser.add_argument(
        "input_dir", type=Path, help="Directory with page images and extraction JSON"
    )
    batch_parser.add_argument(
        "-o",
        "--output",
        type=Path,
        default=Path("integrity.csv"),
        help="Output CSV file (default: integrity.csv)",
    )
    batch_parser.add_argument(
        "-d", "--document-id", default="document", help="Document identifier"
    )
    batch_parser.add_argument(
        "-w", "--workers", type=int, help="Worker processes (default: from config)"
    )
    batch_parser.add_argument(
        "-v", "--verbose", action="store_true", help="Verbose output"
    )

    args = parser.parse_args(argv)

    config = load_config(args.config)
    setup_logging(config.log_level, config.log_file)

    try:
        if args.command == "visual":
            _require_file(args.image)
            if args.no_thumbnails:
                config.visual.thumbnails_enabled = False
            result = analyze_visual(
                args.image, args.extraction, args.page, args.document_id, config
            )
            _emit(result, args.output)
        elif args.command == "approval":
            _require_file(args.extraction)
            if args.mode:
                config.approval.mode = ApprovalMode(args.mode)
            _emit(analyze_approval(args.extraction, args.page, config), args.output)
        elif args.command == "page":
            _require_file(args.image)
            _require_file(args.extraction)
            task = PageTask(
                page_number=args.page,
                image_path=str(args.image),
                extraction=load_page_extraction(args.extraction),
                document_id=args.document_id,
            )
            start_time = time.time()
            result = analyze_page_task(task, config)
            logger.info("Page analyzed in %.2fs", time.time() - start_time)
            _emit(result.to_dict(), args.output)
        elif args.command == "batch":
            if not args.input_dir.is_dir():
                print(f"Error: {args.input_dir} is not a directory", file=sys.stderr)
                sys.exit(1)
            if args.workers:
                config.pipeline.max_workers = args.workers
            analyze_folder(
                args.input_dir, args.output, args.document_id, config, args.verbose
            )
        else:
            parser.print_help()
            sys.exit(0)
    except ExtractionFormatError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
