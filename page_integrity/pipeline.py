"""Per-page integrity analysis and the multi-page runner.

Each page runs the visual analyzer, the approval analyzer and alert
generation. Pages are independent, so the runner fans them out to a
process pool and waits a bounded time for each one; a page that times out
or fails is reported with an empty visual result and the compliant-empty
approval report. Once a page times out the pool is terminated, so a hung
worker never outlives the run.
"""

import multiprocessing
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import StrEnum
from multiprocessing.pool import AsyncResult, Pool
from typing import Any

from page_integrity.alerts import (
    QualityAlert,
    build_approval_alerts,
    build_visual_alerts,
)
from page_integrity.approval.analyzer import ApprovalAnalyzer
from page_integrity.approval.models import ApprovalAnalysis
from page_integrity.extraction.models import PageExtractionData
from page_integrity.utils.config import AppConfig
from page_integrity.utils.logger import get_logger, get_page_logger
from page_integrity.vision.analyzer import (
    VisualAnalyzer,
    attach_affected_text,
    extract_text_regions,
)
from page_integrity.vision.models import VisualAnalysisResult

logger = get_logger(__name__)


class PageStatus(StrEnum):
    OK = "ok"
    TIMEOUT = "timeout"
    FAILED = "failed"


@dataclass
class PageTask:
    """One page to analyze: its raster on disk and its OCR extraction."""

    page_number: int
    image_path: str
    extraction: PageExtractionData
    document_id: str = "document"


@dataclass
class PageIntegrityResult:
    """Visual and approval findings for one page."""

    page_number: int
    visual: VisualAnalysisResult
    approval: ApprovalAnalysis
    alerts: list[QualityAlert] = field(default_factory=list)
    status: PageStatus = PageStatus.OK

    def to_dict(self) -> dict[str, Any]:
        return {
            "page_number": self.page_number,
            "status": str(self.status),
            "visual": self.visual.to_dict(),
            "approval": self.approval.to_dict(),
            "alerts": [a.to_dict() for a in self.alerts],
        }


def analyze_page_task(task: PageTask, config: AppConfig) -> PageIntegrityResult:
    """Analyze one page in the current process.

    Args:
        task: Page to analyze.
        config: Application configuration.

    Returns:
        The page result. Both analyzers degrade internally, so this only
        raises on programming errors.
    """
    visual_analyzer = VisualAnalyzer(config.visual)
    approval_analyzer = ApprovalAnalyzer(config.approval)

    visual = visual_analyzer.analyze_page_image(
        task.image_path,
        task.page_number,
        extract_text_regions(task.extraction),
        task.document_id,
    )
    attach_affected_text(visual, task.extraction)
    approval = approval_analyzer.analyze(task.extraction, task.page_number)
    alerts = build_visual_alerts(visual.anomalies) + build_approval_alerts(
        approval, task.page_number
    )
    return PageIntegrityResult(
        page_number=task.page_number,
        visual=visual,
        approval=approval,
        alerts=alerts,
    )


def degraded_result(
    task: PageTask, config: AppConfig, status: PageStatus
) -> PageIntegrityResult:
    """Empty visual result plus compliant-empty approval for a lost page."""
    return PageIntegrityResult(
        page_number=task.page_number,
        visual=VisualAnalysisResult(
            page_number=task.page_number,
            image_path=task.image_path,
            anomalies=[],
            processing_time_ms=0.0,
        ),
        approval=ApprovalAnalysis(mode=config.approval.mode),
        status=status,
    )


class PageIntegrityRunner:
    """Runs page analysis across a worker pool with a per-page timeout.

    Args:
        config: Application configuration.
        pool_factory: Builds the pool from a worker count. Defaults to
            a ``multiprocessing`` process pool.
    """

    def __init__(
        self,
        config: AppConfig | None = None,
        pool_factory: Callable[[int], Pool] | None = None,
    ) -> None:
        self.config = config or AppConfig()
        self.pool_factory = pool_factory or multiprocessing.Pool

    def run(self, tasks: list[PageTask]) -> list[PageIntegrityResult]:
        """Analyze pages and return results in task order.

        With a single worker or a single page the work runs inline,
        without a timeout.

        Args:
            tasks: Pages to analyze.

        Returns:
            One result per task.
        """
        if not tasks:
            return []
        start = time.perf_counter()
        workers = min(self.config.pipeline.max_workers, len(tasks))
        if workers <= 1:
            results = [self._run_inline(task) for task in tasks]
        else:
            results = self._run_pool(tasks, workers)

        degraded = sum(1 for r in results if r.status is not PageStatus.OK)
        logger.info(
            "Analyzed %d pages in %.1fs (%d degraded)",
            len(results),
            time.perf_counter() - start,
            degraded,
        )
        return results

    def _run_inline(self, task: PageTask) -> PageIntegrityResult:
        try:
            return analyze_page_task(task, self.config)
        except Exception:
            get_page_logger(logger, task.page_number, task.document_id).exception(
                "Page analysis failed"
            )
            return degraded_result(task, self.config, PageStatus.FAILED)

    def _run_pool(
        self, tasks: list[PageTask], workers: int
    ) -> list[PageIntegrityResult]:
        pool = self.pool_factory(workers)
        timed_out = False
        try:
            pending = [
                pool.apply_async(analyze_page_task, (task, self.config))
                for task in tasks
            ]
            results = []
            for task, async_result in zip(tasks, pending):
                result = self._collect(task, async_result)
                timed_out = timed_out or result.status is PageStatus.TIMEOUT
                results.append(result)
            return results
        finally:
            if timed_out:
                # Workers still busy with a timed-out page are killed.
                logger.warning("Terminating worker pool after page timeout")
                pool.terminate()
            else:
                pool.close()
                pool.join()

    def _collect(
        self, task: PageTask, async_result: AsyncResult
    ) -> PageIntegrityResult:
        page_log = get_page_logger(logger, task.page_number, task.document_id)
        try:
            return async_result.get(timeout=self.config.pipeline.page_timeout_s)
        except multiprocessing.TimeoutError:
            page_log.warning(
                "Page analysis timed out after %ss", self.config.pipeline.page_timeout_s
            )
            return degraded_result(task, self.config, PageStatus.TIMEOUT)
        except Exception:
            page_log.exception("Page analysis failed in worker")
            return degraded_result(task, self.config, PageStatus.FAILED)
