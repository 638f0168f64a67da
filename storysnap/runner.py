"""Snapshot runner: drives every case through capture, diff and the report."""

from __future__ import annotations

import asyncio
import logging
import time
from pathlib import Path
from typing import Awaitable, Callable, Optional, Protocol

from storysnap.browser.pool import BrowserInstance, BrowserPool
from storysnap.capture.capture import capture, write_capture
from storysnap.diff.engine import compare_files
from storysnap.errors import BaselineMissingError, CaptureError, DiffError, SetupError
from storysnap.models.config import RunConfig
from storysnap.models.result import (
    STATUS_ERROR,
    STATUS_FAIL,
    STATUS_NO_BASELINE,
    STATUS_PASS,
    CaseResult,
    Report,
)
from storysnap.models.story import StoryCase
from storysnap.progress import ProgressEvent, ProgressFeed
from storysnap.reporter.aggregator import ResultAggregator
from storysnap.reporter.json_report import generate_json_report
from storysnap.scheduler import TaskScheduler

logger = logging.getLogger(__name__)

StopHandle = Callable[[], Awaitable[None]]


class StoryServer(Protocol):
    """Hosts the rendered stories. Build/serve details live outside the core."""

    async def ensure_running(self) -> StopHandle: ...


def snapshot_paths(config: RunConfig, case: StoryCase) -> tuple[Path, Path]:
    """Return ``(diff_path, baseline_path)`` for a case."""
    snapshots = config.snapshot_dir
    return (
        snapshots / "__diff__" / case.filename,
        snapshots / "__base_images__" / case.filename,
    )


class SnapshotRunner:
    """Captures every case, compares it to its baseline and writes the report."""

    def __init__(
        self,
        config: RunConfig,
        cases: list[StoryCase],
        progress: ProgressFeed | None = None,
        server: StoryServer | None = None,
        logger: logging.Logger | None = None,
    ):
        self.config = config
        self.cases = cases[: config.limit] if config.limit else list(cases)
        self.progress = progress
        self.server = server
        self.log = logger or logging.getLogger(__name__)

    def run(self) -> Report:
        """Execute the run to completion and return the report."""
        return asyncio.run(self.run_async())

    async def run_async(self) -> Report:
        start = time.time()
        self.log.info("=== Snapshot run: %d cases against %s ===",
                      len(self.cases), self.config.base_url)

        stop: Optional[StopHandle] = None
        if self.server is not None:
            try:
                stop = await self.server.ensure_running()
            except SetupError:
                raise
            except Exception as e:
                raise SetupError(f"story server failed to start: {e}") from e

        try:
            report = await self._run_cases()
        finally:
            if stop is not None:
                await stop()
            if self.progress is not None:
                self.progress.close()

        report_path = generate_json_report(report, self.config.resolved_report_path())
        self.log.info(
            "=== Run complete in %.1fs: %d passed, %d failed, %d no baseline, %d errored ===",
            time.time() - start, report.passed, report.failed,
            report.no_baseline, report.errored,
        )
        self.log.info("Report written to %s", report_path)
        return report

    async def _run_cases(self) -> Report:
        aggregator = ResultAggregator(len(self.cases))
        pool = await BrowserPool.launch(
            self.config.instances,
            chrome_args=self.config.chrome_args,
            headless=self.config.headless,
            logger=self.log,
        )
        scheduler = TaskScheduler(self.config.concurrency, logger=self.log)
        try:
            for index, case in enumerate(self.cases):
                await scheduler.submit(self._run_case, pool, aggregator, index, case)
            await scheduler.wait()
        finally:
            await scheduler.cancel()
            await pool.close_all()
        return aggregator.build_report()

    async def _run_case(
        self, pool: BrowserPool, aggregator: ResultAggregator, index: int, case: StoryCase,
    ) -> None:
        try:
            result = await self._snapshot_case(pool, index, case)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.log.error("Case %s crashed: %s", case.name, e)
            _, baseline_path = snapshot_paths(self.config, case)
            result = CaseResult(
                name=case.name, url=case.url, status=STATUS_ERROR, error=str(e),
                baseline=str(baseline_path),
            )
            result = self._finish(index, case, result, None)
        aggregator.record(index, result)

    async def _snapshot_case(self, pool: BrowserPool, index: int, case: StoryCase) -> CaseResult:
        diff_path, baseline_path = snapshot_paths(self.config, case)
        url = f"{self.config.base_url}{case.url}"
        instance = pool.pick()
        self._emit(ProgressEvent("start", index, case.name, case.url, instance.id))
        self.log.info("Running case [%d/%d]: %s (%dx%d)",
                      index + 1, len(self.cases), case.name, case.width, case.height)

        base = CaseResult(
            name=case.name, url=case.url, status=STATUS_ERROR,
            baseline=str(baseline_path),
        )

        try:
            data, instance_id = await self._capture_with_retry(pool, instance, case, url)
        except CaptureError as e:
            result = base.model_copy(update={"error": str(e)})
            return self._finish(index, case, result, e.instance_id)

        threshold = case.threshold if case.threshold is not None else self.config.threshold
        try:
            px, ph = await asyncio.to_thread(
                compare_files,
                baseline_path,
                data,
                diff_path,
                threshold / 100,
                self.config.perceptual_distance,
                self.config.diff_pixel_color.as_rgba(),
            )
        except BaselineMissingError:
            if self.config.update_baselines:
                write_capture(baseline_path, data)
                self.log.info("Wrote new baseline %s", baseline_path)
            result = base.model_copy(update={"status": STATUS_NO_BASELINE})
            return self._finish(index, case, result, instance_id)
        except DiffError as e:
            result = base.model_copy(update={"error": str(e)})
            return self._finish(index, case, result, instance_id)

        result = base.model_copy(update={
            "status": STATUS_PASS if px.passed else STATUS_FAIL,
            "out_path": px.diff_image_path or "",
            "pixel_diff": px,
            "percep_diff": ph,
        })
        return self._finish(index, case, result, instance_id)

    async def _capture_with_retry(
        self, pool: BrowserPool, instance: BrowserInstance, case: StoryCase, url: str,
    ) -> tuple[bytes, int]:
        """Capture with up to ``case.retry`` extra attempts, each with its own deadline."""
        wait_selectors = list(case.wait_selectors or self.config.wait_selectors)
        attempts = case.retry + 1
        for attempt in range(1, attempts + 1):
            if attempt > 1:
                instance = pool.pick()
            try:
                data = await asyncio.wait_for(
                    capture(
                        instance, url, case.width, case.height, wait_selectors,
                        selector_timeout=self.config.selector_timeout_seconds,
                        settle_ms=self.config.settle_ms,
                        logger=self.log,
                    ),
                    timeout=self.config.timeout_seconds,
                )
                return data, instance.id
            except asyncio.TimeoutError as e:
                error = CaptureError(
                    f"capture timed out after {self.config.timeout_seconds:g}s",
                    instance_id=instance.id,
                )
                if attempt == attempts:
                    raise error from e
            except CaptureError as e:
                e.instance_id = instance.id
                if attempt == attempts:
                    raise
                error = e
            self.log.warning("Capture of %s failed (attempt %d/%d): %s",
                             case.name, attempt, attempts, error)

    def _finish(
        self, index: int, case: StoryCase, result: CaseResult, instance_id: Optional[int],
    ) -> CaseResult:
        level = logging.INFO if result.status in (STATUS_PASS, STATUS_NO_BASELINE) else logging.WARNING
        self.log.log(level, "[%s] %s %dx%d%s", result.status.upper(), case.name,
                     case.width, case.height, f": {result.error}" if result.error else "")
        self._emit(ProgressEvent(
            "done", index, case.name, case.url, instance_id,
            status=result.status, error=result.error,
        ))
        return result

    def _emit(self, event: ProgressEvent) -> None:
        if self.progress is not None:
            self.progress.emit(event)
