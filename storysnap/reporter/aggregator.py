"""Result aggregation: positional case results and run totals."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional

from storysnap.models.result import (
    STATUS_ERROR,
    STATUS_FAIL,
    STATUS_NO_BASELINE,
    STATUS_PASS,
    CaseResult,
    Report,
)

logger = logging.getLogger(__name__)


def count_status(cases: list[CaseResult], status: str) -> int:
    return sum(1 for c in cases if c.status == status)


class ResultAggregator:
    """Holds one slot per input case; each task writes only its own index."""

    def __init__(self, size: int):
        self._results: list[Optional[CaseResult]] = [None] * size

    def __len__(self) -> int:
        return len(self._results)

    def record(self, index: int, result: CaseResult) -> None:
        if self._results[index] is not None:
            raise RuntimeError(f"result for case {index} already recorded")
        self._results[index] = result

    def pending(self) -> list[int]:
        return [i for i, r in enumerate(self._results) if r is None]

    def build_report(self, generated_at: datetime | None = None) -> Report:
        missing = self.pending()
        if missing:
            raise RuntimeError(f"{len(missing)} cases have no result (first: {missing[0]})")
        cases: list[CaseResult] = list(self._results)  # type: ignore[arg-type]
        stamp = (generated_at or datetime.now(timezone.utc)).isoformat(timespec="seconds")
        report = Report(
            generated_at=stamp,
            total=len(cases),
            passed=count_status(cases, STATUS_PASS),
            failed=count_status(cases, STATUS_FAIL),
            no_baseline=count_status(cases, STATUS_NO_BASELINE),
            errored=count_status(cases, STATUS_ERROR),
            cases=cases,
        )
        logger.debug(
            "Report totals: %d passed, %d failed, %d no baseline, %d errored",
            report.passed, report.failed, report.no_baseline, report.errored,
        )
        return report
