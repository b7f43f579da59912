from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass


@dataclass(frozen=True)
class StageDuration:
    stage: str
    duration_ms: float


class InMemoryHarmonizationMetricsCollector:
    def __init__(self) -> None:
        self.stage_durations: list[StageDuration] = []
        self.sheet_fetch_retry_count = 0
        self.batch_run_total: dict[tuple[str, str], int] = defaultdict(int)
        self.rows_total: dict[tuple[str, str], int] = defaultdict(int)
        self.issues_total: dict[tuple[str, str], int] = defaultdict(int)
        self.reject_ratio: dict[str, float] = {}
        self.batch_duration_seconds: dict[str, float] = {}
        self.sheet_fetch_errors_total: dict[tuple[str, str], int] = defaultdict(int)
        self._active_source = "unknown"

    def observe_stage_duration(self, stage: str, duration_ms: float) -> None:
        self.stage_durations.append(StageDuration(stage=stage, duration_ms=duration_ms))

    def set_active_source(self, source: str) -> None:
        self._active_source = source or "unknown"

    def increment_run(self, status: str, source: str | None = None) -> None:
        self.batch_run_total[(source or self._active_source, status)] += 1

    def add_rows(self, result: str, count: int, source: str | None = None) -> None:
        if count <= 0:
            return
        self.rows_total[(source or self._active_source, result)] += count

    def add_issue(self, code: str, count: int = 1, source: str | None = None) -> None:
        if count <= 0:
            return
        self.issues_total[(source or self._active_source, code)] += count

    def set_reject_ratio(self, ratio: float, source: str | None = None) -> None:
        self.reject_ratio[source or self._active_source] = ratio

    def observe_batch_duration(self, duration_seconds: float, source: str | None = None) -> None:
        self.batch_duration_seconds[source or self._active_source] = duration_seconds

    def increment_sheet_fetch_retry(self) -> None:
        self.sheet_fetch_retry_count += 1

    def increment_sheet_fetch_error(self, code: int | str, source: str | None = None) -> None:
        self.sheet_fetch_errors_total[(source or self._active_source, str(code))] += 1
