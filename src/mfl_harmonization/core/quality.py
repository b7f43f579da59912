from __future__ import annotations

from mfl_harmonization.core.exceptions import QualityThresholdExceeded
from mfl_harmonization.core.harmonizer import BatchReport


class BatchQualityGate:
    def __init__(self, max_reject_ratio: float = 1.0, reject_sample_size: int = 5) -> None:
        if max_reject_ratio < 0 or max_reject_ratio > 1:
            raise ValueError("max_reject_ratio must be between 0 and 1")
        if reject_sample_size < 0:
            raise ValueError("reject_sample_size must be >= 0")
        self._max_reject_ratio = max_reject_ratio
        self._reject_sample_size = reject_sample_size

    def check_or_raise(self, report: BatchReport) -> BatchReport:
        if report.reject_ratio <= self._max_reject_ratio:
            return report
        samples = list(report.errors.items())[: self._reject_sample_size]
        sample_summary = ", ".join(
            f"{index}:{'|'.join(issue.code for issue in issues)}" for index, issues in samples
        )
        raise QualityThresholdExceeded(
            f"quality threshold exceeded: source={report.source}, rejected={report.rejected_count}, "
            f"total={report.total_rows}, samples={sample_summary}"
        )
