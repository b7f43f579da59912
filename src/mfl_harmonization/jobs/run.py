from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from typing import Any

from mfl_harmonization.core.exceptions import QualityThresholdExceeded
from mfl_harmonization.core.harmonizer import BatchReport, Harmonizer
from mfl_harmonization.core.metrics import InMemoryHarmonizationMetricsCollector
from mfl_harmonization.core.models import DateStamp
from mfl_harmonization.core.quality import BatchQualityGate
from mfl_harmonization.jobs.store import JsonlFacilityHistoryStore

logger = logging.getLogger(__name__)


def run_harmonization(
    rows: Iterable[Mapping[str, Any]],
    harmonizer: Harmonizer,
    store: JsonlFacilityHistoryStore | None = None,
    quality_gate: BatchQualityGate | None = None,
    source_label: str | None = None,
    timestamp: DateStamp | None = None,
    metrics: InMemoryHarmonizationMetricsCollector | None = None,
) -> BatchReport:
    report = harmonizer.harmonize_batch(rows, source_label=source_label, timestamp=timestamp)
    try:
        if quality_gate is not None:
            quality_gate.check_or_raise(report)
    except QualityThresholdExceeded:
        if metrics:
            metrics.increment_run("failure", source=report.source)
        raise
    stored = store.append_many(report.records) if store is not None else 0
    if metrics:
        metrics.increment_run("success", source=report.source)
    logger.info("harmonization_run_completed", extra={"source": report.source, "stored": stored})
    return report
