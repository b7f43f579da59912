from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Any

from mfl_harmonization.config import HarmonizationSettings, load_settings
from mfl_harmonization.core.field_map import FieldMap, load_field_map
from mfl_harmonization.core.harmonizer import BatchReport, Harmonizer
from mfl_harmonization.core.metrics import InMemoryHarmonizationMetricsCollector
from mfl_harmonization.core.prometheus_exporter import HarmonizationPrometheusExporter
from mfl_harmonization.core.quality import BatchQualityGate
from mfl_harmonization.core.schema import FacilitySchemaValidator
from mfl_harmonization.jobs.run import run_harmonization
from mfl_harmonization.jobs.store import JsonlFacilityHistoryStore
from mfl_harmonization.sources.published_sheet import PublishedSheetFetcher
from mfl_harmonization.sources.tabular import load_source_rows

logger = logging.getLogger(__name__)


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


def _load_rows(
    settings: HarmonizationSettings,
    field_map: FieldMap,
    metrics: InMemoryHarmonizationMetricsCollector,
) -> list[dict[str, Any]]:
    if settings.SOURCE_PATH:
        return load_source_rows(settings.SOURCE_PATH, field_map, sheet=settings.SOURCE_SHEET)
    fetcher = PublishedSheetFetcher(
        url=settings.SOURCE_URL or "",
        source_name=field_map.source,
        connect_timeout_seconds=settings.HTTP_CONNECT_TIMEOUT_SECONDS,
        read_timeout_seconds=settings.HTTP_READ_TIMEOUT_SECONDS,
        max_retries=settings.FETCH_MAX_RETRIES,
        retry_base_delay_seconds=settings.FETCH_RETRY_BASE_DELAY_SECONDS,
        metrics=metrics,
    )
    return asyncio.run(fetcher.fetch_rows())


def _write_json(path: str, payload: dict[str, Any]) -> None:
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(json.dumps(payload, ensure_ascii=False, indent=2) + "\n", encoding="utf-8")


def _write_metrics(path: str, metrics: InMemoryHarmonizationMetricsCollector) -> None:
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(HarmonizationPrometheusExporter().render(metrics), encoding="utf-8")


def run(settings: HarmonizationSettings, metrics: InMemoryHarmonizationMetricsCollector | None = None) -> BatchReport:
    metrics = metrics or InMemoryHarmonizationMetricsCollector()
    field_map = load_field_map(settings.FIELD_MAP)
    harmonizer = Harmonizer(
        field_map,
        schema_validator=FacilitySchemaValidator() if settings.SCHEMA_VALIDATION else None,
        metrics=metrics,
    )
    rows = _load_rows(settings, field_map, metrics)
    try:
        report = run_harmonization(
            rows,
            harmonizer,
            store=JsonlFacilityHistoryStore(settings.HISTORY_FILE),
            quality_gate=BatchQualityGate(
                max_reject_ratio=settings.MAX_REJECT_RATIO,
                reject_sample_size=settings.REJECT_SAMPLE_SIZE,
            ),
            source_label=settings.SOURCE_LABEL,
            timestamp=settings.TIMESTAMP,
            metrics=metrics,
        )
    finally:
        if settings.METRICS_FILE:
            _write_metrics(settings.METRICS_FILE, metrics)
    if settings.ERROR_REPORT_FILE:
        _write_json(settings.ERROR_REPORT_FILE, report.to_document())
    return report


def main() -> None:
    settings = load_settings()
    _configure_logging(settings.LOG_LEVEL)
    report = run(settings)
    logger.info(
        "harmonization_job_finished",
        extra={"source": report.source, "accepted": report.accepted_count, "rejected": report.rejected_count},
    )


if __name__ == "__main__":
    main()
