from __future__ import annotations

from prometheus_client import CollectorRegistry, Gauge, generate_latest

from mfl_harmonization.core.metrics import InMemoryHarmonizationMetricsCollector


class HarmonizationPrometheusExporter:
    def __init__(self) -> None:
        self._registry = CollectorRegistry()
        self._stage_duration = Gauge(
            "harmonization_stage_duration_ms",
            "Harmonization stage duration in milliseconds",
            labelnames=("stage",),
            registry=self._registry,
        )
        self._fetch_retries = Gauge(
            "harmonization_sheet_fetch_retries_total",
            "Published sheet fetch retry count",
            registry=self._registry,
        )
        self._batch_run_total = Gauge(
            "harmonization_batch_run_total",
            "Harmonization batches grouped by source and status",
            labelnames=("source", "status"),
            registry=self._registry,
        )
        self._rows_total = Gauge(
            "harmonization_rows_total",
            "Harmonized row counts grouped by source and result",
            labelnames=("source", "result"),
            registry=self._registry,
        )
        self._issues_total = Gauge(
            "harmonization_issues_total",
            "Row issues grouped by source and error code",
            labelnames=("source", "code"),
            registry=self._registry,
        )
        self._reject_ratio = Gauge(
            "harmonization_reject_ratio",
            "Reject ratio by source",
            labelnames=("source",),
            registry=self._registry,
        )
        self._batch_duration_seconds = Gauge(
            "harmonization_batch_duration_seconds",
            "Harmonization batch duration by source",
            labelnames=("source",),
            registry=self._registry,
        )
        self._fetch_errors_total = Gauge(
            "harmonization_sheet_fetch_errors_total",
            "Published sheet fetch errors grouped by source and code",
            labelnames=("source", "code"),
            registry=self._registry,
        )

    def render(self, metrics: InMemoryHarmonizationMetricsCollector) -> str:
        latest_by_stage: dict[str, float] = {}
        for item in metrics.stage_durations:
            latest_by_stage[item.stage] = item.duration_ms
        for stage, duration in latest_by_stage.items():
            self._stage_duration.labels(stage=stage).set(duration)
        self._fetch_retries.set(metrics.sheet_fetch_retry_count)
        for (source, status), count in metrics.batch_run_total.items():
            self._batch_run_total.labels(source=source, status=status).set(count)
        for (source, result), count in metrics.rows_total.items():
            self._rows_total.labels(source=source, result=result).set(count)
        for (source, code), count in metrics.issues_total.items():
            self._issues_total.labels(source=source, code=code).set(count)
        for source, ratio in metrics.reject_ratio.items():
            self._reject_ratio.labels(source=source).set(ratio)
        for source, duration in metrics.batch_duration_seconds.items():
            self._batch_duration_seconds.labels(source=source).set(duration)
        for (source, code), count in metrics.sheet_fetch_errors_total.items():
            self._fetch_errors_total.labels(source=source, code=code).set(count)
        return generate_latest(self._registry).decode("utf-8")
