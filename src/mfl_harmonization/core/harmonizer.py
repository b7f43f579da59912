from __future__ import annotations

import logging
import math
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from time import perf_counter
from typing import Any

from mfl_harmonization.core.exceptions import (
    UNMAPPED_FIELD,
    CardinalityMismatch,
    HarmonizationError,
    MissingRequiredField,
    SchemaViolation,
)
from mfl_harmonization.core.field_map import ArrayMapping, FieldMap
from mfl_harmonization.core.metrics import InMemoryHarmonizationMetricsCollector
from mfl_harmonization.core.models import (
    ARRAY_FIELDS,
    LATITUDE_BOUNDS,
    LONGITUDE_BOUNDS,
    REQUIRED_PATHS,
    TEXT_PATHS,
    CodedRepeatedList,
    Coordinates,
    DateStamp,
    FacilityRecord,
    LocalName,
    ProvenancedField,
    assemble_group,
)
from mfl_harmonization.core.schema import FacilitySchemaValidator

logger = logging.getLogger(__name__)

Row = Mapping[str, Any]


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    return isinstance(value, str) and not value.strip()


def _clean(value: Any) -> Any:
    return value.strip() if isinstance(value, str) else value


def _split_cell(value: Any, delimiter: str | None) -> list[Any]:
    if _is_blank(value):
        return []
    if isinstance(value, (list, tuple)):
        return [_clean(item) for item in value]
    if delimiter is not None:
        text = str(value).strip()
        while text.endswith(delimiter):
            text = text[: -len(delimiter)].rstrip()
        return [part.strip() for part in text.split(delimiter)]
    return [_clean(value)]


def _parse_coordinate(path: str, raw: Any, bounds: tuple[float, float]) -> float:
    if _is_blank(raw):
        raise MissingRequiredField(path, "value is blank")
    if isinstance(raw, bool):
        raise MissingRequiredField(path, f"unparsable value {raw!r}")
    try:
        value = float(raw.strip()) if isinstance(raw, str) else float(raw)
    except (TypeError, ValueError) as exc:
        raise MissingRequiredField(path, f"unparsable value {raw!r}") from exc
    low, high = bounds
    if not math.isfinite(value) or not (low <= value <= high):
        raise MissingRequiredField(path, f"{value:g} outside [{low:g}, {high:g}]")
    return value


@dataclass(frozen=True)
class RowIssue:
    code: str
    field: str | None
    message: str

    @classmethod
    def from_error(cls, error: HarmonizationError) -> list[RowIssue]:
        issues: list[RowIssue] = []
        for item in error.all_errors():
            if isinstance(item, SchemaViolation):
                issues.extend(cls(code=item.code, field=v.path, message=v.message) for v in item.violations)
            else:
                issues.append(cls(code=item.code, field=item.field, message=str(item)))
        return issues


@dataclass
class BatchReport:
    source: str
    total_rows: int = 0
    records: list[FacilityRecord] = field(default_factory=list)
    accepted_rows: list[int] = field(default_factory=list)
    errors: dict[int, list[RowIssue]] = field(default_factory=dict)
    notes: list[RowIssue] = field(default_factory=list)

    @property
    def accepted_count(self) -> int:
        return len(self.records)

    @property
    def rejected_count(self) -> int:
        return len(self.errors)

    @property
    def reject_ratio(self) -> float:
        if not self.total_rows:
            return 0.0
        return self.rejected_count / self.total_rows

    def error_codes(self) -> dict[int, list[str]]:
        return {index: [issue.code for issue in issues] for index, issues in self.errors.items()}

    def to_document(self) -> dict[str, Any]:
        return {
            "source": self.source,
            "total_rows": self.total_rows,
            "accepted": self.accepted_count,
            "rejected": self.rejected_count,
            "errors": {
                str(index): [{"code": issue.code, "field": issue.field, "message": issue.message} for issue in issues]
                for index, issues in self.errors.items()
            },
            "unmapped_fields": [issue.field for issue in self.notes],
        }


class Harmonizer:
    """Maps rows of one source table onto canonical facility records."""

    def __init__(
        self,
        field_map: FieldMap,
        schema_validator: FacilitySchemaValidator | None = None,
        metrics: InMemoryHarmonizationMetricsCollector | None = None,
    ) -> None:
        self._field_map = field_map
        self._schema_validator = schema_validator
        self._metrics = metrics

    @property
    def field_map(self) -> FieldMap:
        return self._field_map

    def harmonize(
        self,
        row: Row,
        source_label: str | None = None,
        timestamp: DateStamp | None = None,
    ) -> FacilityRecord:
        source = source_label or self._field_map.source
        stamp = timestamp if timestamp is not None else self._field_map.version

        members: dict[str, Any] = {}
        problems: list[HarmonizationError] = []
        for name, mapping in self._field_map.arrays.items():
            try:
                built = self._array(name, mapping, row, source, stamp)
            except CardinalityMismatch as exc:
                problems.append(exc)
                continue
            if built is not None:
                members[name] = built
        coordinates, coordinate_problems = self._coordinates(row, source, stamp)
        problems.extend(coordinate_problems)
        if problems:
            first, *rest = problems
            first.related = tuple(rest)
            raise first
        members["coordinates"] = coordinates
        for path, mapping in self._field_map.fields.items():
            if path in REQUIRED_PATHS:
                continue
            raw = row.get(mapping.column)
            if _is_blank(raw):
                continue
            if path in TEXT_PATHS:
                members[path] = str(raw).strip()
            else:
                members[path] = ProvenancedField(value=_clean(raw), source=source, date_stamp=stamp)

        record = assemble_group(FacilityRecord, "", members)
        result = record.validate()
        if self._schema_validator is not None:
            result = result.merge(self._schema_validator.validate_record(record))
        result.raise_for_violations()
        return record

    def harmonize_batch(
        self,
        rows: Iterable[Row],
        source_label: str | None = None,
        timestamp: DateStamp | None = None,
    ) -> BatchReport:
        source = source_label or self._field_map.source
        report = BatchReport(source=source)
        report.notes = [
            RowIssue(code=UNMAPPED_FIELD, field=path, message="no column mapped")
            for path in self._field_map.unmapped_paths()
        ]
        if self._metrics:
            self._metrics.set_active_source(source)
        logger.info("harmonization_batch_started", extra={"source": source, "version": self._field_map.version})
        for column in sorted(self._field_map.ignored_columns()):
            logger.info("duplicate_column_dropped", extra={"source": source, "column": column})

        started = perf_counter()
        for index, row in enumerate(rows):
            report.total_rows += 1
            try:
                record = self.harmonize(row, source, timestamp)
            except HarmonizationError as exc:
                report.errors[index] = RowIssue.from_error(exc)
                logger.warning(
                    "harmonization_row_rejected",
                    extra={
                        "source": source,
                        "row_index": index,
                        "code": exc.code,
                        "field": exc.field,
                        "issues": len(report.errors[index]),
                    },
                )
                continue
            report.records.append(record)
            report.accepted_rows.append(index)

        self._record_batch_metrics(report, perf_counter() - started)
        logger.info(
            "harmonization_batch_completed",
            extra={
                "source": source,
                "accepted": report.accepted_count,
                "rejected": report.rejected_count,
                "unmapped_fields": len(report.notes),
            },
        )
        return report

    def _coordinates(
        self, row: Row, source: str, stamp: DateStamp
    ) -> tuple[Coordinates | None, list[MissingRequiredField]]:
        values: dict[str, float] = {}
        problems: list[MissingRequiredField] = []
        for path, bounds in zip(REQUIRED_PATHS, (LATITUDE_BOUNDS, LONGITUDE_BOUNDS)):
            mapping = self._field_map.fields.get(path)
            try:
                if mapping is None:
                    raise MissingRequiredField(path, "no column mapped")
                values[path] = _parse_coordinate(path, row.get(mapping.column), bounds)
            except MissingRequiredField as exc:
                problems.append(exc)
        if problems:
            return None, problems
        latitude, longitude = (values[path] for path in REQUIRED_PATHS)
        coordinates = Coordinates(
            latitude=ProvenancedField(value=latitude, source=source, date_stamp=stamp),
            longitude=ProvenancedField(value=longitude, source=source, date_stamp=stamp),
        )
        return coordinates, []

    def _array(self, name: str, mapping: ArrayMapping, row: Row, source: str, stamp: DateStamp) -> Any:
        parts = {part: _split_cell(row.get(column), mapping.delimiter) for part, column in mapping.columns.items()}
        if not any(parts.values()):
            return None
        counts = {part: len(items) for part, items in parts.items()}
        if len(set(counts.values())) > 1:
            raise CardinalityMismatch(name, counts)
        size = next(iter(counts.values()))

        kind = ARRAY_FIELDS[name]
        if kind is LocalName:
            languages = parts.get("languages", [None] * size)
            return tuple(LocalName(name=str(item), language=language) for item, language in zip(parts["names"], languages))
        kwargs: dict[str, Any] = {
            "values": parts["values"],
            "sources": parts.get("sources", [source] * size),
            "date_stamps": parts.get("date_stamps", [stamp] * size),
        }
        if kind is CodedRepeatedList:
            kwargs["codes"] = parts.get("codes", [None] * size)
        try:
            return kind(**kwargs)
        except CardinalityMismatch as exc:
            raise CardinalityMismatch(name, exc.counts) from exc

    def _record_batch_metrics(self, report: BatchReport, duration_seconds: float) -> None:
        if not self._metrics:
            return
        self._metrics.observe_stage_duration("harmonize_batch", duration_seconds * 1000.0)
        self._metrics.observe_batch_duration(duration_seconds, source=report.source)
        self._metrics.add_rows("accepted", report.accepted_count, source=report.source)
        self._metrics.add_rows("rejected", report.rejected_count, source=report.source)
        for issues in report.errors.values():
            for issue in issues:
                self._metrics.add_issue(issue.code, source=report.source)
        self._metrics.add_issue(UNMAPPED_FIELD, count=len(report.notes), source=report.source)
        self._metrics.set_reject_ratio(report.reject_ratio, source=report.source)


def harmonize(
    row: Row,
    field_map: FieldMap,
    source_label: str | None = None,
    timestamp: DateStamp | None = None,
) -> FacilityRecord:
    """Harmonize a single row, raising the matching ``HarmonizationError`` on rejection.

    Array cardinality is checked before coordinates. When a row has several
    problems the first one is raised and the others ride on its ``related``.
    """
    return Harmonizer(field_map).harmonize(row, source_label=source_label, timestamp=timestamp)
