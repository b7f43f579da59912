from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from mfl_harmonization.core.validation import Violation

SCHEMA_VIOLATION = "schema_violation"
CARDINALITY_MISMATCH = "cardinality_mismatch"
MISSING_REQUIRED_FIELD = "missing_required_field"
UNMAPPED_FIELD = "unmapped_field"


class HarmonizationError(Exception):
    """Base harmonization exception."""

    code = "harmonization_error"
    field: str | None = None
    # Further problems found in the same row, reported alongside this one.
    related: tuple[HarmonizationError, ...] = ()

    def all_errors(self) -> tuple[HarmonizationError, ...]:
        return (self, *self.related)


class SchemaViolation(HarmonizationError):
    """Raised when a produced record fails type, bound or shape checks."""

    code = SCHEMA_VIOLATION

    def __init__(self, violations: Iterable[Violation]) -> None:
        self.violations = tuple(violations)
        self.paths = tuple(item.path for item in self.violations)
        self.field = self.paths[0] if self.paths else None
        summary = "; ".join(f"{item.path}: {item.message}" for item in self.violations)
        super().__init__(f"schema violation: {summary}")


class CardinalityMismatch(HarmonizationError):
    """Raised when the parallel sequences of an array-shaped field disagree in length."""

    code = CARDINALITY_MISMATCH

    def __init__(self, field: str, counts: Mapping[str, int]) -> None:
        self.field = field
        self.counts = dict(counts)
        observed = ", ".join(f"{part}={count}" for part, count in self.counts.items())
        super().__init__(f"cardinality mismatch in '{field}': {observed}")


class MissingRequiredField(HarmonizationError):
    """Raised when a required coordinate is absent, unparsable or out of range."""

    code = MISSING_REQUIRED_FIELD

    def __init__(self, field: str, reason: str) -> None:
        self.field = field
        self.reason = reason
        super().__init__(f"missing required field '{field}': {reason}")


class FieldMapError(HarmonizationError):
    """Raised when a field map document is malformed."""

    code = "field_map_error"


class SourceReadError(HarmonizationError):
    """Raised when a tabular source cannot be read or joined."""

    code = "source_read_error"


class SourceRequestError(SourceReadError):
    """Raised when a published sheet request failed after retries."""

    code = "source_request_error"


class SourceTemporaryError(SourceRequestError):
    """Raised when a published sheet request can be retried."""


class QualityThresholdExceeded(HarmonizationError):
    """Raised when a batch rejects more rows than the configured ratio allows."""

    code = "quality_threshold_exceeded"
