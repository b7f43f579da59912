from __future__ import annotations

import pytest

from mfl_harmonization.core.exceptions import QualityThresholdExceeded
from mfl_harmonization.core.field_map import FieldMap
from mfl_harmonization.core.harmonizer import Harmonizer
from mfl_harmonization.core.quality import BatchQualityGate


def _report(rows: list[dict]):
    field_map = FieldMap.from_dict(
        {"source": "s", "version": "1", "fields": {"coordinates.latitude": "lat", "coordinates.longitude": "lng"}}
    )
    return Harmonizer(field_map).harmonize_batch(rows)


def test_quality_gate_passes_under_threshold() -> None:
    report = _report([{"lat": 1, "lng": 1}, {"lat": 120, "lng": 1}])

    assert BatchQualityGate(max_reject_ratio=0.5).check_or_raise(report) is report


def test_quality_gate_raises_when_reject_ratio_exceeds_threshold() -> None:
    report = _report([{"lat": 120, "lng": 1}, {"lat": 1, "lng": 200}, {"lat": 1, "lng": 1}])

    with pytest.raises(QualityThresholdExceeded) as exc_info:
        BatchQualityGate(max_reject_ratio=0.2).check_or_raise(report)

    assert "0:missing_required_field" in str(exc_info.value)


def test_default_gate_never_trips() -> None:
    report = _report([{"lat": 120, "lng": 1}])

    BatchQualityGate().check_or_raise(report)


def test_quality_gate_rejects_invalid_ratio() -> None:
    with pytest.raises(ValueError):
        BatchQualityGate(max_reject_ratio=1.5)
