from __future__ import annotations

from mfl_harmonization.core.alignment import (
    align_vocabularies,
    attribute_counts,
    facility_counts,
    value_frequencies,
)
from mfl_harmonization.core.field_map import FieldMap
from mfl_harmonization.core.harmonizer import Harmonizer
from mfl_harmonization.core.projection import flatten, to_frame


def _records(source: str, type_column: str, rows: list[dict]) -> list:
    field_map = FieldMap.from_dict(
        {
            "source": source,
            "version": "2020",
            "fields": {
                "name": "name",
                "facility_type": type_column,
                "coordinates.latitude": "lat",
                "coordinates.longitude": "lng",
                "services": {"columns": {"values": "services"}, "delimiter": ","},
            },
        }
    )
    return Harmonizer(field_map).harmonize_batch(rows).records


KENYA = _records(
    "kenya",
    "Facility type",
    [
        {"name": "A", "Facility type": "Dispensary", "lat": -1, "lng": 36, "services": "ANC,OPD"},
        {"name": "B", "Facility type": "Health Centre", "lat": -1, "lng": 36},
        {"name": "C", "Facility type": "Dispensary", "lat": -1, "lng": 36},
    ],
)
ZAMBIA = _records(
    "zambia",
    "facility_type",
    [
        {"name": "D", "facility_type": "Health Post", "lat": -15, "lng": 28},
        {"name": "E", "facility_type": "Dispensary", "lat": -15, "lng": 28},
    ],
)


def test_flatten_uses_canonical_paths() -> None:
    flat = flatten(KENYA[0])

    assert flat == {
        "coordinates.latitude": -1.0,
        "coordinates.longitude": 36.0,
        "name": "A",
        "facility_type": "Dispensary",
        "services": ["ANC", "OPD"],
    }


def test_to_frame_has_one_row_per_record() -> None:
    frame = to_frame(KENYA, columns=["name", "facility_type", "admin_region.admin1.name"])

    assert list(frame["name"]) == ["A", "B", "C"]
    assert frame["admin_region.admin1.name"].isna().all()


def test_align_vocabularies_keeps_raw_values_per_collection() -> None:
    collections = {"Kenya": KENYA, "Zambia": ZAMBIA}

    alignment = align_vocabularies(collections)

    assert alignment.vocabularies == {
        "Kenya": ("Dispensary", "Health Centre"),
        "Zambia": ("Dispensary", "Health Post"),
    }
    assert alignment.shared_values() == {"Dispensary"}
    table = alignment.as_table()
    assert list(table.columns) == ["Kenya", "Zambia"]
    assert len(table) == 2
    assert len(KENYA) == 3


def test_descriptive_counts() -> None:
    collections = {"Kenya": KENYA, "Zambia": ZAMBIA}

    assert facility_counts(collections) == {"Kenya": 3, "Zambia": 2}
    assert attribute_counts(collections) == {"Kenya": 5, "Zambia": 4}
    assert value_frequencies(KENYA) == [("Dispensary", 2), ("Health Centre", 1)]
    assert value_frequencies(KENYA, field="services") == [("ANC", 1), ("OPD", 1)]
