from __future__ import annotations

import pytest

from mfl_harmonization.core.exceptions import CardinalityMismatch, MissingRequiredField, SchemaViolation
from mfl_harmonization.core.field_map import FieldMap
from mfl_harmonization.core.harmonizer import Harmonizer, harmonize
from mfl_harmonization.core.metrics import InMemoryHarmonizationMetricsCollector
from mfl_harmonization.core.schema import FacilitySchemaValidator

STAMP = "2020-09-01"


def _field_map(fields: dict) -> FieldMap:
    return FieldMap.from_dict({"source": "test_moh", "version": STAMP, "fields": fields})


BASE_FIELDS = {
    "name": "Name",
    "facility_type": "FacilityType",
    "coordinates.latitude": "Lat",
    "coordinates.longitude": "Lon",
}


def test_out_of_range_latitude_is_missing_required_field() -> None:
    field_map = _field_map(
        {"facility_type": "FacilityType", "coordinates.latitude": "Lat", "coordinates.longitude": "Lon"}
    )

    with pytest.raises(MissingRequiredField) as exc_info:
        harmonize({"FacilityType": "Clinic", "Lat": 200, "Lon": 30}, field_map, "MoH", STAMP)

    assert exc_info.value.field == "coordinates.latitude"
    assert "200" in exc_info.value.reason


def test_services_cardinality_mismatch_names_the_field() -> None:
    field_map = _field_map(
        {"services": {"columns": {"values": "services_list", "sources": "services_source"}}}
    )

    with pytest.raises(CardinalityMismatch) as exc_info:
        harmonize({"services_list": ["X", "Y"], "services_source": ["A"]}, field_map, "MoH", STAMP)

    assert exc_info.value.field == "services"
    assert exc_info.value.counts == {"values": 2, "sources": 1}


def test_valid_row_produces_validated_record() -> None:
    record = harmonize(
        {"Name": "Central Clinic", "Lat": -1.5, "Lon": 36.8},
        _field_map(BASE_FIELDS),
        "MoH",
        STAMP,
    )

    assert record.name is not None
    assert record.name.value == "Central Clinic"
    assert record.name.source == "MoH"
    assert record.name.date_stamp == STAMP
    assert record.coordinates.latitude.value == -1.5
    assert record.facility_type is None
    assert record.validate().ok


def test_harmonizing_twice_is_identical() -> None:
    harmonizer = Harmonizer(_field_map(BASE_FIELDS))
    row = {"Name": "Central Clinic", "FacilityType": "Dispensary", "Lat": "-1.5", "Lon": "36.8"}

    first = harmonizer.harmonize(row, "MoH", STAMP)
    second = harmonizer.harmonize(row, "MoH", STAMP)

    assert first == second
    assert first.to_document() == second.to_document()


@pytest.mark.parametrize(
    "row",
    [
        {"District": "Gasabo", "District_1": "Kicukiro", "Lat": -1.9, "Lon": 30.1},
        {"District_1": "Kicukiro", "District": "Gasabo", "Lat": -1.9, "Lon": 30.1},
    ],
)
def test_duplicate_column_uses_authoritative_value(row: dict) -> None:
    field_map = _field_map(
        {
            "admin_region.admin2.name": {"column": "District", "ignore": ["District_1"]},
            "coordinates.latitude": "Lat",
            "coordinates.longitude": "Lon",
        }
    )

    record = harmonize(row, field_map, "MoH", STAMP)

    assert record.admin_region is not None
    assert record.admin_region.admin2 is not None
    assert record.admin_region.admin2.name.value == "Gasabo"


def test_unmapped_and_blank_fields_stay_unset() -> None:
    record = harmonize(
        {"Name": "  ", "FacilityType": float("nan"), "Lat": 0, "Lon": 0},
        _field_map(BASE_FIELDS),
    )

    assert record.name is None
    assert record.facility_type is None
    assert record.ownership is None
    assert record.coordinates.latitude.source == "test_moh"
    assert record.coordinates.latitude.date_stamp == STAMP


@pytest.mark.parametrize(
    ("row", "field"),
    [
        ({"Lon": 30}, "coordinates.latitude"),
        ({"Lat": "north", "Lon": 30}, "coordinates.latitude"),
        ({"Lat": 1, "Lon": -181}, "coordinates.longitude"),
        ({"Lat": 1, "Lon": None}, "coordinates.longitude"),
    ],
)
def test_coordinate_failures_reject_the_record(row: dict, field: str) -> None:
    with pytest.raises(MissingRequiredField) as exc_info:
        harmonize(row, _field_map(BASE_FIELDS), "MoH", STAMP)

    assert exc_info.value.field == field


def test_unmapped_coordinates_are_missing() -> None:
    with pytest.raises(MissingRequiredField):
        harmonize({"Name": "A"}, _field_map({"name": "Name"}), "MoH", STAMP)


def test_delimited_services_default_to_row_provenance() -> None:
    field_map = _field_map(
        {
            **BASE_FIELDS,
            "services": {"columns": {"values": "Services", "codes": "Codes"}, "delimiter": ";"},
        }
    )

    record = harmonize(
        {"Lat": 1, "Lon": 1, "Services": "ANC; HIV testing;", "Codes": "S1;S2"},
        field_map,
        "MoH",
        STAMP,
    )

    assert record.services is not None
    assert record.services.values == ("ANC", "HIV testing")
    assert record.services.codes == ("S1", "S2")
    assert record.services.sources == ("MoH", "MoH")
    assert record.services.date_stamps == (STAMP, STAMP)


def test_local_names_and_close_comment() -> None:
    field_map = _field_map(
        {
            **BASE_FIELDS,
            "local_names": {"columns": {"names": "Local", "languages": "Lang"}, "delimiter": "|"},
            "status.close_date.date": "Closed",
            "status.close_date.comment": "Reason",
        }
    )

    record = harmonize(
        {"Lat": 1, "Lon": 1, "Local": "Kliniki|Ivuriro", "Lang": "sw|rw", "Closed": "2019-02-01", "Reason": " merged "},
        field_map,
        "MoH",
        STAMP,
    )

    assert [(item.name, item.language) for item in record.local_names] == [("Kliniki", "sw"), ("Ivuriro", "rw")]
    assert record.status is not None
    assert record.status.close_date is not None
    assert record.status.close_date.comment == "merged"
    assert record.status.close_date.date.value == "2019-02-01"


def test_non_primitive_value_is_schema_violation() -> None:
    with pytest.raises(SchemaViolation) as exc_info:
        harmonize({"Name": {"en": "A"}, "Lat": 1, "Lon": 1}, _field_map(BASE_FIELDS), "MoH", STAMP)

    assert exc_info.value.paths[0] == "name"


def test_batch_collects_errors_and_continues() -> None:
    metrics = InMemoryHarmonizationMetricsCollector()
    harmonizer = Harmonizer(_field_map(BASE_FIELDS), schema_validator=FacilitySchemaValidator(), metrics=metrics)
    rows = [
        {"Name": "A", "Lat": 1, "Lon": 1},
        {"Name": "B", "Lat": 200, "Lon": 1},
        {"Name": "C", "Lat": 2, "Lon": 2},
        {"Name": "D", "Lat": 3},
    ]

    report = harmonizer.harmonize_batch(rows, "MoH", STAMP)

    assert report.total_rows == 4
    assert [record.name.value for record in report.records] == ["A", "C"]
    assert report.accepted_rows == [0, 2]
    assert report.error_codes() == {1: ["missing_required_field"], 3: ["missing_required_field"]}
    assert report.errors[3][0].field == "coordinates.longitude"
    assert report.reject_ratio == 0.5
    assert "ownership.major_owner" in [note.field for note in report.notes]
    assert metrics.rows_total[("MoH", "accepted")] == 2
    assert metrics.rows_total[("MoH", "rejected")] == 2
    assert metrics.issues_total[("MoH", "missing_required_field")] == 2
    assert metrics.reject_ratio["MoH"] == 0.5


def test_batch_report_document() -> None:
    report = Harmonizer(_field_map(BASE_FIELDS)).harmonize_batch([{"Lat": 1}], "MoH", STAMP)

    document = report.to_document()

    assert document["rejected"] == 1
    assert document["errors"]["0"][0]["code"] == "missing_required_field"
    assert "services" in document["unmapped_fields"]


def test_row_reports_every_coordinate_problem() -> None:
    with pytest.raises(MissingRequiredField) as exc_info:
        harmonize({"Lat": 200, "Lon": 500}, _field_map(BASE_FIELDS), "MoH", STAMP)

    assert exc_info.value.field == "coordinates.latitude"
    assert [error.field for error in exc_info.value.all_errors()] == [
        "coordinates.latitude",
        "coordinates.longitude",
    ]


def test_batch_lists_all_problems_of_a_rejected_row() -> None:
    fields = {
        **BASE_FIELDS,
        "services": {"columns": {"values": "services_list", "sources": "services_source"}},
        "infrastructure": {"columns": {"values": "infra_list", "sources": "infra_source"}},
    }
    rows = [
        {"Lat": 200, "Lon": 500},
        {
            "Lat": 1,
            "Lon": 1,
            "services_list": ["X", "Y"],
            "services_source": ["A"],
            "infra_list": ["Water"],
            "infra_source": ["A", "B"],
        },
        {"services_list": ["X"], "services_source": ["A", "B"], "Lon": 30},
    ]

    report = Harmonizer(_field_map(fields)).harmonize_batch(rows, "MoH", STAMP)

    fields_by_row = {index: [issue.field for issue in issues] for index, issues in report.errors.items()}
    assert fields_by_row == {
        0: ["coordinates.latitude", "coordinates.longitude"],
        1: ["services", "infrastructure"],
        2: ["services", "coordinates.latitude"],
    }
    assert report.error_codes()[2] == ["cardinality_mismatch", "missing_required_field"]
