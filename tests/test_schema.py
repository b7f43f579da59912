from __future__ import annotations

from jsonschema import Draft7Validator

from mfl_harmonization.core.field_map import FieldMap
from mfl_harmonization.core.harmonizer import harmonize
from mfl_harmonization.core.schema import FacilitySchemaValidator, load_schema


def test_schema_is_valid_draft7() -> None:
    schema = load_schema()

    Draft7Validator.check_schema(schema)
    assert schema["$schema"] == "http://json-schema.org/draft-07/schema#"
    assert schema["required"] == ["coordinates"]


def test_harmonized_record_conforms_to_schema() -> None:
    field_map = FieldMap.from_dict(
        {
            "source": "kenya",
            "version": "2020-09-01",
            "fields": {
                "identifier": "Code",
                "name": "Name",
                "admin_region.admin1.name": "County",
                "coordinates.latitude": "Lat",
                "coordinates.longitude": "Lon",
                "legacy_identifiers": {"columns": {"values": "Old codes"}, "delimiter": ","},
                "services": {"columns": {"values": "Services"}, "delimiter": ","},
            },
        }
    )
    record = harmonize(
        {
            "Code": 10023,
            "Name": "Central Clinic",
            "County": "Nairobi",
            "Lat": -1.28,
            "Lon": 36.82,
            "Old codes": "A-1,B-2",
            "Services": "ANC,OPD",
        },
        field_map,
    )

    result = FacilitySchemaValidator().validate_record(record)

    assert result.ok, result.violations


def test_schema_reports_dotted_paths() -> None:
    document = {
        "coordinates": {
            "latitude": {"value": 120, "source": "MoH", "date_stamp": "2020"},
            "longitude": {"value": 30},
        },
        "name": {"value": "A", "source": "MoH"},
        "colour": "blue",
    }

    result = FacilitySchemaValidator().validate_document(document)

    assert "coordinates.latitude" in result.paths
    assert "name" in result.paths
    assert "$" in result.paths


def test_schema_requires_coordinates() -> None:
    result = FacilitySchemaValidator().validate_document({"name": {"value": "A"}})

    assert not result.ok
    assert result.violations[0].code == "schema_required"
