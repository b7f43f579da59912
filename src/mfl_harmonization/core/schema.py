from __future__ import annotations

import json
from collections.abc import Iterable, Iterator
from functools import lru_cache
from importlib import resources
from typing import Any

from jsonschema import Draft7Validator

from mfl_harmonization.core.models import FacilityRecord
from mfl_harmonization.core.validation import ValidationResult, Violation

SCHEMA_RESOURCE = "facility_record.schema.json"


@lru_cache(maxsize=1)
def _schema_text() -> str:
    return resources.files("mfl_harmonization.schema").joinpath(SCHEMA_RESOURCE).read_text(encoding="utf-8")


def load_schema() -> dict[str, Any]:
    """Return a fresh copy of the draft-07 facility record schema."""
    return json.loads(_schema_text())


def _dotted(parts: Iterable[Any]) -> str:
    path = ""
    for part in parts:
        if isinstance(part, int):
            path += f"[{part}]"
        else:
            path = f"{path}.{part}" if path else str(part)
    # Report the provenanced field itself rather than its inner "value" key.
    if path.endswith(".value"):
        path = path[: -len(".value")]
    return path or "$"


class FacilitySchemaValidator:
    def __init__(self, schema: dict[str, Any] | None = None) -> None:
        self._schema = schema or load_schema()
        Draft7Validator.check_schema(self._schema)
        self._validator = Draft7Validator(self._schema)

    def iter_violations(self, document: dict[str, Any]) -> Iterator[Violation]:
        for error in sorted(self._validator.iter_errors(document), key=lambda item: list(map(str, item.absolute_path))):
            yield Violation(path=_dotted(error.absolute_path), code=f"schema_{error.validator}", message=error.message)

    def validate_document(self, document: dict[str, Any]) -> ValidationResult:
        return ValidationResult(violations=tuple(self.iter_violations(document)))

    def validate_record(self, record: FacilityRecord) -> ValidationResult:
        return self.validate_document(record.to_document())
