from __future__ import annotations

import json
import logging
from importlib import resources
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from mfl_harmonization.core.exceptions import FieldMapError
from mfl_harmonization.core.models import ARRAY_FIELDS, CodedRepeatedList, LocalName, canonical_scalar_paths

logger = logging.getLogger(__name__)

_LIST_PARTS = frozenset({"values", "sources", "date_stamps"})
_ARRAY_PARTS: dict[type, frozenset[str]] = {
    CodedRepeatedList: _LIST_PARTS | {"codes"},
    LocalName: frozenset({"names", "languages"}),
}


def _allowed_parts(field_name: str) -> frozenset[str]:
    return _ARRAY_PARTS.get(ARRAY_FIELDS[field_name], _LIST_PARTS)


def _primary_part(field_name: str) -> str:
    return "names" if ARRAY_FIELDS[field_name] is LocalName else "values"


class ScalarMapping(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    column: str = Field(min_length=1)
    ignore: tuple[str, ...] = ()


class ArrayMapping(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    columns: dict[str, str]
    delimiter: str | None = None

    @field_validator("delimiter")
    @classmethod
    def _non_empty_delimiter(cls, value: str | None) -> str | None:
        if value is not None and value == "":
            raise ValueError("delimiter must be non-empty when set")
        return value


class LookupSheet(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    sheet: str
    left_on: str
    right_on: str
    drop: tuple[str, ...] = ()


class WorkbookSpec(BaseModel):
    """Sheets of a multi-sheet workbook joined onto the facility sheet before harmonization."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    sheet: str
    lookups: tuple[LookupSheet, ...] = ()


class FieldMap(BaseModel):
    """Explicit mapping from canonical field paths to one source's column headers."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    source: str = Field(min_length=1)
    version: str = Field(min_length=1)
    description: str | None = None
    workbook: WorkbookSpec | None = None
    fields: dict[str, ScalarMapping] = Field(default_factory=dict)
    arrays: dict[str, ArrayMapping] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _split_fields(cls, data: Any) -> Any:
        if not isinstance(data, dict) or "arrays" in data:
            return data
        scalars: dict[str, Any] = {}
        arrays: dict[str, Any] = {}
        for path, spec in (data.get("fields") or {}).items():
            if path in ARRAY_FIELDS:
                arrays[path] = spec
            else:
                scalars[path] = {"column": spec} if isinstance(spec, str) else spec
        return {**data, "fields": scalars, "arrays": arrays}

    @model_validator(mode="after")
    def _check_paths(self) -> FieldMap:
        known = set(canonical_scalar_paths())
        unknown = sorted(path for path in self.fields if path not in known)
        if unknown:
            raise ValueError(f"unknown canonical paths: {', '.join(unknown)}")
        for name, mapping in self.arrays.items():
            allowed = _allowed_parts(name)
            extra = sorted(set(mapping.columns) - allowed)
            if extra:
                raise ValueError(f"'{name}' does not accept parts: {', '.join(extra)}")
            if _primary_part(name) not in mapping.columns:
                raise ValueError(f"'{name}' must map the '{_primary_part(name)}' part")
        authoritative = {mapping.column for mapping in self.fields.values()}
        conflicting = sorted(authoritative & self.ignored_columns())
        if conflicting:
            raise ValueError(f"columns both authoritative and ignored: {', '.join(conflicting)}")
        return self

    def ignored_columns(self) -> set[str]:
        return {column for mapping in self.fields.values() for column in mapping.ignore}

    def unmapped_paths(self) -> list[str]:
        scalars = [path for path in canonical_scalar_paths() if path not in self.fields]
        arrays = [name for name in ARRAY_FIELDS if name not in self.arrays]
        return scalars + arrays

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> FieldMap:
        try:
            return cls.model_validate(payload)
        except ValidationError as exc:
            raise FieldMapError(f"invalid field map: {exc}") from exc


def _read_payload(name_or_path: str | Path) -> dict[str, Any]:
    path = Path(name_or_path)
    if path.suffix == ".json" and path.exists():
        text = path.read_text(encoding="utf-8")
    else:
        resource = resources.files("mfl_harmonization.field_maps").joinpath(f"{name_or_path}.json")
        if not resource.is_file():
            raise FieldMapError(f"field map not found: {name_or_path}")
        text = resource.read_text(encoding="utf-8")
    try:
        payload = json.loads(text)
    except json.JSONDecodeError as exc:
        raise FieldMapError(f"field map is not valid json: {name_or_path}") from exc
    if not isinstance(payload, dict):
        raise FieldMapError(f"field map must be a json object: {name_or_path}")
    return payload


def load_field_map(name_or_path: str | Path) -> FieldMap:
    """Load a bundled field map by name (e.g. ``"kenya_kmhfl"``) or a ``.json`` file path."""
    field_map = FieldMap.from_dict(_read_payload(name_or_path))
    logger.info(
        "field_map_loaded",
        extra={"source": field_map.source, "version": field_map.version, "mapped_fields": len(field_map.fields)},
    )
    return field_map


def bundled_field_maps() -> list[str]:
    root = resources.files("mfl_harmonization.field_maps")
    return sorted(item.name[: -len(".json")] for item in root.iterdir() if item.name.endswith(".json"))
