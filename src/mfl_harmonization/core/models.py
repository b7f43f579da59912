from __future__ import annotations

import math
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field, fields
from datetime import date
from typing import Any, Union

from mfl_harmonization.core.exceptions import CardinalityMismatch
from mfl_harmonization.core.validation import ValidationResult, Violation, join_path

Primitive = Union[str, int, float, bool, date]
DateStamp = Union[str, date]

LATITUDE_BOUNDS = (-90.0, 90.0)
LONGITUDE_BOUNDS = (-180.0, 180.0)


def _serialize(value: Any) -> Any:
    if isinstance(value, date):
        return value.isoformat()
    return value


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _provenance_violations(path: str, source: Any, date_stamp: Any) -> list[Violation]:
    if (source is None) != (date_stamp is None):
        return [Violation(path=path, code="unpaired_provenance", message="source and date_stamp must be set together")]
    return []


@dataclass(frozen=True)
class ProvenancedField:
    value: Primitive
    source: str | None = None
    date_stamp: DateStamp | None = None

    def validate(self, path: str = "") -> ValidationResult:
        violations = _provenance_violations(path, self.source, self.date_stamp)
        if not isinstance(self.value, (str, int, float, bool, date)):
            violations.append(
                Violation(path=path, code="invalid_type", message=f"unsupported value type {type(self.value).__name__}")
            )
        elif isinstance(self.value, float) and not math.isfinite(self.value):
            violations.append(Violation(path=path, code="invalid_value", message="value must be finite"))
        return ValidationResult(violations=tuple(violations))

    def to_document(self) -> dict[str, Any]:
        document: dict[str, Any] = {"value": _serialize(self.value)}
        if self.source is not None:
            document["source"] = self.source
        if self.date_stamp is not None:
            document["date_stamp"] = _serialize(self.date_stamp)
        return document


def _check_parallel(name: str, parts: Mapping[str, tuple]) -> None:
    counts = {part: len(items) for part, items in parts.items()}
    if len(set(counts.values())) > 1:
        raise CardinalityMismatch(name, counts)


@dataclass(frozen=True)
class RepeatedProvenancedList:
    values: tuple[Primitive, ...] = ()
    sources: tuple[str | None, ...] = ()
    date_stamps: tuple[DateStamp | None, ...] = ()

    def __post_init__(self) -> None:
        for part in ("values", "sources", "date_stamps"):
            object.__setattr__(self, part, tuple(getattr(self, part)))
        _check_parallel(type(self).__name__, self._parts())

    def __len__(self) -> int:
        return len(self.values)

    def _parts(self) -> dict[str, tuple]:
        return {"values": self.values, "sources": self.sources, "date_stamps": self.date_stamps}

    def entries(self) -> Iterator[ProvenancedField]:
        for value, source, date_stamp in zip(self.values, self.sources, self.date_stamps):
            yield ProvenancedField(value=value, source=source, date_stamp=date_stamp)

    def validate(self, path: str = "") -> ValidationResult:
        counts = {part: len(items) for part, items in self._parts().items()}
        if len(set(counts.values())) > 1:
            observed = ", ".join(f"{part}={count}" for part, count in counts.items())
            return ValidationResult(
                violations=(Violation(path=path, code="cardinality_mismatch", message=f"parallel lengths differ: {observed}"),)
            )
        return ValidationResult.collect(
            entry.validate(f"{path}[{index}]") for index, entry in enumerate(self.entries())
        )

    def to_document(self) -> dict[str, Any]:
        return {
            "values": [_serialize(value) for value in self.values],
            "sources": list(self.sources),
            "date_stamps": [_serialize(stamp) for stamp in self.date_stamps],
        }


@dataclass(frozen=True)
class CodedRepeatedList(RepeatedProvenancedList):
    """Four-way parallel list used for services and infrastructure."""

    codes: tuple[str | None, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "codes", tuple(self.codes))
        super().__post_init__()

    def _parts(self) -> dict[str, tuple]:
        return {
            "values": self.values,
            "codes": self.codes,
            "sources": self.sources,
            "date_stamps": self.date_stamps,
        }

    def to_document(self) -> dict[str, Any]:
        return {
            "list": [_serialize(value) for value in self.values],
            "codes": list(self.codes),
            "source_list": list(self.sources),
            "date_stamp": [_serialize(stamp) for stamp in self.date_stamps],
        }


@dataclass(frozen=True)
class LocalName:
    name: str
    language: str | None = None

    def validate(self, path: str = "") -> ValidationResult:
        if not isinstance(self.name, str) or not self.name.strip():
            return ValidationResult(violations=(Violation(path=path, code="invalid_value", message="local name must be non-empty"),))
        return ValidationResult()

    def to_document(self) -> dict[str, Any]:
        document: dict[str, Any] = {"name": self.name}
        if self.language is not None:
            document["language"] = self.language
        return document


def _member_document(member: Any) -> Any:
    if isinstance(member, tuple):
        return [_member_document(item) for item in member]
    if hasattr(member, "to_document"):
        return member.to_document()
    return _serialize(member)


class AttributeGroup:
    """Composite of provenanced fields and nested groups.

    Members left as ``None`` (or an empty tuple) are unset and are skipped by
    both validation and serialization.
    """

    def members(self) -> Iterator[tuple[str, Any]]:
        for item in fields(self):  # type: ignore[arg-type]
            member = getattr(self, item.name)
            if member is None or member == ():
                continue
            yield item.name, member

    def validate(self, path: str = "") -> ValidationResult:
        results: list[ValidationResult] = []
        for name, member in self.members():
            member_path = join_path(path, name)
            if isinstance(member, tuple):
                results.extend(item.validate(f"{member_path}[{index}]") for index, item in enumerate(member))
            elif hasattr(member, "validate"):
                results.append(member.validate(member_path))
        return ValidationResult.collect(results)

    def to_document(self) -> dict[str, Any]:
        return {name: _member_document(member) for name, member in self.members()}


@dataclass(frozen=True)
class Ownership(AttributeGroup):
    major_owner: ProvenancedField | None = None
    sub_owner: ProvenancedField | None = None


@dataclass(frozen=True)
class FacilityHead(AttributeGroup):
    name: ProvenancedField | None = None
    email: ProvenancedField | None = None
    phone: ProvenancedField | None = None


@dataclass(frozen=True)
class Address(AttributeGroup):
    street: ProvenancedField | None = None
    city: ProvenancedField | None = None
    postal_code: ProvenancedField | None = None


@dataclass(frozen=True)
class Contact(AttributeGroup):
    head: FacilityHead | None = None
    physical_address: Address | None = None
    postal_address: Address | None = None
    email: ProvenancedField | None = None
    landline: ProvenancedField | None = None
    mobile: ProvenancedField | None = None
    website: ProvenancedField | None = None


@dataclass(frozen=True)
class AdminLevel(AttributeGroup):
    name: ProvenancedField | None = None
    abbreviation: ProvenancedField | None = None
    code: ProvenancedField | None = None


@dataclass(frozen=True)
class AdminRegion(AttributeGroup):
    admin1: AdminLevel | None = None
    admin2: AdminLevel | None = None
    admin3: AdminLevel | None = None
    admin4: AdminLevel | None = None


@dataclass(frozen=True)
class CloseDate(AttributeGroup):
    date: ProvenancedField | None = None
    comment: str | None = None


@dataclass(frozen=True)
class Status(AttributeGroup):
    operational_status: ProvenancedField | None = None
    open_date: ProvenancedField | None = None
    close_date: CloseDate | None = None


def _bound_violation(path: str, member: ProvenancedField, bounds: tuple[float, float]) -> list[Violation]:
    if not _is_number(member.value):
        return [Violation(path=path, code="invalid_type", message="coordinate must be numeric")]
    low, high = bounds
    if not math.isfinite(member.value) or not (low <= member.value <= high):
        return [Violation(path=path, code="out_of_range", message=f"{member.value} outside [{low:g}, {high:g}]")]
    return []


@dataclass(frozen=True)
class Coordinates(AttributeGroup):
    latitude: ProvenancedField
    longitude: ProvenancedField

    def validate(self, path: str = "") -> ValidationResult:
        latitude_path = join_path(path, "latitude")
        longitude_path = join_path(path, "longitude")
        bounds = ValidationResult(
            violations=tuple(
                _bound_violation(latitude_path, self.latitude, LATITUDE_BOUNDS)
                + _bound_violation(longitude_path, self.longitude, LONGITUDE_BOUNDS)
            )
        )
        provenance = ValidationResult(
            violations=tuple(
                _provenance_violations(latitude_path, self.latitude.source, self.latitude.date_stamp)
                + _provenance_violations(longitude_path, self.longitude.source, self.longitude.date_stamp)
            )
        )
        return bounds.merge(provenance)


@dataclass(frozen=True)
class FacilityRecord(AttributeGroup):
    coordinates: Coordinates
    identifier: ProvenancedField | None = None
    legacy_identifiers: RepeatedProvenancedList | None = None
    name: ProvenancedField | None = None
    local_names: tuple[LocalName, ...] = field(default_factory=tuple)
    previous_names: RepeatedProvenancedList | None = None
    facility_type: ProvenancedField | None = None
    ownership: Ownership | None = None
    contact: Contact | None = None
    admin_region: AdminRegion | None = None
    status: Status | None = None
    services: CodedRepeatedList | None = None
    infrastructure: CodedRepeatedList | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "local_names", tuple(self.local_names))


GROUP_TYPES: dict[str, type] = {
    "ownership": Ownership,
    "contact": Contact,
    "contact.head": FacilityHead,
    "contact.physical_address": Address,
    "contact.postal_address": Address,
    "admin_region": AdminRegion,
    "admin_region.admin1": AdminLevel,
    "admin_region.admin2": AdminLevel,
    "admin_region.admin3": AdminLevel,
    "admin_region.admin4": AdminLevel,
    "status": Status,
    "status.close_date": CloseDate,
}

ARRAY_FIELDS: dict[str, type] = {
    "legacy_identifiers": RepeatedProvenancedList,
    "previous_names": RepeatedProvenancedList,
    "services": CodedRepeatedList,
    "infrastructure": CodedRepeatedList,
    "local_names": LocalName,
}

# Plain-text members that are not wrapped in provenance.
TEXT_PATHS = frozenset({"status.close_date.comment"})

REQUIRED_PATHS = ("coordinates.latitude", "coordinates.longitude")


def _group_scalar_paths(cls: type, prefix: str) -> list[str]:
    paths: list[str] = []
    for item in fields(cls):
        path = join_path(prefix, item.name)
        nested = GROUP_TYPES.get(path)
        if nested is not None:
            paths.extend(_group_scalar_paths(nested, path))
        elif item.name not in ARRAY_FIELDS and path != "coordinates":
            paths.append(path)
    return paths


def canonical_scalar_paths() -> tuple[str, ...]:
    return tuple(_group_scalar_paths(FacilityRecord, "")) + REQUIRED_PATHS


def assemble_group(cls: type, prefix: str, members: Mapping[str, Any]) -> Any:
    """Build ``cls`` from dotted-path members, returning ``None`` when nothing under ``prefix`` is set."""
    kwargs: dict[str, Any] = {}
    for item in fields(cls):
        path = join_path(prefix, item.name)
        nested = GROUP_TYPES.get(path)
        member = assemble_group(nested, path, members) if nested is not None else members.get(path)
        if member is not None:
            kwargs[item.name] = member
    return cls(**kwargs) if kwargs else None
