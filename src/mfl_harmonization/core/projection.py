from __future__ import annotations

from collections.abc import Iterable
from typing import Any

import pandas as pd

from mfl_harmonization.core.models import (
    AttributeGroup,
    CodedRepeatedList,
    FacilityRecord,
    ProvenancedField,
    RepeatedProvenancedList,
)
from mfl_harmonization.core.validation import join_path


def _walk(path: str, member: Any, out: dict[str, Any]) -> None:
    if isinstance(member, ProvenancedField):
        out[path] = member.value
    elif isinstance(member, CodedRepeatedList):
        out[path] = list(member.values)
        if any(code is not None for code in member.codes):
            out[f"{path}.codes"] = list(member.codes)
    elif isinstance(member, RepeatedProvenancedList):
        out[path] = list(member.values)
    elif isinstance(member, tuple):
        out[path] = [item.name for item in member]
    elif isinstance(member, AttributeGroup):
        for name, nested in member.members():
            _walk(join_path(path, name), nested, out)
    else:
        out[path] = member


def flatten(record: FacilityRecord) -> dict[str, Any]:
    """Project a record onto canonical path -> scalar or list value, omitting unset fields."""
    out: dict[str, Any] = {}
    _walk("", record, out)
    return out


def to_frame(records: Iterable[FacilityRecord], columns: list[str] | None = None) -> pd.DataFrame:
    frame = pd.DataFrame([flatten(record) for record in records])
    if columns is not None:
        frame = frame.reindex(columns=columns)
    return frame
