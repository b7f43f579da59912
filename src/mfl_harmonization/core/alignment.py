"""Read-only comparisons across harmonized collections.

Each collection is one country or data source. Raw values are reported side by
side; no attempt is made to map them onto a shared controlled vocabulary.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any

import pandas as pd

from mfl_harmonization.core.models import FacilityRecord
from mfl_harmonization.core.projection import flatten

Collections = Mapping[str, Sequence[FacilityRecord]]


def _field_values(record: FacilityRecord, field: str) -> list[Any]:
    value = flatten(record).get(field)
    if value is None:
        return []
    if isinstance(value, list):
        return [item for item in value if item is not None]
    return [value]


@dataclass(frozen=True)
class VocabularyAlignment:
    field: str
    vocabularies: dict[str, tuple[Any, ...]]

    def shared_values(self) -> set[Any]:
        sets = [set(values) for values in self.vocabularies.values()]
        return set.intersection(*sets) if sets else set()

    def as_table(self) -> pd.DataFrame:
        depth = max((len(values) for values in self.vocabularies.values()), default=0)
        return pd.DataFrame(
            {label: list(values) + [None] * (depth - len(values)) for label, values in self.vocabularies.items()}
        )


def align_vocabularies(collections: Collections, field: str = "facility_type") -> VocabularyAlignment:
    vocabularies: dict[str, tuple[Any, ...]] = {}
    for label, records in collections.items():
        distinct = {value for record in records for value in _field_values(record, field)}
        vocabularies[label] = tuple(sorted(distinct, key=str))
    return VocabularyAlignment(field=field, vocabularies=vocabularies)


def facility_counts(collections: Collections) -> dict[str, int]:
    return {label: len(records) for label, records in collections.items()}


def attribute_counts(collections: Collections) -> dict[str, int]:
    """Number of canonical fields populated by at least one record in each collection."""
    counts: dict[str, int] = {}
    for label, records in collections.items():
        populated: set[str] = set()
        for record in records:
            populated.update(flatten(record))
        counts[label] = len(populated)
    return counts


def value_frequencies(records: Iterable[FacilityRecord], field: str = "facility_type") -> list[tuple[Any, int]]:
    counter: Counter[Any] = Counter()
    for record in records:
        counter.update(_field_values(record, field))
    return counter.most_common()
