"""Catalog of openly published African health facility lists.

Each row of the catalog sheet describes one country: whether the Ministry of
Health publishes its master facility list online, who owns it, under which
license and format it is distributed, and where to download it.
"""

from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any

import pycountry

logger = logging.getLogger(__name__)

LIST_STATUS_LABELS = {
    "yes": "MoH MFL",
    "no": "Other source",
    "unclear": "Official status unclear",
}

_COLUMNS = {
    "country": "Country",
    "official_mfl_online": "Official MFL accessible online",
    "owner": "Owner",
    "license": "License",
    "download_format": "Download format",
    "geocoded": "Downloaded data geocoded",
    "data_url": "Health facility data URL",
    "about_url": "About page URL",
    "alternative_source": "Alternative health facilities data source",
    "last_updated": "Last updated",
}


def country_iso2(name: str) -> str | None:
    """Resolve a country name to its ISO 3166-1 alpha-2 code, or ``None`` when it is ambiguous or unknown."""
    try:
        return pycountry.countries.lookup(name).alpha_2
    except LookupError:
        pass
    try:
        matches = pycountry.countries.search_fuzzy(name)
    except LookupError:
        return None
    return matches[0].alpha_2 if len(matches) == 1 else None


def _text(row: Mapping[str, Any], key: str) -> str | None:
    value = row.get(_COLUMNS[key])
    if value is None:
        return None
    text = str(value).strip()
    return text or None


@dataclass(frozen=True)
class OpenFacilityList:
    country: str
    country_iso: str | None
    official_mfl_online: str | None
    list_status: str | None
    owner: str | None = None
    license: str | None = None
    download_format: str | None = None
    geocoded: str | None = None
    data_url: str | None = None
    about_url: str | None = None
    alternative_source: str | None = None
    last_updated: str | None = None


class OpenFacilityListCatalog:
    def __init__(self, entries: Iterable[OpenFacilityList]) -> None:
        self._entries = tuple(entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self):
        return iter(self._entries)

    @classmethod
    def from_rows(cls, rows: Iterable[Mapping[str, Any]]) -> OpenFacilityListCatalog:
        entries: list[OpenFacilityList] = []
        for row in rows:
            country = _text(row, "country")
            if country is None:
                continue
            official = _text(row, "official_mfl_online")
            iso = country_iso2(country)
            if iso is None:
                logger.warning("catalog_country_unresolved", extra={"country": country})
            entries.append(
                OpenFacilityList(
                    country=country,
                    country_iso=iso,
                    official_mfl_online=official,
                    list_status=LIST_STATUS_LABELS.get(official.lower()) if official else None,
                    owner=_text(row, "owner"),
                    license=_text(row, "license"),
                    download_format=_text(row, "download_format"),
                    geocoded=_text(row, "geocoded"),
                    data_url=_text(row, "data_url"),
                    about_url=_text(row, "about_url"),
                    alternative_source=_text(row, "alternative_source"),
                    last_updated=_text(row, "last_updated"),
                )
            )
        return cls(entries)

    def by_iso(self, iso: str) -> OpenFacilityList | None:
        for entry in self._entries:
            if entry.country_iso == iso.upper():
                return entry
        return None

    def status_counts(self) -> dict[str, int]:
        return dict(Counter(entry.list_status or "Unknown" for entry in self._entries))

    def geocoded(self) -> list[OpenFacilityList]:
        return [entry for entry in self._entries if (entry.geocoded or "").lower() == "yes"]
