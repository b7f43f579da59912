from __future__ import annotations

import json
import logging
from collections.abc import Iterable
from datetime import date
from pathlib import Path
from typing import Any

from mfl_harmonization.core.models import FacilityRecord

logger = logging.getLogger(__name__)


def _stamp_key(value: Any) -> str:
    if isinstance(value, date):
        return value.isoformat()
    return "" if value is None else str(value)


class JsonlFacilityHistoryStore:
    """Append-only record history keyed by ``identifier.value``.

    A later harmonization run never rewrites earlier lines: a changed value for
    the same facility is appended as a new version, and ``latest()`` picks the
    version with the newest identifier date stamp (ties go to the later append).
    """

    def __init__(self, file_path: str | Path) -> None:
        self._file = Path(file_path)

    def append_many(self, records: Iterable[FacilityRecord]) -> int:
        """Append one version per record, skipping records identical to their newest stored version."""
        self._file.parent.mkdir(parents=True, exist_ok=True)
        newest = self._newest_entries()
        appended = 0
        skipped = 0
        unchanged = 0
        with self._file.open("a", encoding="utf-8") as handle:
            for record in records:
                if record.identifier is None:
                    skipped += 1
                    continue
                entry = {
                    "identifier": str(record.identifier.value),
                    "date_stamp": _stamp_key(record.identifier.date_stamp),
                    "source": record.identifier.source,
                    "record": record.to_document(),
                }
                # Normalized through json so it compares equal to its stored line.
                entry = json.loads(json.dumps(entry, ensure_ascii=False, sort_keys=True))
                if newest.get(entry["identifier"]) == entry:
                    unchanged += 1
                    continue
                handle.write(json.dumps(entry, ensure_ascii=False, sort_keys=True) + "\n")
                current = newest.get(entry["identifier"])
                if current is None or entry["date_stamp"] >= current["date_stamp"]:
                    newest[entry["identifier"]] = entry
                appended += 1
        if skipped:
            logger.warning("history_records_without_identifier", extra={"skipped": skipped})
        if unchanged:
            logger.info("history_records_unchanged", extra={"unchanged": unchanged})
        return appended

    def _entries(self) -> list[dict[str, Any]]:
        if not self._file.exists():
            return []
        entries: list[dict[str, Any]] = []
        for line in self._file.read_text(encoding="utf-8").splitlines():
            if line.strip():
                entries.append(json.loads(line))
        return entries

    def history(self, identifier: str) -> list[dict[str, Any]]:
        return [entry["record"] for entry in self._entries() if entry["identifier"] == identifier]

    def _newest_entries(self) -> dict[str, dict[str, Any]]:
        newest: dict[str, dict[str, Any]] = {}
        for entry in self._entries():
            current = newest.get(entry["identifier"])
            if current is None or entry["date_stamp"] >= current["date_stamp"]:
                newest[entry["identifier"]] = entry
        return newest

    def latest(self) -> dict[str, dict[str, Any]]:
        return {identifier: entry["record"] for identifier, entry in self._newest_entries().items()}
