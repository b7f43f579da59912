from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import pandas as pd

from mfl_harmonization.core.exceptions import SourceReadError
from mfl_harmonization.core.field_map import FieldMap

logger = logging.getLogger(__name__)

_DELIMITED = {".csv": ",", ".tsv": "\t", ".txt": "\t"}
_WORKBOOKS = {".xlsx", ".xls"}


def frame_to_rows(frame: pd.DataFrame) -> list[dict[str, Any]]:
    """Convert a DataFrame to row dicts keyed by the original headers, with blanks as ``None``."""
    cleaned = frame.astype(object).where(frame.notna(), None)
    return cleaned.to_dict(orient="records")


def read_frame(path: str | Path, sheet: str | int | None = None) -> pd.DataFrame:
    source = Path(path).expanduser()
    if not source.exists():
        raise SourceReadError(f"source file not found: {source}")
    suffix = source.suffix.lower()
    try:
        if suffix in _DELIMITED:
            frame = pd.read_csv(source, sep=_DELIMITED[suffix], dtype=str)
        elif suffix in _WORKBOOKS:
            frame = pd.read_excel(source, sheet_name=0 if sheet is None else sheet, dtype=str)
        else:
            raise SourceReadError(f"unsupported source format '{suffix}': {source}")
    except (OSError, ValueError) as exc:
        raise SourceReadError(f"failed to read {source}: {exc}") from exc
    logger.info("source_read", extra={"path": str(source), "rows": len(frame), "columns": len(frame.columns)})
    return frame


def read_table(path: str | Path, sheet: str | int | None = None) -> list[dict[str, Any]]:
    return frame_to_rows(read_frame(path, sheet=sheet))


def read_workbook_sheets(path: str | Path, sheets: Sequence[str]) -> dict[str, pd.DataFrame]:
    source = Path(path).expanduser()
    if source.suffix.lower() not in _WORKBOOKS:
        raise SourceReadError(f"not a workbook: {source}")
    if not source.exists():
        raise SourceReadError(f"source file not found: {source}")
    try:
        return pd.read_excel(source, sheet_name=list(sheets), dtype=str)
    except (OSError, ValueError) as exc:
        raise SourceReadError(f"failed to read sheets {list(sheets)} from {source}: {exc}") from exc


@dataclass(frozen=True, eq=False)
class LookupJoin:
    frame: pd.DataFrame
    left_on: str
    right_on: str
    drop: tuple[str, ...] = field(default_factory=tuple)


def join_lookups(frame: pd.DataFrame, lookups: Iterable[LookupJoin]) -> pd.DataFrame:
    """Left-join code lookup sheets onto a facility sheet, dropping unwanted columns after each join."""
    joined = frame
    for lookup in lookups:
        if lookup.left_on not in joined.columns:
            raise SourceReadError(f"join key '{lookup.left_on}' missing from facility table")
        if lookup.right_on not in lookup.frame.columns:
            raise SourceReadError(f"join key '{lookup.right_on}' missing from lookup table")
        joined = joined.merge(
            lookup.frame,
            how="left",
            left_on=lookup.left_on,
            right_on=lookup.right_on,
            suffixes=("", "_lookup"),
        )
        if lookup.right_on != lookup.left_on and lookup.right_on in joined.columns:
            joined = joined.drop(columns=[lookup.right_on])
        missing = [column for column in lookup.drop if column not in joined.columns]
        if missing:
            raise SourceReadError(f"cannot drop missing columns: {', '.join(missing)}")
        joined = joined.drop(columns=list(lookup.drop))
    return joined


def load_source_rows(path: str | Path, field_map: FieldMap, sheet: str | None = None) -> list[dict[str, Any]]:
    """Read a source for ``field_map``, applying its workbook lookup joins when it declares any."""
    workbook = field_map.workbook
    if workbook is None:
        return read_table(path, sheet=sheet)
    names = [workbook.sheet] + [lookup.sheet for lookup in workbook.lookups]
    sheets = read_workbook_sheets(path, list(dict.fromkeys(names)))
    joined = join_lookups(
        sheets[workbook.sheet],
        [
            LookupJoin(frame=sheets[lookup.sheet], left_on=lookup.left_on, right_on=lookup.right_on, drop=lookup.drop)
            for lookup in workbook.lookups
        ],
    )
    logger.info(
        "workbook_joined",
        extra={"path": str(path), "sheet": workbook.sheet, "lookups": len(workbook.lookups), "rows": len(joined)},
    )
    return frame_to_rows(joined)
