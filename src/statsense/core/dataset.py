from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Sequence, Tuple

import pandas as pd


class _Absent:
    """Marker for a key that is not present in a row at all."""

    _instance: Optional["_Absent"] = None

    def __new__(cls) -> "_Absent":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "ABSENT"

    def __bool__(self) -> bool:
        return False


ABSENT = _Absent()


# ---------------------------------------------------------------------------
# Cell value helpers
#
# A raw cell is one of: str, int, float, None, or ABSENT (key missing).
# Every consuming site goes through these two helpers; nothing is coerced
# implicitly.
# ---------------------------------------------------------------------------

def is_missing(value: Any) -> bool:
    """
    True for ABSENT, None, empty string, and float NaN.

    NaN shows up when rows come from a DataFrame that was not normalized.
    """
    if value is ABSENT or value is None:
        return True
    if isinstance(value, str):
        return value == ""
    if isinstance(value, float):
        return math.isnan(value)
    return False


def parse_number(value: Any) -> Optional[float]:
    """
    Return value as a finite float, or None if it is not numeric.

    Rules:
      - bool is never numeric (True is not 1 in a survey answer)
      - int / float are numeric when finite
      - str is stripped and parsed with float(); 'nan'/'inf' and
        digit-group underscores are rejected
      - anything else (None, ABSENT, lists, dicts...) is not numeric
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
        return number if math.isfinite(number) else None
    if isinstance(value, str):
        text = value.strip()
        if not text or "_" in text:
            return None
        try:
            number = float(text)
        except ValueError:
            return None
        return number if math.isfinite(number) else None
    return None


def _normalize_cell(value: Any) -> Any:
    # pandas hands back NaN / NaT / numpy scalars; map them onto the closed variant
    if value is None:
        return None
    try:
        if pd.isna(value):
            return None
    except (TypeError, ValueError):
        return value
    if hasattr(value, "item") and not isinstance(value, (str, bytes)):
        return value.item()
    return value


# ---------------------------------------------------------------------------
# Dataset
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Dataset:
    """
    Ordered rows of named fields plus a fixed, ordered column list.

    The dataset is owned by the caller. Nothing in the core mutates rows;
    derived structures are always new values.
    """
    columns: Tuple[str, ...]
    rows: Tuple[Mapping[str, Any], ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        object.__setattr__(self, "columns", tuple(str(c) for c in self.columns))
        object.__setattr__(self, "rows", tuple(self.rows))

    # -- construction -------------------------------------------------------

    @classmethod
    def from_records(
        cls,
        records: Iterable[Mapping[str, Any]],
        columns: Optional[Sequence[str]] = None,
    ) -> "Dataset":
        """
        Build a dataset from a sequence of mappings.

        When columns are not given, they are the union of record keys in
        first-seen order (so the first row's order wins).
        """
        rows = [dict(r) for r in records]
        if columns is None:
            seen: Dict[str, None] = {}
            for r in rows:
                for key in r.keys():
                    seen.setdefault(str(key), None)
            columns = list(seen.keys())
        return cls(columns=tuple(columns), rows=tuple(rows))

    @classmethod
    def from_dataframe(cls, df: pd.DataFrame) -> "Dataset":
        """Convert a DataFrame; NaN/NaT become None so they read as missing."""
        columns = [str(c) for c in df.columns]
        rows: List[Dict[str, Any]] = []
        for record in df.to_dict(orient="records"):
            rows.append({str(k): _normalize_cell(v) for k, v in record.items()})
        return cls(columns=tuple(columns), rows=tuple(rows))

    def to_dataframe(self) -> pd.DataFrame:
        if not self.rows:
            return pd.DataFrame(columns=list(self.columns))
        records = [{c: row.get(c) for c in self.columns} for row in self.rows]
        return pd.DataFrame.from_records(records, columns=list(self.columns))

    # -- access -------------------------------------------------------------

    def __len__(self) -> int:
        return len(self.rows)

    @property
    def is_empty(self) -> bool:
        return len(self.rows) == 0

    def has_column(self, column: str) -> bool:
        return column in self.columns

    def cell(self, row_index: int, column: str) -> Any:
        """Raw value at (row, column), or ABSENT when the row lacks the key."""
        return self.rows[row_index].get(column, ABSENT)

    def iter_column(self, column: str) -> Iterator[Tuple[int, Any]]:
        for idx, row in enumerate(self.rows):
            yield idx, row.get(column, ABSENT)

    def numeric_values(self, column: str) -> List[Tuple[int, float]]:
        """
        (row_index, value) for every cell in column that parses as a finite
        number, in row order. Non-numeric and missing cells are skipped.
        """
        out: List[Tuple[int, float]] = []
        for idx, raw in self.iter_column(column):
            number = parse_number(raw)
            if number is not None:
                out.append((idx, number))
        return out
