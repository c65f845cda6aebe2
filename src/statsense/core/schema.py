from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional

from statsense.config import SCHEMA_SAMPLE_ROWS
from statsense.core.dataset import Dataset, is_missing, parse_number

logger = logging.getLogger(__name__)


class ColumnKind(str, Enum):
    NUMERIC = "numeric"
    CATEGORICAL = "categorical"


@dataclass(frozen=True)
class ColumnClassification:
    name: str
    kind: ColumnKind

    @property
    def is_numeric(self) -> bool:
        return self.kind is ColumnKind.NUMERIC


def infer_schema(dataset: Dataset, sample_rows: Optional[int] = None) -> Dict[str, ColumnKind]:
    """
    Classify each column as numeric or categorical from the first rows.

    A column is NUMERIC if at least one non-missing sampled value parses as a
    finite number; otherwise CATEGORICAL. Missing values are dropped from the
    sample before testing. With zero rows every column is CATEGORICAL, which
    keeps downstream components on the non-numeric path.

    Returns a column -> kind mapping in dataset column order.
    """
    k = SCHEMA_SAMPLE_ROWS if sample_rows is None else int(sample_rows)
    if k <= 0:
        raise ValueError(f"sample_rows must be positive, got {k}")

    sample = dataset.rows[:k]
    kinds: Dict[str, ColumnKind] = {}

    for column in dataset.columns:
        kind = ColumnKind.CATEGORICAL
        for row in sample:
            value = row.get(column)
            if is_missing(value):
                continue
            if parse_number(value) is not None:
                kind = ColumnKind.NUMERIC
                break
        kinds[column] = kind

    logger.debug(
        "Inferred schema from %s of %s rows: %s",
        len(sample), len(dataset), {c: k.value for c, k in kinds.items()},
    )
    return kinds


def classify_columns(dataset: Dataset, sample_rows: Optional[int] = None) -> List[ColumnClassification]:
    """Same as infer_schema, as an ordered list of classification records."""
    return [
        ColumnClassification(name=name, kind=kind)
        for name, kind in infer_schema(dataset, sample_rows=sample_rows).items()
    ]


def numeric_columns(schema: Dict[str, ColumnKind]) -> List[str]:
    return [c for c, k in schema.items() if k is ColumnKind.NUMERIC]
