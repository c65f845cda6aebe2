from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List

import numpy as np

from statsense.config import DEFAULT_DISTRIBUTION_BINS
from statsense.core.dataset import Dataset
from statsense.core.estimator import WeightSource, collect_sample, require_column

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DistributionBin:
    range_label: str
    low_bound: float
    high_bound: float
    count: int
    raw_percentage: float
    weighted_percentage: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "range": self.range_label,
            "low": self.low_bound,
            "high": self.high_bound,
            "count": self.count,
            "percentage": self.raw_percentage,
            "weighted_percentage": self.weighted_percentage,
        }


def format_bound(value: float) -> str:
    """Short display form of a bin edge: 20000 -> '20K', 1500000 -> '1.5M', 2.346 -> '2.35'."""
    magnitude = abs(value)
    if magnitude >= 1_000_000:
        return f"{value / 1_000_000:.4g}M"
    if magnitude >= 1_000:
        return f"{value / 1_000:.4g}K"
    return f"{round(value, 2):g}"


def bin_distribution(
    dataset: Dataset,
    column: str,
    bins: int = DEFAULT_DISTRIBUTION_BINS,
    weight: WeightSource = None,
) -> List[DistributionBin]:
    """
    Equal-width histogram of a numeric column.

    Bins come from np.histogram over [min, max]: width = (max - min) / bins,
    the last bin is closed on both ends and the others are closed-open.
    When max == min there is one bin holding every value. Empty bins are omitted.

    raw_percentage is relative to the count of numeric values;
    weighted_percentage is relative to the weight total (equal to
    raw_percentage when no weight source is given).
    """
    if bins < 1:
        raise ValueError(f"bins must be >= 1, got {bins}")
    require_column(dataset, column)
    if dataset.is_empty:
        return []

    values, weights = collect_sample(dataset, column, weight)
    total = len(values)
    if total == 0:
        logger.warning("Column %s has no numeric values; distribution is empty.", column)
        return []

    sample = np.asarray(values, dtype=float)
    sample_weights = np.asarray(weights, dtype=float)
    lo, hi = float(sample.min()), float(sample.max())

    with np.errstate(over="ignore", invalid="ignore"):
        if hi == lo:
            edges = np.array([lo, hi])
            counts = np.array([total])
            bin_weights = np.array([sample_weights.sum()])
        else:
            # hi - lo overflows near the float limits; bin the halved values instead
            scale = 1.0 if np.isfinite(hi - lo) else 0.5
            bin_range = (lo * scale, hi * scale)
            counts, edges = np.histogram(sample * scale, bins=bins, range=bin_range)
            bin_weights, _ = np.histogram(sample * scale, bins=bins, range=bin_range, weights=sample_weights)
            edges = edges / scale
        weight_total = float(bin_weights.sum())

    use_weights = weight is not None and np.isfinite(weight_total) and weight_total > 0

    out: List[DistributionBin] = []
    for i, count in enumerate(counts):
        if count == 0:
            continue
        low, high = float(edges[i]), float(edges[i + 1])
        raw_pct = 100.0 * int(count) / total
        if use_weights:
            weighted_pct = 100.0 * float(bin_weights[i]) / weight_total
        else:
            weighted_pct = raw_pct
        out.append(
            DistributionBin(
                range_label=f"{format_bound(low)}-{format_bound(high)}",
                low_bound=low,
                high_bound=high,
                count=int(count),
                raw_percentage=raw_pct,
                weighted_percentage=weighted_pct,
            )
        )
    return out
