from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

from statsense.config import DEFAULT_CONFIDENCE_LEVEL, DEFAULT_TREND_BUCKETS, DEFAULT_TREND_LABELS
from statsense.core.dataset import Dataset
from statsense.core.estimator import (
    EstimationResult,
    WeightSource,
    collect_sample,
    require_column,
    summarize_sample,
    z_for_confidence,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TrendPoint:
    bucket_label: str
    estimate: EstimationResult
    bucket_sample_size: int

    def to_dict(self) -> Dict[str, Any]:
        low, high = self.estimate.confidence_interval
        return {
            "period": self.bucket_label,
            "value": self.estimate.point_estimate,
            "weighted_value": self.estimate.weighted_estimate,
            "confidence_lower": low,
            "confidence_upper": high,
            "sample_size": self.bucket_sample_size,
        }


def period_labels(buckets: int, labels: Optional[Sequence[str]] = None) -> List[str]:
    """
    Positional labels for buckets.

    Caller labels are used in order; positions past the end fall back to
    'Period <n>'. With no labels and the default four buckets, quarters
    Q1..Q4 are used.
    """
    if labels is None:
        labels = DEFAULT_TREND_LABELS if buckets == len(DEFAULT_TREND_LABELS) else ()
    out: List[str] = []
    for i in range(buckets):
        out.append(str(labels[i]) if i < len(labels) else f"Period {i + 1}")
    return out


def segment_trend(
    dataset: Dataset,
    column: str,
    confidence_level: float = DEFAULT_CONFIDENCE_LEVEL,
    weight: WeightSource = None,
    buckets: int = DEFAULT_TREND_BUCKETS,
    labels: Optional[Sequence[str]] = None,
) -> List[TrendPoint]:
    """
    Split the column's numeric values (row order) into contiguous buckets
    and estimate each bucket on its own.

    chunk size = ceil(n / buckets); the last chunk may be short, and empty
    chunks produce no point. Each bucket's interval uses that bucket's own
    sample size. A bucket with a single value gets margin 0 and an interval
    collapsed onto that value instead of failing the sequence.

    Bucket sample sizes always add up to the number of numeric values.
    """
    if buckets < 1:
        raise ValueError(f"buckets must be >= 1, got {buckets}")
    z_for_confidence(confidence_level)  # validate before touching data
    require_column(dataset, column)
    if dataset.is_empty:
        return []

    values, weights = collect_sample(dataset, column, weight)
    n = len(values)
    if n == 0:
        logger.warning("Column %s has no numeric values; trend is empty.", column)
        return []

    chunk_size = math.ceil(n / buckets)
    names = period_labels(buckets, labels)

    points: List[TrendPoint] = []
    for i in range(buckets):
        start = i * chunk_size
        chunk = values[start:start + chunk_size]
        if not chunk:
            continue
        chunk_weights = weights[start:start + chunk_size] if weight is not None else None
        result = summarize_sample(column, chunk, chunk_weights, confidence_level)
        points.append(TrendPoint(bucket_label=names[i], estimate=result, bucket_sample_size=len(chunk)))

    logger.info("Trend for %s: %s bucket(s) over %s values.", column, len(points), n)
    return points
