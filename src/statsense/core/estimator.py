from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Union

import numpy as np
from scipy import stats as scipy_stats

from statsense.config import DEFAULT_CONFIDENCE_LEVEL
from statsense.core.dataset import Dataset, parse_number
from statsense.core.errors import (
    AnalysisError,
    EmptyDatasetError,
    InsufficientSampleSizeError,
    InvalidColumnError,
    NumericRangeError,
)

logger = logging.getLogger(__name__)

# A weight source is either the name of a weight column or a constant factor
WeightSource = Union[str, float, int, None]

# Two-sided z critical values for the levels offered to analysts
Z_TABLE: Dict[float, float] = {
    90.0: 1.645,
    95.0: 1.96,
    99.0: 2.576,
}


@dataclass(frozen=True)
class EstimationResult:
    column: str
    point_estimate: float
    weighted_estimate: float
    standard_error: float
    margin_of_error: float
    confidence_interval: Tuple[float, float]
    sample_size: int
    confidence_level: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "column": self.column,
            "estimate": self.point_estimate,
            "weighted_estimate": self.weighted_estimate,
            "standard_error": self.standard_error,
            "margin_of_error": self.margin_of_error,
            "confidence_interval": list(self.confidence_interval),
            "sample_size": self.sample_size,
            "confidence_level": self.confidence_level,
        }


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def z_for_confidence(confidence_level: float) -> float:
    """
    Two-sided z value for a confidence level given in percent.

    90/95/99 come from the fixed table; any other level in (0, 100) uses the
    normal quantile.
    """
    level = float(confidence_level)
    if not (0.0 < level < 100.0):
        raise ValueError(f"confidence_level must be in (0, 100), got {confidence_level!r}")
    if level in Z_TABLE:
        return Z_TABLE[level]
    return float(scipy_stats.norm.ppf(0.5 + level / 200.0))


def require_column(dataset: Dataset, column: str) -> None:
    if not dataset.has_column(column):
        raise InvalidColumnError(column, dataset.columns)


def validate_weight_source(weight: WeightSource) -> Optional[float]:
    """
    Check a weight source without touching data.

    Returns the constant factor for a numeric source, None for a column name
    or no weighting. A numeric source must be a finite positive number.
    """
    if weight is None or isinstance(weight, str):
        return None
    constant = parse_number(weight)
    if constant is None or constant <= 0:
        raise ValueError(f"Constant weight factor must be a positive number, got {weight!r}")
    return constant


def collect_sample(
    dataset: Dataset,
    column: str,
    weight: WeightSource = None,
) -> Tuple[List[float], List[float]]:
    """
    Numeric values of column in row order, with one weight per value.

    Weights:
      - None: every weight is 1
      - constant factor: every weight is that factor
      - column name: that row's weight when it is a finite number >= 0,
        otherwise 1
    """
    weight_column: Optional[str] = None
    constant = validate_weight_source(weight) or 1.0
    if isinstance(weight, str):
        require_column(dataset, weight)
        weight_column = weight

    values: List[float] = []
    weights: List[float] = []
    for idx, x in dataset.numeric_values(column):
        w = constant
        if weight_column is not None:
            parsed = parse_number(dataset.cell(idx, weight_column))
            w = parsed if parsed is not None and parsed >= 0 else 1.0
        values.append(x)
        weights.append(w)
    return values, weights


def weighted_mean(values: Sequence[float], weights: Sequence[float]) -> Optional[float]:
    """np.average over the sample, or None when the weights sum to zero."""
    w = np.asarray(weights, dtype=float)
    with np.errstate(over="ignore", invalid="ignore"):
        if not w.sum() > 0:
            return None
        return float(np.average(np.asarray(values, dtype=float), weights=w))


def summarize_sample(
    column: str,
    values: Sequence[float],
    weights: Optional[Sequence[float]],
    confidence_level: float,
) -> EstimationResult:
    """
    Mean, unbiased variance, standard error and interval for one sample.

    A single value yields a degenerate interval (standard error 0); callers
    that require a real variance check the size before calling. Inputs are
    finite, but sums of squares can still leave the float range; that is
    reported as NumericRangeError for this column only.
    """
    n = len(values)
    if n == 0:
        raise InsufficientSampleSizeError(column, 0, required=1)

    z = z_for_confidence(confidence_level)
    sample = np.asarray(values, dtype=float)

    with np.errstate(over="ignore", invalid="ignore"):
        mean = float(np.mean(sample))
        variance = float(np.var(sample, ddof=1)) if n >= 2 else 0.0
    if not np.isfinite(mean):
        raise NumericRangeError(column, "mean")
    if not np.isfinite(variance):
        raise NumericRangeError(column, "variance")

    standard_error = float(np.sqrt(variance / n))
    margin = z * standard_error

    weighted = mean
    if weights is not None:
        wm = weighted_mean(values, weights)
        if wm is None:
            logger.warning("Weights for column %s sum to zero; using unweighted mean.", column)
        elif not np.isfinite(wm):
            raise NumericRangeError(column, "weighted mean")
        else:
            weighted = wm

    return EstimationResult(
        column=column,
        point_estimate=mean,
        weighted_estimate=weighted,
        standard_error=standard_error,
        margin_of_error=margin,
        confidence_interval=(mean - margin, mean + margin),
        sample_size=n,
        confidence_level=float(confidence_level),
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def estimate(
    dataset: Dataset,
    column: str,
    confidence_level: float = DEFAULT_CONFIDENCE_LEVEL,
    weight: WeightSource = None,
) -> EstimationResult:
    """
    Point estimate and confidence interval for one target column.

    - Values that do not parse as finite numbers are skipped (not zero).
    - Variance uses the n-1 divisor; SE = sqrt(variance / n);
      margin = z * SE; interval = mean -/+ margin.
    - weighted_estimate is the weighted mean when a weight source is given,
      otherwise equal to point_estimate.
    - Identical values give variance 0 and a collapsed interval; not an error.

    Raises:
      InvalidColumnError: column (or weight column) not in the dataset
      EmptyDatasetError: dataset has no rows
      InsufficientSampleSizeError: fewer than 2 numeric values
      NumericRangeError: mean or variance leaves the float range
    """
    require_column(dataset, column)
    if dataset.is_empty:
        raise EmptyDatasetError("Dataset has no rows; nothing to estimate.")

    values, weights = collect_sample(dataset, column, weight)
    if len(values) < 2:
        raise InsufficientSampleSizeError(column, len(values))

    result = summarize_sample(
        column,
        values,
        weights if weight is not None else None,
        confidence_level,
    )
    logger.info(
        "Estimated %s: n=%s mean=%s moe=%s (%s%%)",
        column, result.sample_size, result.point_estimate, result.margin_of_error, confidence_level,
    )
    return result


def estimate_columns(
    dataset: Dataset,
    columns: Iterable[str],
    confidence_level: float = DEFAULT_CONFIDENCE_LEVEL,
    weight: WeightSource = None,
) -> Tuple[List[EstimationResult], Dict[str, AnalysisError]]:
    """
    Estimate several columns independently.

    Returns (results, failures). A failure in one column is recorded under
    its name and does not affect the others. An empty dataset yields no
    results and no failures.
    """
    results: List[EstimationResult] = []
    failures: Dict[str, AnalysisError] = {}
    if dataset.is_empty:
        return results, failures

    for column in columns:
        try:
            results.append(estimate(dataset, column, confidence_level=confidence_level, weight=weight))
        except AnalysisError as exc:
            logger.warning("No estimate for column %s: %s", column, exc)
            failures[column] = exc
    return results, failures
