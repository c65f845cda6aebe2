from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field, replace
from typing import Dict, List, Optional, Sequence, Union

import pandas as pd

from statsense.config import (
    DEFAULT_CONFIDENCE_LEVEL,
    DEFAULT_DISTRIBUTION_BINS,
    DEFAULT_TREND_BUCKETS,
    MAX_ISSUES,
    OUTLIER_THRESHOLD,
)
from statsense.core.dataset import Dataset
from statsense.core.distribution import DistributionBin, bin_distribution
from statsense.core.errors import AnalysisError
from statsense.core.estimator import (
    EstimationResult,
    WeightSource,
    estimate_columns,
    validate_weight_source,
    z_for_confidence,
)
from statsense.core.quality import Issue, ResolutionLog, detect_issues
from statsense.core.schema import ColumnKind, infer_schema
from statsense.core.trends import TrendPoint, segment_trend

logger = logging.getLogger(__name__)


class PipelineError(Exception):
    """Raised when analysis parameters are unusable as a whole."""


@dataclass(frozen=True)
class AnalysisParameters:
    """
    Everything that determines an analysis run besides the dataset.

    trend_column / distribution_column default to the first target column.
    A change to any field means a new run; results are never patched.
    """
    target_columns: Sequence[str]
    confidence_level: float = DEFAULT_CONFIDENCE_LEVEL
    weight: WeightSource = None
    trend_column: Optional[str] = None
    trend_buckets: int = DEFAULT_TREND_BUCKETS
    trend_labels: Optional[Sequence[str]] = None
    distribution_column: Optional[str] = None
    distribution_bins: int = DEFAULT_DISTRIBUTION_BINS
    max_issues: int = MAX_ISSUES
    outlier_threshold: float = OUTLIER_THRESHOLD

    def resolved_trend_column(self) -> Optional[str]:
        return self.trend_column or (self.target_columns[0] if self.target_columns else None)

    def resolved_distribution_column(self) -> Optional[str]:
        return self.distribution_column or (self.target_columns[0] if self.target_columns else None)


@dataclass
class AnalysisResult:
    params: AnalysisParameters
    schema: Dict[str, ColumnKind]
    issues: List[Issue]
    estimates: Dict[str, EstimationResult]
    trend: List[TrendPoint]
    distribution: List[DistributionBin]

    # Per-request failures; a failure never removes the other results
    failures: Dict[str, str] = field(default_factory=dict)
    trend_error: Optional[str] = None
    distribution_error: Optional[str] = None

    generation: int = 0


def _validate_params(params: AnalysisParameters) -> None:
    if not params.target_columns:
        raise PipelineError("target_columns must contain at least one column.")
    try:
        z_for_confidence(params.confidence_level)
    except ValueError as exc:
        raise PipelineError(str(exc)) from exc
    try:
        validate_weight_source(params.weight)
    except ValueError as exc:
        raise PipelineError(str(exc)) from exc
    if params.trend_buckets < 1:
        raise PipelineError(f"trend_buckets must be >= 1, got {params.trend_buckets}")
    if params.distribution_bins < 1:
        raise PipelineError(f"distribution_bins must be >= 1, got {params.distribution_bins}")


def run_analysis(
    dataset: Dataset,
    params: AnalysisParameters,
    resolutions: Optional[ResolutionLog] = None,
    generation: int = 0,
) -> AnalysisResult:
    """
    Compute the complete result set for one (dataset, parameters) pair.

    Steps:
      1. infer schema
      2. detect issues, then re-join resolution state (if a log is given)
      3. estimate each target column
      4. trend segmentation and distribution for their columns

    Failures in steps 3-4 are recorded on the result and logged; they do
    not abort the run. The returned value is new and self-contained, so a
    caller can swap it in for the previous result in one assignment.
    """
    _validate_params(params)
    logger.info("Running analysis (generation=%s) with params=%s", generation, params)

    schema = infer_schema(dataset)

    issues = detect_issues(
        dataset,
        schema,
        max_issues=params.max_issues,
        outlier_threshold=params.outlier_threshold,
    )
    if resolutions is not None:
        issues = resolutions.apply(issues)

    results, errors = estimate_columns(
        dataset,
        params.target_columns,
        confidence_level=params.confidence_level,
        weight=params.weight,
    )
    estimates = {r.column: r for r in results}
    failures = {col: str(exc) for col, exc in errors.items()}

    trend: List[TrendPoint] = []
    trend_error: Optional[str] = None
    trend_column = params.resolved_trend_column()
    try:
        trend = segment_trend(
            dataset,
            trend_column,
            confidence_level=params.confidence_level,
            weight=params.weight,
            buckets=params.trend_buckets,
            labels=params.trend_labels,
        )
    except AnalysisError as exc:
        logger.warning("Trend for column %s skipped: %s", trend_column, exc)
        trend_error = str(exc)

    distribution: List[DistributionBin] = []
    distribution_error: Optional[str] = None
    distribution_column = params.resolved_distribution_column()
    try:
        distribution = bin_distribution(
            dataset,
            distribution_column,
            bins=params.distribution_bins,
            weight=params.weight,
        )
    except AnalysisError as exc:
        logger.warning("Distribution for column %s skipped: %s", distribution_column, exc)
        distribution_error = str(exc)

    return AnalysisResult(
        params=params,
        schema=schema,
        issues=issues,
        estimates=estimates,
        trend=trend,
        distribution=distribution,
        failures=failures,
        trend_error=trend_error,
        distribution_error=distribution_error,
        generation=generation,
    )


# ---------------------------------------------------------------------------
# Session: last requested generation wins
# ---------------------------------------------------------------------------

class AnalysisSession:
    """
    Holds the committed analysis result for one analyst session.

    Each request gets a generation number. A finished computation is
    committed only if its generation is still the newest one requested;
    anything older is dropped on arrival, whatever order workers finish in.
    The committed result is replaced as a whole, never field by field.
    """

    def __init__(
        self,
        resolutions: Optional[ResolutionLog] = None,
        executor: Optional[ThreadPoolExecutor] = None,
    ):
        self.resolutions = resolutions if resolutions is not None else ResolutionLog()
        self._lock = threading.Lock()
        self._generation = 0
        self._current: Optional[AnalysisResult] = None
        self._owns_executor = executor is None
        self._executor = executor

    @property
    def current(self) -> Optional[AnalysisResult]:
        with self._lock:
            return self._current

    @property
    def latest_generation(self) -> int:
        with self._lock:
            return self._generation

    def next_generation(self) -> int:
        with self._lock:
            self._generation += 1
            return self._generation

    def commit(self, result: AnalysisResult) -> bool:
        """Install result if it belongs to the newest request. Returns whether it was installed."""
        with self._lock:
            if result.generation != self._generation:
                logger.warning(
                    "Discarding stale analysis result (generation=%s, latest=%s).",
                    result.generation, self._generation,
                )
                return False
            self._current = result
            return True

    def run(self, dataset: Dataset, params: AnalysisParameters) -> Optional[AnalysisResult]:
        """Compute synchronously; returns the result if it was committed."""
        generation = self.next_generation()
        result = run_analysis(dataset, params, resolutions=self.resolutions, generation=generation)
        return result if self.commit(result) else None

    def submit(self, dataset: Dataset, params: AnalysisParameters) -> "Future[AnalysisResult]":
        """Compute on a background worker; the result commits itself when done."""
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=2, thread_name_prefix="statsense-analysis")
        generation = self.next_generation()
        future = self._executor.submit(run_analysis, dataset, params, self.resolutions, generation)
        future.add_done_callback(self._on_done)
        return future

    def _on_done(self, future: "Future[AnalysisResult]") -> None:
        if future.cancelled():
            return
        exc = future.exception()
        if exc is not None:
            logger.error("Background analysis failed: %s", exc)
            return
        self.commit(future.result())

    def resolve(self, issue_or_id: Union[Issue, str]) -> None:
        """Mark an issue resolved and re-join resolution state on the committed result."""
        self.resolutions.resolve(issue_or_id)
        self.reapply_resolutions()

    def unresolve(self, issue_or_id: Union[Issue, str]) -> None:
        self.resolutions.unresolve(issue_or_id)
        self.reapply_resolutions()

    def reapply_resolutions(self) -> None:
        with self._lock:
            if self._current is None:
                return
            self._current = replace(self._current, issues=self.resolutions.apply(self._current.issues))

    def close(self) -> None:
        if self._executor is not None and self._owns_executor:
            self._executor.shutdown(wait=True)
            self._executor = None


# ---------------------------------------------------------------------------
# Tabular views for the presentation layer
# ---------------------------------------------------------------------------

def result_tables(result: AnalysisResult) -> Dict[str, pd.DataFrame]:
    """
    DataFrames of the result parts, one per output: issues, estimates,
    trend, distribution. Values are unformatted.
    """
    return {
        "issues": pd.DataFrame([i.to_dict() for i in result.issues]),
        "estimates": pd.DataFrame([e.to_dict() for e in result.estimates.values()]),
        "trend": pd.DataFrame([p.to_dict() for p in result.trend]),
        "distribution": pd.DataFrame([b.to_dict() for b in result.distribution]),
    }
