from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from statsense.core.pipeline import AnalysisResult
from statsense.core.quality import Severity


@dataclass
class AuditTrendFact:
    """
    A single change between two consecutive trend buckets.
    """
    period_start: str
    period_end: str
    value_start: float
    value_end: float
    delta: float
    direction: str  # 'increase', 'decrease', 'no_change'


@dataclass
class AuditEstimateFact:
    column: str
    estimate: float
    weighted_estimate: float
    margin_of_error: float
    confidence_interval: Tuple[float, float]
    sample_size: int


@dataclass
class AuditSnapshot:
    """
    Canonical numerical facts derived from an AnalysisResult.

    These are the facts a report is allowed to state. They can be shown
    to the analyst for manual audit, and later used for consistency checks
    against generated report text.
    """
    confidence_level: float
    weighted: bool

    estimates: List[AuditEstimateFact]
    unavailable_columns: Dict[str, str]

    trend_column: Optional[str]
    trend_facts: List[AuditTrendFact]
    overall_delta: Optional[float]
    overall_direction: Optional[str]

    issue_count: int
    high_severity_issues: int
    resolved_issues: int


def _direction_from_delta(delta: float, tolerance: float = 0.1) -> str:
    """
    Interpret a numeric delta as 'increase', 'decrease', or 'no_change'.

    Tolerance is used to treat very small changes as 'no_change' to avoid
    over-interpreting small fluctuations.
    """
    if math.isnan(delta):
        return "no_change"
    if delta > tolerance:
        return "increase"
    if delta < -tolerance:
        return "decrease"
    return "no_change"


def build_audit_snapshot(result: AnalysisResult, tolerance: float = 0.1) -> AuditSnapshot:
    """
    Build a canonical set of audit facts from an AnalysisResult.

    This function:
      - Lists every estimate that was produced, and why others were not
      - Computes bucket-over-bucket deltas and directions for the trend
      - Computes the overall delta (first bucket -> last bucket)
      - Counts issues by severity and resolution

    Report text should only make claims that trace back to these facts.
    """
    estimates = [
        AuditEstimateFact(
            column=e.column,
            estimate=e.point_estimate,
            weighted_estimate=e.weighted_estimate,
            margin_of_error=e.margin_of_error,
            confidence_interval=e.confidence_interval,
            sample_size=e.sample_size,
        )
        for e in result.estimates.values()
    ]

    trend_facts: List[AuditTrendFact] = []
    prev = None
    for point in result.trend:
        if prev is not None:
            delta = point.estimate.point_estimate - prev.estimate.point_estimate
            trend_facts.append(
                AuditTrendFact(
                    period_start=prev.bucket_label,
                    period_end=point.bucket_label,
                    value_start=prev.estimate.point_estimate,
                    value_end=point.estimate.point_estimate,
                    delta=delta,
                    direction=_direction_from_delta(delta, tolerance=tolerance),
                )
            )
        prev = point

    overall_delta: Optional[float] = None
    overall_direction: Optional[str] = None
    if len(result.trend) >= 2:
        overall_delta = result.trend[-1].estimate.point_estimate - result.trend[0].estimate.point_estimate
        overall_direction = _direction_from_delta(overall_delta, tolerance=tolerance)

    return AuditSnapshot(
        confidence_level=float(result.params.confidence_level),
        weighted=result.params.weight is not None,
        estimates=estimates,
        unavailable_columns=dict(result.failures),
        trend_column=result.params.resolved_trend_column() if result.trend else None,
        trend_facts=trend_facts,
        overall_delta=overall_delta,
        overall_direction=overall_direction,
        issue_count=len(result.issues),
        high_severity_issues=sum(1 for i in result.issues if i.severity is Severity.HIGH),
        resolved_issues=sum(1 for i in result.issues if i.resolved),
    )
