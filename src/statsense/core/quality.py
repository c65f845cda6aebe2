from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Set, Union

from statsense.config import MAX_ISSUES, OUTLIER_CAP_FACTOR, OUTLIER_THRESHOLD
from statsense.core.dataset import ABSENT, Dataset, is_missing, parse_number
from statsense.core.schema import ColumnKind

logger = logging.getLogger(__name__)

# Column sentinel for issues that concern a whole row
ALL_COLUMNS = "*"


class IssueKind(str, Enum):
    MISSING = "missing"
    OUTLIER = "outlier"
    INVALID_FORMAT = "invalid"
    DUPLICATE = "duplicate"


class Severity(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


@dataclass(frozen=True)
class Issue:
    id: str
    kind: IssueKind
    column: str
    row_index: int
    observed_value: Optional[str]
    suggestion: str
    severity: Severity
    resolved: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.kind.value,
            "column": self.column,
            "row": self.row_index,
            "value": self.observed_value,
            "suggestion": self.suggestion,
            "severity": self.severity.value,
            "resolved": self.resolved,
        }


def issue_id(kind: IssueKind, row_index: int, column: str) -> str:
    """
    Stable identity of an issue across re-detection: '<kind>-<row>-<column>'.

    Resolution state is keyed on this id, so it must depend only on what the
    issue is about, never on its position in the list.
    """
    return f"{kind.value}-{row_index}-{column}"


# ---------------------------------------------------------------------------
# Detection
# ---------------------------------------------------------------------------

def _display_value(value: Any) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _is_email_column(column: str) -> bool:
    return "email" in column.lower()


def _cell_issues(
    row_index: int,
    column: str,
    value: Any,
    kind: ColumnKind,
    outlier_threshold: float,
) -> List[Issue]:
    if is_missing(value):
        strategy = "median" if kind is ColumnKind.NUMERIC else "mode"
        return [
            Issue(
                id=issue_id(IssueKind.MISSING, row_index, column),
                kind=IssueKind.MISSING,
                column=column,
                row_index=row_index,
                observed_value=None,
                suggestion=f"Impute with {strategy} value for column {column}",
                severity=Severity.MEDIUM,
            )
        ]

    found: List[Issue] = []

    if kind is ColumnKind.NUMERIC:
        number = parse_number(value)
        if number is not None and number > outlier_threshold:
            capped = number * OUTLIER_CAP_FACTOR
            found.append(
                Issue(
                    id=issue_id(IssueKind.OUTLIER, row_index, column),
                    kind=IssueKind.OUTLIER,
                    column=column,
                    row_index=row_index,
                    observed_value=_display_value(value),
                    suggestion=f"Cap at {capped:g} ({OUTLIER_CAP_FACTOR:.0%} of observed value)",
                    severity=Severity.HIGH,
                )
            )

    if _is_email_column(column) and "@" not in str(value):
        found.append(
            Issue(
                id=issue_id(IssueKind.INVALID_FORMAT, row_index, column),
                kind=IssueKind.INVALID_FORMAT,
                column=column,
                row_index=row_index,
                observed_value=_display_value(value),
                suggestion=f"Correct or remove the malformed email address in column {column}",
                severity=Severity.HIGH,
            )
        )

    return found


def _row_fingerprint(row: Mapping[str, Any], columns: Iterable[str]) -> str:
    # Absent keys and explicit nulls are different content
    cells = []
    for c in columns:
        value = row.get(c, ABSENT)
        cells.append({"absent": True} if value is ABSENT else {"v": value})
    return json.dumps(cells, sort_keys=True, default=str, ensure_ascii=False)


def _duplicate_issues(dataset: Dataset) -> List[Issue]:
    first_seen: Dict[str, int] = {}
    found: List[Issue] = []
    for idx, row in enumerate(dataset.rows):
        key = _row_fingerprint(row, dataset.columns)
        if key not in first_seen:
            first_seen[key] = idx
            continue
        found.append(
            Issue(
                id=issue_id(IssueKind.DUPLICATE, idx, ALL_COLUMNS),
                kind=IssueKind.DUPLICATE,
                column=ALL_COLUMNS,
                row_index=idx,
                observed_value=None,
                suggestion=f"Remove duplicate of row {first_seen[key]}",
                severity=Severity.MEDIUM,
            )
        )
    return found


def detect_issues(
    dataset: Dataset,
    schema: Mapping[str, ColumnKind],
    max_issues: int = MAX_ISSUES,
    outlier_threshold: float = OUTLIER_THRESHOLD,
) -> List[Issue]:
    """
    Scan every cell and row for quality issues.

    Ordering:
      - per-cell issues row-major (row 0 first), columns in dataset order;
        within a cell: missing, else outlier then invalid format
      - duplicate-row issues after all per-cell issues
      - the combined list is truncated to max_issues

    Checks:
      - MISSING: empty string, null, NaN or absent key (MEDIUM)
      - OUTLIER: numeric column, value > outlier_threshold (HIGH)
      - INVALID_FORMAT: column name contains 'email', value lacks '@' (HIGH)
      - DUPLICATE: row content equal to an earlier row; only repeats are
        flagged, column set to ALL_COLUMNS (MEDIUM)

    Pure function of (dataset, schema, limits); issues come back unresolved.
    """
    if max_issues < 0:
        raise ValueError(f"max_issues must be >= 0, got {max_issues}")
    if dataset.is_empty:
        return []

    issues: List[Issue] = []
    for row_index in range(len(dataset)):
        if len(issues) >= max_issues:
            break
        for column in dataset.columns:
            kind = schema.get(column, ColumnKind.CATEGORICAL)
            issues.extend(
                _cell_issues(row_index, column, dataset.cell(row_index, column), kind, outlier_threshold)
            )

    if len(issues) < max_issues:
        issues.extend(_duplicate_issues(dataset))

    if len(issues) > max_issues:
        logger.warning("Issue list truncated to %s entries.", max_issues)
        issues = issues[:max_issues]

    logger.info("Detected %s quality issue(s) across %s rows.", len(issues), len(dataset))
    return issues


# ---------------------------------------------------------------------------
# Resolution tracking
# ---------------------------------------------------------------------------

class ResolutionLog:
    """
    Caller-held record of which issues were resolved.

    Detection always returns fresh, unresolved issues. Re-joining the
    resolution state is a separate, explicit call to apply().
    """

    def __init__(self, resolved_ids: Optional[Iterable[str]] = None):
        self._resolved: Set[str] = set(resolved_ids or [])

    def __contains__(self, issue_or_id: Union[Issue, str]) -> bool:
        return self._key(issue_or_id) in self._resolved

    def __len__(self) -> int:
        return len(self._resolved)

    @staticmethod
    def _key(issue_or_id: Union[Issue, str]) -> str:
        return issue_or_id.id if isinstance(issue_or_id, Issue) else str(issue_or_id)

    def resolve(self, issue_or_id: Union[Issue, str]) -> None:
        self._resolved.add(self._key(issue_or_id))

    def unresolve(self, issue_or_id: Union[Issue, str]) -> None:
        self._resolved.discard(self._key(issue_or_id))

    def resolved_ids(self) -> List[str]:
        return sorted(self._resolved)

    def apply(self, issues: Iterable[Issue]) -> List[Issue]:
        """Return copies of issues with `resolved` set from this log."""
        return [replace(i, resolved=i.id in self._resolved) for i in issues]


# ---------------------------------------------------------------------------
# Summary
# ---------------------------------------------------------------------------

@dataclass
class QualitySummary:
    total_records: int
    total_columns: int
    issue_count: int
    by_kind: Dict[str, int] = field(default_factory=dict)
    by_severity: Dict[str, int] = field(default_factory=dict)
    resolved_count: int = 0

    @property
    def high_severity_count(self) -> int:
        return self.by_severity.get(Severity.HIGH.value, 0)

    @property
    def open_count(self) -> int:
        return self.issue_count - self.resolved_count


def summarize_quality(dataset: Dataset, issues: Iterable[Issue]) -> QualitySummary:
    issues = list(issues)
    by_kind = {k.value: 0 for k in IssueKind}
    by_severity = {s.value: 0 for s in Severity}
    for issue in issues:
        by_kind[issue.kind.value] += 1
        by_severity[issue.severity.value] += 1
    return QualitySummary(
        total_records=len(dataset),
        total_columns=len(dataset.columns),
        issue_count=len(issues),
        by_kind=by_kind,
        by_severity=by_severity,
        resolved_count=sum(1 for i in issues if i.resolved),
    )
