from __future__ import annotations

from typing import Iterable, Optional


class AnalysisError(Exception):
    """Base class for failures scoped to a single analysis request."""


class InvalidColumnError(AnalysisError):
    """Raised when a requested column is not part of the dataset schema."""

    def __init__(self, column: str, available: Optional[Iterable[str]] = None):
        self.column = column
        self.available = list(available or [])
        msg = f"Column '{column}' not found in dataset."
        if self.available:
            msg += f" Present columns: {self.available}"
        super().__init__(msg)


class InsufficientSampleSizeError(AnalysisError):
    """Raised when fewer than 2 numeric values are available (variance undefined)."""

    def __init__(self, column: str, sample_size: int, required: int = 2):
        self.column = column
        self.sample_size = sample_size
        self.required = required
        super().__init__(
            f"Column '{column}' has {sample_size} numeric value(s); at least {required} required."
        )


class EmptyDatasetError(AnalysisError):
    """Raised when the dataset has no rows."""


class NumericRangeError(AnalysisError):
    """Raised when a statistic over finite inputs overflows to inf/NaN."""

    def __init__(self, column: str, statistic: str):
        self.column = column
        self.statistic = statistic
        super().__init__(
            f"The {statistic} of column '{column}' is outside the floating-point range."
        )
