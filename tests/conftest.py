# Shared fixtures for the analytics core tests

import sys
from pathlib import Path

import pytest

# Ensure the src/ directory is on sys.path so we can import statsense
SRC_DIR = Path(__file__).resolve().parents[1] / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from statsense.core.dataset import Dataset  # noqa: E402


@pytest.fixture
def income_dataset():
    """Five respondents with an income column, a weight column and a text column."""
    rows = [
        {"respondent": "r1", "income": "10", "design_weight": "1", "region": "north"},
        {"respondent": "r2", "income": "20", "design_weight": "2", "region": "south"},
        {"respondent": "r3", "income": "30", "design_weight": "1", "region": "north"},
        {"respondent": "r4", "income": "40", "design_weight": "2", "region": "east"},
        {"respondent": "r5", "income": "50", "design_weight": "1", "region": "west"},
    ]
    return Dataset.from_records(rows)


@pytest.fixture
def survey_dataset():
    """Mixed-quality survey extract: missing cells, an outlier, a bad email, a repeated row."""
    rows = [
        {"age": "34", "income": "52000", "email": "a@example.org", "region": "north"},
        {"age": "", "income": "48000", "email": "b@example.org", "region": "south"},
        {"age": "29", "income": "250000", "email": "not-an-email", "region": "north"},
        {"age": "34", "income": "52000", "email": "a@example.org", "region": "north"},
        {"age": "41", "income": None, "email": "c@example.org"},
    ]
    return Dataset.from_records(rows, columns=["age", "income", "email", "region"])


@pytest.fixture
def empty_dataset():
    return Dataset(columns=("age", "income"), rows=())
