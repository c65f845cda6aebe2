from __future__ import annotations

import os
from pathlib import Path

# ---------------------------------------------------------------------------
# Project paths
# ---------------------------------------------------------------------------

# Root of the project (repo root)
PROJECT_ROOT = Path(__file__).resolve().parents[2]

# Data directories
DATA_DIR = Path(os.getenv("STATSENSE_DATA_DIR", str(PROJECT_ROOT / "data")))
STORE_DIR = DATA_DIR / "store"    # file-backed blob store (uploaded / cleaned datasets)

# ---------------------------------------------------------------------------
# App identity
# ---------------------------------------------------------------------------

APP_NAME = "StatSense Survey Analytics"
APP_VERSION = "0.1.0"

# ---------------------------------------------------------------------------
# Analysis defaults
#
# Every public function takes these as keyword defaults; callers override
# per request. Only the outlier threshold is commonly tuned per deployment.
# ---------------------------------------------------------------------------

# Schema inference looks at the first N rows only
SCHEMA_SAMPLE_ROWS = 10

# Quality issue list is capped to keep the review table bounded
MAX_ISSUES = 20

# Values above this are flagged as outliers; suggestion caps them at 95%
OUTLIER_THRESHOLD = float(os.getenv("STATSENSE_OUTLIER_THRESHOLD", "100000"))
OUTLIER_CAP_FACTOR = 0.95

DEFAULT_CONFIDENCE_LEVEL = 95

# Trend segmentation: four buckets labelled as calendar quarters
DEFAULT_TREND_BUCKETS = 4
DEFAULT_TREND_LABELS = ("Q1", "Q2", "Q3", "Q4")

DEFAULT_DISTRIBUTION_BINS = 5

# ---------------------------------------------------------------------------
# CKAN / DataStore configuration (Data Source)
#
# Survey microdata published on a CKAN portal can be pulled through the
# DataStore API:
#   https://<portal>/api/3/action/datastore_search
#
# IMPORTANT:
#   - You must supply the *resource_id* (NOT the package/dataset ID).
#   - Only equality filters are supported by datastore_search.
# ---------------------------------------------------------------------------

CKAN_BASE_URL = os.getenv(
    "STATSENSE_CKAN_BASE_URL",
    "https://open.canada.ca/data/en/api/3/action",
).strip().rstrip("/")
CKAN_DATASTORE_SEARCH_URL = f"{CKAN_BASE_URL}/datastore_search"

# Resource ID of the survey table (DataStore-enabled resource)
DATASTORE_RESOURCE_ID = os.getenv("STATSENSE_DATASTORE_RESOURCE_ID", "").strip()
