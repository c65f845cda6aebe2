from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Tuple

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from statsense.config import CKAN_DATASTORE_SEARCH_URL, DATASTORE_RESOURCE_ID
from statsense.core.dataset import Dataset

logger = logging.getLogger(__name__)

# Row id CKAN adds to every DataStore record; not part of the survey
CKAN_ROW_ID_FIELD = "_id"


class DataLoaderError(Exception):
    """Raised when CKAN DataStore calls fail or return unexpected shapes."""


def _build_retry_session() -> requests.Session:
    """
    Build a requests Session with conservative retries.
    Open data portals can be slow or transiently flaky.
    """
    session = requests.Session()

    retry = Retry(
        total=5,
        connect=5,
        read=5,
        status=5,
        backoff_factor=0.6,
        status_forcelist=(429, 500, 502, 503, 504),
        allowed_methods=frozenset({"GET"}),
        raise_on_status=False,
    )

    adapter = HTTPAdapter(max_retries=retry, pool_connections=10, pool_maxsize=10)
    session.mount("https://", adapter)
    session.mount("http://", adapter)

    return session


_SESSION: Optional[requests.Session] = None


def _get_session() -> requests.Session:
    global _SESSION
    if _SESSION is None:
        _SESSION = _build_retry_session()
    return _SESSION


@dataclass
class DataStorePage:
    records: List[Dict[str, Any]]
    fields: List[str] = field(default_factory=list)


def _search_params(
    resource_id: str,
    filters: Optional[Dict[str, Any]],
    fields: Optional[List[str]],
    sort: Optional[str],
) -> Dict[str, Any]:
    """Query parameters shared by every page of one search."""
    params: Dict[str, Any] = {"resource_id": resource_id}
    # CKAN expects filters as a JSON string
    if filters:
        params["filters"] = json.dumps(filters, ensure_ascii=False)
    if fields:
        params["fields"] = ",".join(fields)
    if sort:
        params["sort"] = sort
    return params


def _fetch_page(base_params: Dict[str, Any], offset: int, limit: int, timeout_seconds: int) -> DataStorePage:
    """One datastore_search GET. Transport, JSON and success=false failures raise DataLoaderError."""
    params = dict(base_params, offset=int(offset), limit=int(limit))
    try:
        resp = _get_session().get(CKAN_DATASTORE_SEARCH_URL, params=params, timeout=timeout_seconds)
    except requests.RequestException as exc:
        raise DataLoaderError(f"HTTP error while calling datastore_search: {exc}") from exc

    try:
        data = resp.json()
    except ValueError as exc:
        preview = (resp.text or "")[:200]
        raise DataLoaderError(f"Non-JSON response from CKAN (status={resp.status_code}). Preview: {preview}") from exc

    if not isinstance(data, dict):
        raise DataLoaderError(f"Unexpected CKAN response type: {type(data)}")
    # A 200 can still carry success=false
    if not data.get("success", False):
        detail = data.get("error") or data.get("help") or data
        raise DataLoaderError(f"CKAN datastore_search returned success=false. Status={resp.status_code}. Detail={detail}")

    result = data.get("result") or {}
    records = result.get("records") or []
    if not isinstance(records, list):
        raise DataLoaderError("CKAN result.records is not a list")

    field_ids = [str(f["id"]) for f in result.get("fields") or [] if isinstance(f, dict) and f.get("id")]
    return DataStorePage(records=records, fields=field_ids)


def _iter_pages(
    base_params: Dict[str, Any],
    max_rows: int,
    page_size: int,
    timeout_seconds: int,
) -> Iterator[DataStorePage]:
    """
    Yield non-empty pages in offset order until max_rows records were served,
    a page comes back short, or the page cap is hit.
    """
    fetched = 0
    page_cap = max_rows // page_size + 5
    for _ in range(page_cap):
        limit = min(page_size, max_rows - fetched)
        if limit <= 0:
            return
        page = _fetch_page(base_params, offset=fetched, limit=limit, timeout_seconds=timeout_seconds)
        if not page.records:
            return
        yield page
        fetched += len(page.records)
        if len(page.records) < limit:
            return


def query_dataset(
    *,
    filters: Optional[Dict[str, Any]] = None,
    fields: Optional[List[str]] = None,
    sort: Optional[str] = None,
    max_rows: int = 5_000,
    page_size: int = 1_000,
    timeout_seconds: int = 90,
    resource_id: Optional[str] = None,
    stop_after_rows: Optional[int] = None,
) -> Dataset:
    """
    Pull survey records from a CKAN DataStore resource as a Dataset.

    Row order is CKAN's paging order, which trend segmentation depends on;
    pass `sort` to pin it. `filters` is equality-match only. Columns come
    from the first page's field listing without '_id', then from `fields`,
    then from the records themselves.

    max_rows caps the rows returned; stop_after_rows ends paging early once
    that many rows are in hand (the last page is kept whole).
    """
    rid = (resource_id or DATASTORE_RESOURCE_ID or "").strip()
    if not rid:
        raise DataLoaderError(
            "Missing CKAN resource id. Pass resource_id or set STATSENSE_DATASTORE_RESOURCE_ID."
        )
    if int(max_rows) <= 0:
        return Dataset(columns=tuple(fields or ()))
    page_size = int(page_size) if int(page_size) > 0 else 1_000
    stop_after = int(stop_after_rows) if stop_after_rows and int(stop_after_rows) > 0 else None

    rows: List[Dict[str, Any]] = []
    columns: List[str] = []
    pages = 0
    for page in _iter_pages(_search_params(rid, filters, fields, sort), int(max_rows), page_size, timeout_seconds):
        pages += 1
        if not columns:
            columns = [f for f in page.fields if f != CKAN_ROW_ID_FIELD]
        rows.extend({k: v for k, v in r.items() if k != CKAN_ROW_ID_FIELD} for r in page.records)
        if stop_after is not None and len(rows) >= stop_after:
            break

    if not columns and fields:
        columns = [f for f in fields if f != CKAN_ROW_ID_FIELD]

    logger.info("Fetched %s record(s) from resource %s in %s page(s).", len(rows), rid, pages)
    return Dataset.from_records(rows, columns=columns or None)


def timed_query_dataset(**kwargs: Any) -> Tuple[Dataset, float]:
    """query_dataset plus elapsed wall-clock seconds."""
    t0 = time.perf_counter()
    dataset = query_dataset(**kwargs)
    return dataset, time.perf_counter() - t0
