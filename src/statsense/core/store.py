from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from statsense.config import STORE_DIR
from statsense.core.dataset import Dataset
from statsense.core.quality import Issue

logger = logging.getLogger(__name__)

# Suffix used for the cleaned copy of an uploaded dataset
CLEANED_SUFFIX = ".cleaned"

# Keys double as filenames, so they are restricted to a portable filename alphabet
_KEY_PATTERN = re.compile(r"[A-Za-z0-9][A-Za-z0-9._-]*")


class StoreError(Exception):
    """Raised when a stored blob cannot be read back as a dataset."""


# ---------------------------------------------------------------------------
# Blob stores
# ---------------------------------------------------------------------------

class BlobStore:
    """
    Minimal key/value blob store.

    Keys are filename-like identifiers (e.g. 'survey_2023.csv'): letters,
    digits, '.', '_' and '-', not starting with '.', '_' or '-'. Other keys
    raise ValueError in every store, so a key maps to exactly one blob.
    """

    @staticmethod
    def check_key(key: str) -> str:
        if not isinstance(key, str) or not _KEY_PATTERN.fullmatch(key):
            raise ValueError(f"Invalid store key: {key!r}")
        return key

    def save(self, key: str, blob: bytes) -> None:
        raise NotImplementedError

    def load(self, key: str) -> Optional[bytes]:
        raise NotImplementedError

    def keys(self) -> List[str]:
        raise NotImplementedError


class MemoryBlobStore(BlobStore):
    def __init__(self) -> None:
        self._blobs: Dict[str, bytes] = {}

    def save(self, key: str, blob: bytes) -> None:
        self._blobs[self.check_key(key)] = bytes(blob)

    def load(self, key: str) -> Optional[bytes]:
        return self._blobs.get(self.check_key(key))

    def keys(self) -> List[str]:
        return sorted(self._blobs)


class FileBlobStore(BlobStore):
    """
    One file per key under `root`.

    The file name is the key plus a '.blob' extension, which keeps stored
    files apart from anything else in the directory.
    """

    EXTENSION = ".blob"

    def __init__(self, root: Optional[Path] = None):
        self.root = Path(root) if root is not None else STORE_DIR
        self.root.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        return self.root / (self.check_key(key) + self.EXTENSION)

    def save(self, key: str, blob: bytes) -> None:
        path = self._path(key)
        tmp = path.with_suffix(path.suffix + ".tmp")
        tmp.write_bytes(blob)
        tmp.replace(path)
        logger.info("Saved blob %s (%s bytes) to %s", key, len(blob), path)

    def load(self, key: str) -> Optional[bytes]:
        path = self._path(key)
        if not path.exists():
            return None
        return path.read_bytes()

    def keys(self) -> List[str]:
        return sorted(p.name[: -len(self.EXTENSION)] for p in self.root.glob(f"*{self.EXTENSION}"))


# ---------------------------------------------------------------------------
# Dataset envelopes
# ---------------------------------------------------------------------------

@dataclass
class StoredDataset:
    key: str
    dataset: Dataset
    saved_at: str
    metadata: Dict[str, Any] = field(default_factory=dict)


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _encode(dataset: Dataset, saved_at: str, metadata: Dict[str, Any]) -> bytes:
    payload = {
        "columns": list(dataset.columns),
        "rows": [dict(r) for r in dataset.rows],
        "saved_at": saved_at,
        "metadata": metadata,
    }
    return json.dumps(payload, ensure_ascii=False, default=str).encode("utf-8")


def save_dataset(store: BlobStore, key: str, dataset: Dataset, **metadata: Any) -> StoredDataset:
    """
    Persist a dataset under key as a JSON envelope stamped with an ISO-8601
    UTC timestamp. Keys absent from a row stay absent.
    """
    saved_at = _utc_now_iso()
    store.save(key, _encode(dataset, saved_at, metadata))
    logger.info("Stored dataset %s (%s rows, %s columns).", key, len(dataset), len(dataset.columns))
    return StoredDataset(key=key, dataset=dataset, saved_at=saved_at, metadata=dict(metadata))


def load_dataset(store: BlobStore, key: str) -> Optional[StoredDataset]:
    blob = store.load(key)
    if blob is None:
        return None
    try:
        payload = json.loads(blob.decode("utf-8"))
    except (UnicodeDecodeError, ValueError) as exc:
        raise StoreError(f"Stored blob {key!r} is not valid JSON: {exc}") from exc

    if not isinstance(payload, dict) or "columns" not in payload or "rows" not in payload:
        raise StoreError(f"Stored blob {key!r} is not a dataset envelope.")

    rows = payload["rows"]
    if not isinstance(rows, list) or not all(isinstance(r, dict) for r in rows):
        raise StoreError(f"Stored blob {key!r} has malformed rows.")

    return StoredDataset(
        key=key,
        dataset=Dataset(columns=tuple(payload["columns"]), rows=tuple(rows)),
        saved_at=str(payload.get("saved_at", "")),
        metadata=dict(payload.get("metadata") or {}),
    )


def cleaned_key(key: str) -> str:
    return key + CLEANED_SUFFIX


def save_cleaned_dataset(
    store: BlobStore,
    key: str,
    dataset: Dataset,
    issues: Iterable[Issue],
) -> StoredDataset:
    """
    Store the reviewed dataset next to the original, recording when it was
    cleaned and how many of the detected issues were resolved.
    """
    issues = list(issues)
    resolved = sum(1 for i in issues if i.resolved)
    cleaned_at = _utc_now_iso()
    return save_dataset(
        store,
        cleaned_key(key),
        dataset,
        source_key=key,
        cleaned_at=cleaned_at,
        issues_total=len(issues),
        issues_resolved=resolved,
    )


def list_datasets(store: BlobStore, include_cleaned: bool = True) -> List[str]:
    keys = store.keys()
    if include_cleaned:
        return keys
    return [k for k in keys if not k.endswith(CLEANED_SUFFIX)]
