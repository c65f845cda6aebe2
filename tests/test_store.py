import json
from datetime import datetime

import pytest

from statsense.core.dataset import ABSENT, Dataset
from statsense.core.quality import ResolutionLog, detect_issues
from statsense.core.schema import infer_schema
from statsense.core.store import (
    FileBlobStore,
    MemoryBlobStore,
    StoreError,
    cleaned_key,
    list_datasets,
    load_dataset,
    save_cleaned_dataset,
    save_dataset,
)


@pytest.fixture(params=["memory", "file"])
def store(request, tmp_path):
    if request.param == "memory":
        return MemoryBlobStore()
    return FileBlobStore(tmp_path / "store")


def test_saved_dataset_loads_back(store, survey_dataset):
    saved = save_dataset(store, "survey_2023.csv", survey_dataset, file_size=1024)
    loaded = load_dataset(store, "survey_2023.csv")

    assert loaded.dataset.columns == survey_dataset.columns
    assert len(loaded.dataset) == len(survey_dataset)
    assert loaded.metadata == {"file_size": 1024}
    assert loaded.saved_at == saved.saved_at
    datetime.fromisoformat(loaded.saved_at)

    # region is absent from the last row and must stay absent
    assert loaded.dataset.cell(4, "region") is ABSENT
    assert loaded.dataset.cell(4, "income") is None


def test_missing_key(store):
    assert load_dataset(store, "nothing.csv") is None


def test_cleaned_dataset_records_resolution_counts(store, survey_dataset):
    issues = detect_issues(survey_dataset, infer_schema(survey_dataset))
    log = ResolutionLog([issues[0].id, issues[1].id])
    save_cleaned_dataset(store, "survey.csv", survey_dataset, log.apply(issues))

    loaded = load_dataset(store, cleaned_key("survey.csv"))
    assert loaded.metadata["issues_resolved"] == 2
    assert loaded.metadata["issues_total"] == len(issues)
    assert loaded.metadata["source_key"] == "survey.csv"
    datetime.fromisoformat(loaded.metadata["cleaned_at"])


def test_list_datasets(store):
    ds = Dataset.from_records([{"a": 1}])
    save_dataset(store, "one.csv", ds)
    save_cleaned_dataset(store, "one.csv", ds, [])
    assert list_datasets(store) == ["one.csv", "one.csv.cleaned"]
    assert list_datasets(store, include_cleaned=False) == ["one.csv"]


def test_malformed_blob(store):
    store.save("bad.csv", b"not json")
    with pytest.raises(StoreError):
        load_dataset(store, "bad.csv")

    store.save("shape.csv", json.dumps({"rows": "nope", "columns": []}).encode())
    with pytest.raises(StoreError):
        load_dataset(store, "shape.csv")


@pytest.mark.parametrize("key", ["a b", "../escape.csv", "..", ".hidden", "", "a/b", "caf\u00e9.csv"])
def test_unsafe_keys_are_rejected(store, key):
    with pytest.raises(ValueError):
        store.save(key, b"x")
    with pytest.raises(ValueError):
        store.load(key)


def test_distinct_keys_stay_distinct(store):
    store.save("a_b", b"underscore")
    store.save("a-b", b"dash")
    assert store.load("a_b") == b"underscore"
    assert store.load("a-b") == b"dash"
    assert store.keys() == ["a-b", "a_b"]


def test_file_store_keeps_files_under_root(tmp_path):
    store = FileBlobStore(tmp_path)
    store.save("survey.v2.csv", b"x")
    assert [p.name for p in tmp_path.iterdir()] == ["survey.v2.csv.blob"]
    assert FileBlobStore(tmp_path).keys() == ["survey.v2.csv"]
