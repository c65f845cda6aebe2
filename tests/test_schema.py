import pytest

from statsense.core.dataset import Dataset
from statsense.core.schema import ColumnKind, classify_columns, infer_schema, numeric_columns


def test_numeric_and_categorical_columns(survey_dataset):
    schema = infer_schema(survey_dataset)
    assert schema == {
        "age": ColumnKind.NUMERIC,
        "income": ColumnKind.NUMERIC,
        "email": ColumnKind.CATEGORICAL,
        "region": ColumnKind.CATEGORICAL,
    }
    assert numeric_columns(schema) == ["age", "income"]


def test_one_numeric_value_in_sample_is_enough():
    ds = Dataset.from_records([{"x": "abc"}, {"x": ""}, {"x": "12"}])
    assert infer_schema(ds)["x"] is ColumnKind.NUMERIC


def test_only_sampled_rows_are_considered():
    rows = [{"x": "text"} for _ in range(10)] + [{"x": "5"}]
    ds = Dataset.from_records(rows)
    assert infer_schema(ds)["x"] is ColumnKind.CATEGORICAL
    assert infer_schema(ds, sample_rows=11)["x"] is ColumnKind.NUMERIC


def test_all_missing_column_is_categorical():
    ds = Dataset.from_records([{"x": ""}, {"x": None}], columns=["x", "y"])
    schema = infer_schema(ds)
    assert schema == {"x": ColumnKind.CATEGORICAL, "y": ColumnKind.CATEGORICAL}


def test_zero_rows_yield_categorical(empty_dataset):
    assert set(infer_schema(empty_dataset).values()) == {ColumnKind.CATEGORICAL}


def test_classify_columns_preserves_order(survey_dataset):
    classes = classify_columns(survey_dataset)
    assert [c.name for c in classes] == list(survey_dataset.columns)
    assert classes[0].is_numeric
    assert not classes[2].is_numeric


def test_sample_rows_must_be_positive(survey_dataset):
    with pytest.raises(ValueError):
        infer_schema(survey_dataset, sample_rows=0)
