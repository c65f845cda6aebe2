import pytest

from statsense.core.dataset import Dataset
from statsense.core.quality import (
    ALL_COLUMNS,
    IssueKind,
    ResolutionLog,
    Severity,
    detect_issues,
    issue_id,
    summarize_quality,
)
from statsense.core.schema import infer_schema


def _detect(ds, **kwargs):
    return detect_issues(ds, infer_schema(ds), **kwargs)


class TestDetection:
    def test_issue_sequence_is_row_major_with_duplicates_last(self, survey_dataset):
        issues = _detect(survey_dataset)
        assert [i.id for i in issues] == [
            "missing-1-age",
            "outlier-2-income",
            "invalid-2-email",
            "missing-4-income",
            "missing-4-region",
            "duplicate-3-*",
        ]

    def test_missing_cell_only_flags_the_empty_column(self):
        ds = Dataset.from_records([{"age": "", "income": "50000"}])
        issues = _detect(ds)
        assert len(issues) == 1
        issue = issues[0]
        assert issue.kind is IssueKind.MISSING
        assert issue.column == "age"
        assert issue.row_index == 0
        assert issue.observed_value is None
        assert issue.severity is Severity.MEDIUM
        assert "age" in issue.suggestion

    def test_outlier_suggests_capped_value(self, survey_dataset):
        outlier = [i for i in _detect(survey_dataset) if i.kind is IssueKind.OUTLIER][0]
        assert outlier.severity is Severity.HIGH
        assert outlier.observed_value == "250000"
        assert "237500" in outlier.suggestion

    def test_outlier_threshold_is_exclusive_and_configurable(self):
        ds = Dataset.from_records([{"v": 100000}, {"v": 100001}, {"v": 50}])
        assert [i.row_index for i in _detect(ds)] == [1]
        assert [i.row_index for i in _detect(ds, outlier_threshold=10)] == [0, 1, 2]

    def test_outliers_only_in_numeric_columns(self):
        text_only = Dataset.from_records([{"code": "ABC"}, {"code": "XYZ"}])
        assert _detect(text_only) == []

        # one numeric value in the sample makes the column numeric
        mixed = Dataset.from_records([{"code": "ABC"}, {"code": "999999"}])
        assert [i.kind for i in _detect(mixed)] == [IssueKind.OUTLIER]

    def test_invalid_email_uses_column_name_case_insensitively(self):
        ds = Dataset.from_records(
            [
                {"Contact_EMAIL": "nobody"},
                {"Contact_EMAIL": "x@y.z"},
                {"Contact_EMAIL": ""},
            ]
        )
        issues = _detect(ds)
        assert [(i.kind, i.row_index) for i in issues] == [
            (IssueKind.INVALID_FORMAT, 0),
            (IssueKind.MISSING, 2),
        ]
        assert issues[0].severity is Severity.HIGH

    def test_duplicates_flag_repeats_only(self):
        a = {"x": "1", "y": "a"}
        rows = [dict(a), {"x": "2", "y": "b"}, dict(a), {"x": "3", "y": "c"}, dict(a)]
        issues = _detect(Dataset.from_records(rows))
        dups = [i for i in issues if i.kind is IssueKind.DUPLICATE]
        assert [i.row_index for i in dups] == [2, 4]
        assert all(i.column == ALL_COLUMNS for i in dups)
        assert all(i.severity is Severity.MEDIUM for i in dups)

    def test_absent_key_and_null_are_different_rows(self):
        ds = Dataset.from_records([{"x": "1", "y": None}, {"x": "1"}], columns=["x", "y"])
        assert not [i for i in _detect(ds) if i.kind is IssueKind.DUPLICATE]

    def test_cap_truncates_and_drops_duplicates_past_the_limit(self):
        rows = [{"a": "", "b": ""} for _ in range(15)]
        ds = Dataset.from_records(rows)
        issues = _detect(ds)
        assert len(issues) == 20
        assert all(i.kind is IssueKind.MISSING for i in issues)
        assert len(_detect(ds, max_issues=5)) == 5

    def test_empty_dataset_has_no_issues(self, empty_dataset):
        assert _detect(empty_dataset) == []

    def test_detection_is_deterministic(self, survey_dataset):
        first = _detect(survey_dataset)
        second = _detect(survey_dataset)
        assert [i.to_dict() for i in first] == [i.to_dict() for i in second]

    def test_negative_cap_is_rejected(self, survey_dataset):
        with pytest.raises(ValueError):
            _detect(survey_dataset, max_issues=-1)


class TestResolution:
    def test_issue_id_format(self):
        assert issue_id(IssueKind.MISSING, 3, "age") == "missing-3-age"

    def test_resolution_survives_redetection(self, survey_dataset):
        log = ResolutionLog()
        issues = _detect(survey_dataset)
        log.resolve(issues[1])

        fresh = _detect(survey_dataset)
        assert not any(i.resolved for i in fresh)

        rejoined = log.apply(fresh)
        assert [i.id for i in rejoined if i.resolved] == ["outlier-2-income"]

    def test_unresolve(self):
        log = ResolutionLog(["missing-0-a"])
        assert "missing-0-a" in log
        log.unresolve("missing-0-a")
        assert len(log) == 0

    def test_apply_ignores_ids_that_no_longer_exist(self, survey_dataset):
        log = ResolutionLog(["missing-99-age"])
        assert not any(i.resolved for i in log.apply(_detect(survey_dataset)))


def test_summary_counts(survey_dataset):
    log = ResolutionLog(["invalid-2-email"])
    issues = log.apply(_detect(survey_dataset))
    summary = summarize_quality(survey_dataset, issues)
    assert summary.total_records == 5
    assert summary.total_columns == 4
    assert summary.issue_count == 6
    assert summary.by_kind == {"missing": 3, "outlier": 1, "invalid": 1, "duplicate": 1}
    assert summary.high_severity_count == 2
    assert summary.resolved_count == 1
    assert summary.open_count == 5
