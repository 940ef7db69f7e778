"""Tests for the consensus value and the merge of range failures."""

import json

import pytest

from dhis2_dq.comparison.classifier import summarize
from dhis2_dq.comparison.combine import apply_range_failures, combine
from dhis2_dq.comparison.consensus import find_consensus_value
from dhis2_dq.comparison.models import AlignedRecord, ComparisonReport
from dhis2_dq.core.enums import RecordStatus, RuleType, Severity
from dhis2_dq.core.errors import ClassificationError
from dhis2_dq.validation.models import ValidationResult


@pytest.mark.parametrize(
    "values, expected",
    [
        (["42", "42", "45"], "42"),
        (["42", "45"], None),
        (["42", None, None], "42"),
        ([None, "", None], None),
        (["1", "2", "2", "1"], "1"),
        ([], None),
    ],
    ids=["majority", "tie_of_singles", "only_value", "nothing_present", "tie_first_seen", "empty"],
)
def test_find_consensus_value(values, expected):
    assert find_consensus_value(values) == expected


def _record(group_id, element_id, status=RecordStatus.VALID, org_unit="ou1", period="202406"):
    return AlignedRecord(
        group_id=group_id,
        logical_name=group_id.upper(),
        org_unit=org_unit,
        org_unit_name=org_unit,
        period=period,
        values={"dataset1Value": "10", "dataset2Value": "10"},
        status=status,
        element_ids={"dataset1Value": element_id, "dataset2Value": f"{element_id}-b"},
    )


def _range_failure(element, org_unit="ou1", period="202406", rule_type=RuleType.RANGE, passed=False):
    return ValidationResult(
        rule_id="r1",
        rule_name="Range",
        rule_type=rule_type,
        severity=Severity.WARNING,
        passed=passed,
        message="Value 10 exceeds threshold of 5",
        data_element=element,
        org_unit=org_unit,
        period=period,
    )


def test_apply_range_failures_relabels_matching_records():
    records = [_record("a", "deA"), _record("b", "deB")]
    merged = apply_range_failures(records, [_range_failure("deA-b")])

    assert merged[0].status == RecordStatus.OUT_OF_RANGE
    assert merged[1].status == RecordStatus.VALID
    assert records[0].status == RecordStatus.VALID  # inputs untouched


def test_apply_range_failures_respects_org_unit_and_period():
    records = [_record("a", "deA")]
    assert apply_range_failures(records, [_range_failure("deA", org_unit="ou2")])[0].status == RecordStatus.VALID
    assert apply_range_failures(records, [_range_failure("deA", period="202405")])[0].status == RecordStatus.VALID


def test_apply_range_failures_element_only_results():
    records = [_record("a", "deA", org_unit="ouX", period="202401")]
    merged = apply_range_failures(records, [_range_failure("deA", org_unit=None, period=None)])
    assert merged[0].status == RecordStatus.OUT_OF_RANGE


@pytest.mark.parametrize(
    "result",
    [
        _range_failure("deA", passed=True),
        _range_failure("deA", rule_type=RuleType.OUTLIER),
        _range_failure("deA", rule_type=RuleType.MANDATORY),
    ],
    ids=["passed_range", "outlier_failure", "mandatory_failure"],
)
def test_apply_range_failures_ignores_other_results(result):
    assert apply_range_failures([_record("a", "deA")], [result])[0].status == RecordStatus.VALID


def test_combine_recomputes_conserved_summary():
    records = [
        _record("a", "deA"),
        _record("b", "deB", status=RecordStatus.MISMATCH),
        _record("c", "deC", status=RecordStatus.MISSING),
    ]
    report = ComparisonReport(records=records, summary=summarize(records), periods=["202406"], dataset_ids=["dsA", "dsB"])

    combined = combine(report, [_range_failure("deA"), _range_failure("deB")])

    assert combined.summary.total_records == 3
    assert combined.summary.out_of_range_records == 2
    assert combined.summary.valid_records == 0
    assert combined.summary.missing_records == 1
    assert combined.summary.is_conserved()
    assert combined.periods == ["202406"]

    payload = json.loads(combined.to_json())
    assert payload["summary"]["out_of_range_records"] == 2
    assert payload["records"][0]["status"] == "out_of_range"


def test_combine_rejects_records_with_wrong_source_count():
    records = [_record("a", "deA")]
    report = ComparisonReport(
        records=records, summary=summarize(records), periods=["202406"], dataset_ids=["dsA", "dsB", "dsC"]
    )

    with pytest.raises(ClassificationError, match="has 2 values for 3 datasets"):
        combine(report, [])
