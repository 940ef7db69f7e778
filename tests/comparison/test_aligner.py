"""Tests for the value aligner.

Covers source labelling, first-match selection, empty values treated as
absent, skipping of groups with no value anywhere, and the classification
attached to each record.
"""

from dhis2_dq.comparison.aligner import align
from dhis2_dq.comparison.models import ComparisonReport
from dhis2_dq.comparison.classifier import summarize
from dhis2_dq.core.enums import RecordStatus

SOURCES = ["dsA", "dsB", "dsC"]


def test_perfect_match(three_source_groups, value_factory):  # pylint: disable=redefined-outer-name
    """The same value in all three datasets is valid."""
    raw = {
        "dsA": [value_factory("deA1", "42")],
        "dsB": [value_factory("deB1", "42")],
        "dsC": [value_factory("deC1", "42")],
    }
    records = align(three_source_groups, SOURCES, raw, org_unit="ou1", period="202406")

    assert len(records) == 1  # deliveries has no value anywhere
    record = records[0]
    assert record.group_id == "anc1"
    assert record.values == {"dataset1Value": "42", "dataset2Value": "42", "dataset3Value": "42"}
    assert record.status == RecordStatus.VALID
    assert record.variance is None
    assert record.consensus_value == "42"
    assert record.element_ids == {"dataset1Value": "deA1", "dataset2Value": "deB1", "dataset3Value": "deC1"}


def test_mismatch_with_gap(three_source_groups, value_factory):  # pylint: disable=redefined-outer-name
    """42 vs 45 with the third source absent is a mismatch of 3."""
    raw = {
        "dsA": [value_factory("deA1", "42")],
        "dsB": [value_factory("deB1", "45")],
        "dsC": [],
    }
    records = align(three_source_groups, SOURCES, raw)

    assert records[0].values == {"dataset1Value": "42", "dataset2Value": "45", "dataset3Value": None}
    assert records[0].status == RecordStatus.MISMATCH
    assert records[0].variance == 3.0
    assert records[0].consensus_value is None


def test_single_source_is_missing(three_source_groups, value_factory):  # pylint: disable=redefined-outer-name
    raw = {"dsA": [value_factory("deA2", "17")]}
    records = align(three_source_groups, SOURCES, raw)

    assert len(records) == 1
    assert records[0].group_id == "deliveries"
    assert records[0].status == RecordStatus.MISSING
    assert records[0].values["dataset3Value"] is None
    assert records[0].element_ids["dataset3Value"] is None


def test_skips_groups_without_any_value(three_source_groups):  # pylint: disable=redefined-outer-name
    assert align(three_source_groups, SOURCES, {}) == []


def test_empty_value_treated_as_absent(three_source_groups, value_factory):  # pylint: disable=redefined-outer-name
    raw = {
        "dsA": [value_factory("deA1", "")],
        "dsB": [value_factory("deB1", "")],
    }
    assert align(three_source_groups, SOURCES, raw) == []


def test_first_matching_value_wins(three_source_groups, value_factory):  # pylint: disable=redefined-outer-name
    raw = {
        "dsA": [value_factory("deA1", "5"), value_factory("deA1", "9")],
        "dsB": [value_factory("deB1", "5")],
    }
    records = align(three_source_groups, SOURCES, raw)
    assert records[0].values["dataset1Value"] == "5"
    assert records[0].status == RecordStatus.VALID


def test_org_unit_name_defaults_to_uid(three_source_groups, value_factory):  # pylint: disable=redefined-outer-name
    raw = {"dsA": [value_factory("deA1", "1")], "dsB": [value_factory("deB1", "1")]}

    unnamed = align(three_source_groups, SOURCES, raw, org_unit="ou1")
    named = align(three_source_groups, SOURCES, raw, org_unit="ou1", org_unit_name="Clinic")

    assert unnamed[0].org_unit_name == "ou1"
    assert named[0].org_unit_name == "Clinic"


def test_summary_is_conserved(three_source_groups, value_factory):  # pylint: disable=redefined-outer-name
    raw = {
        "dsA": [value_factory("deA1", "42"), value_factory("deA2", "3")],
        "dsB": [value_factory("deB1", "40")],
    }
    records = align(three_source_groups, SOURCES, raw)
    report = ComparisonReport(records=records, summary=summarize(records))

    assert report.summary.total_records == len(records) == 2
    assert report.summary.is_conserved()
    assert len(report.get_records(RecordStatus.MISMATCH)) == 1
    assert len(report.get_records(RecordStatus.MISSING)) == 1


def test_report_dataframe_has_one_column_per_source(three_source_groups, value_factory):  # pylint: disable=redefined-outer-name
    raw = {"dsA": [value_factory("deA1", "1")], "dsB": [value_factory("deB1", "2")]}
    records = align(three_source_groups, SOURCES, raw)
    df = ComparisonReport(records=records, summary=summarize(records)).to_dataframe()

    assert list(df["status"]) == ["mismatch"]
    assert {"dataset1Value", "dataset2Value", "dataset3Value"} <= set(df.columns)
    assert df.loc[0, "variance"] == 1.0
