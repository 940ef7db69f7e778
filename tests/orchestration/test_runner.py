"""Tests for run_comparison() and run_dq() with mocked DHIS2 clients."""

from unittest.mock import MagicMock

import pytest

from dhis2_dq.core.enums import FetchErrorKind, RecordStatus, RuleType, Severity
from dhis2_dq.core.errors import FetchError, RunError
from dhis2_dq.core.models import RawDataValue
from dhis2_dq.orchestration.runner import (
    ComparisonSource,
    DQRunParams,
    map_for_destination,
    run_comparison,
    run_dq,
)
from dhis2_dq.sources.client import MetadataNames
from dhis2_dq.validation import ValidationEngine

OU = "DiszpKrYNg8"


def _dv(element, value, org_unit=OU, period="202406"):
    return RawDataValue(element, org_unit, period, value)


@pytest.fixture
def comparison_client():
    """Client serving three datasets; dsC is unreachable."""
    data = {
        ("dsA", "202406"): [_dv("deA1", "42"), _dv("deA2", "3")],
        ("dsB", "202406"): [_dv("deB1", "45"), _dv("deB2", "3")],
        ("dsA", "202405"): [_dv("deA1", "10", period="202405")],
        ("dsB", "202405"): [_dv("deB1", "10", period="202405")],
    }

    def fetch(dataset_id, org_unit, period, timeout=None):
        if dataset_id == "dsC":
            raise FetchError(FetchErrorKind.SERVER_ERROR, "dsC down")
        return data.get((dataset_id, period), [])

    client = MagicMock()
    client.fetch_data_values.side_effect = fetch
    client.fetch_org_unit_name.return_value = "Ngelehun CHC"
    return client


def _sources(client):
    return [ComparisonSource(client, ds) for ds in ("dsA", "dsB", "dsC")]


def test_run_comparison_single_period(comparison_client, three_source_groups):  # pylint: disable=redefined-outer-name
    steps = []
    report = run_comparison(
        _sources(comparison_client),
        three_source_groups,
        OU,
        "202406",
        on_progress=lambda step, pct: steps.append((step, pct)),
    )

    by_group = {r.group_id: r for r in report.records}
    assert by_group["anc1"].status == RecordStatus.MISMATCH
    assert by_group["anc1"].variance == 3.0
    assert by_group["anc1"].values["dataset3Value"] is None  # dsC failed, contributes nothing
    assert by_group["deliveries"].status == RecordStatus.VALID
    assert by_group["anc1"].org_unit_name == "Ngelehun CHC"
    assert report.summary.total_records == 2
    assert report.summary.is_conserved()
    assert report.periods == ["202406"]
    assert report.dataset_ids == ["dsA", "dsB", "dsC"]

    percents = [pct for _, pct in steps]
    assert percents == sorted(percents)
    assert steps[-1] == ("Comparison complete!", 100.0)


def test_run_comparison_multi_period_adds_summaries(comparison_client, three_source_groups):  # pylint: disable=redefined-outer-name
    report = run_comparison(
        _sources(comparison_client), three_source_groups, OU, ["202405", "202406"], org_unit_name="Clinic"
    )

    assert report.periods == ["202405", "202406"]
    assert report.summary.total_records == 3
    assert report.summary.valid_records == 2
    assert report.summary.mismatched_records == 1
    assert {r.org_unit_name for r in report.records} == {"Clinic"}
    comparison_client.fetch_org_unit_name.assert_not_called()


def test_run_comparison_resolves_uid_like_name(comparison_client, three_source_groups):  # pylint: disable=redefined-outer-name
    report = run_comparison(_sources(comparison_client), three_source_groups, OU, "202406", org_unit_name=OU)
    assert report.records[0].org_unit_name == "Ngelehun CHC"


def test_run_comparison_name_lookup_failure_falls_back(comparison_client, three_source_groups):  # pylint: disable=redefined-outer-name
    comparison_client.fetch_org_unit_name.side_effect = FetchError(FetchErrorKind.NOT_FOUND, "gone")
    report = run_comparison(_sources(comparison_client), three_source_groups, OU, "202406")
    assert report.records[0].org_unit_name == OU


def test_run_comparison_raising_progress_callback_is_ignored(comparison_client, three_source_groups):  # pylint: disable=redefined-outer-name
    def bad_callback(step, pct):
        raise RuntimeError("ui closed")

    report = run_comparison(
        _sources(comparison_client), three_source_groups, OU, "202406", on_progress=bad_callback
    )
    assert report.summary.total_records == 2


def test_run_comparison_unexpected_dataset_error_contributes_nothing(comparison_client, three_source_groups):  # pylint: disable=redefined-outer-name
    fetch = comparison_client.fetch_data_values.side_effect

    def broken_dsb(dataset_id, org_unit, period, timeout=None):
        if dataset_id == "dsB":
            raise AttributeError("'list' object has no attribute 'get'")
        return fetch(dataset_id, org_unit, period, timeout)

    comparison_client.fetch_data_values.side_effect = broken_dsb
    report = run_comparison(_sources(comparison_client), three_source_groups, OU, ["202405", "202406"])

    assert report.periods == ["202405", "202406"]
    assert {r.values["dataset2Value"] for r in report.records} == {None}
    assert report.summary.is_conserved()


def test_run_comparison_requires_sources(three_source_groups):  # pylint: disable=redefined-outer-name
    with pytest.raises(RunError, match="No datasets selected"):
        run_comparison([], three_source_groups, OU, "202406")


# ----------------------------------------------------------------------------
# run_dq
# ----------------------------------------------------------------------------


@pytest.fixture
def dq_source():
    client = MagicMock()
    client.me.return_value = {"displayName": "Bot"}
    client.fetch_metadata_names.return_value = MetadataNames(
        org_units={"ou1": "Ngelehun CHC"}, datasets={"dsA": "Child Health"}
    )
    client.fetch_data_values.return_value = [
        _dv("deA", "12", org_unit="ou1"),
        _dv("deB", "4", org_unit="ou1"),
    ]
    return client


@pytest.fixture
def params():
    return DQRunParams(
        dataset_id="dsA",
        data_elements=["deA", "deB"],
        org_units=["ou1"],
        period="202406",
        element_mapping={"deA": "dstA"},
        org_unit_mapping={"ou1": "dstOu"},
    )


@pytest.fixture
def destination():
    client = MagicMock()
    client.me.return_value = {"displayName": "Receiver"}
    client.post_data_values.return_value = {"status": "SUCCESS", "importCount": {"imported": 1}}
    return client


def test_run_dq_validates_and_publishes(dq_source, params, destination, rule_factory):  # pylint: disable=redefined-outer-name
    engine = ValidationEngine([rule_factory(RuleType.RANGE, ("deA",), threshold=100)])
    steps = []

    result = run_dq(params, dq_source, engine, destination, on_progress=lambda s, p: steps.append(p))

    assert result.used_fallback is False
    assert len(result.values) == 2
    assert result.validation.get_failures() == []
    assert result.publish.posted == 1
    assert result.publish.skipped_unmapped == 1
    assert result.publish_blocked is False
    posted = destination.post_data_values.call_args.args[0]
    assert posted == [RawDataValue("dstA", "dstOu", "202406", "12")]
    assert result.counts_by_org_unit == {"ou1": 2}
    assert steps[-1] == 100.0
    assert result.duration_seconds >= 0


def test_run_dq_blocks_publish_on_errors(dq_source, params, destination, rule_factory):  # pylint: disable=redefined-outer-name
    engine = ValidationEngine([rule_factory(RuleType.RANGE, ("deA",), threshold=5, severity=Severity.ERROR)])

    result = run_dq(params, dq_source, engine, destination)

    assert result.validation.get_error_count() == 1
    assert result.publish_blocked is True
    assert result.publish is None
    destination.post_data_values.assert_not_called()


def test_run_dq_publishes_despite_errors_when_not_blocking(dq_source, params, destination, rule_factory):  # pylint: disable=redefined-outer-name
    params.block_on_errors = False
    engine = ValidationEngine([rule_factory(RuleType.RANGE, ("deA",), threshold=5, severity=Severity.ERROR)])

    result = run_dq(params, dq_source, engine, destination)

    assert result.publish is not None
    destination.post_data_values.assert_called_once()


def test_run_dq_warnings_do_not_block(dq_source, params, destination, rule_factory):  # pylint: disable=redefined-outer-name
    engine = ValidationEngine([rule_factory(RuleType.RANGE, ("deA",), threshold=5, severity=Severity.WARNING)])
    result = run_dq(params, dq_source, engine, destination)
    assert result.publish is not None


def test_run_dq_login_failure(dq_source, params):  # pylint: disable=redefined-outer-name
    dq_source.me.side_effect = FetchError(FetchErrorKind.AUTH_FAILED, "bad credentials", status_code=401)

    with pytest.raises(RunError) as exc_info:
        run_dq(params, dq_source, ValidationEngine([]))

    assert exc_info.value.stage == "login"
    dq_source.fetch_data_values.assert_not_called()


def test_run_dq_metadata_failure_uses_uids(dq_source, params):  # pylint: disable=redefined-outer-name
    dq_source.fetch_metadata_names.side_effect = FetchError(FetchErrorKind.SERVER_ERROR, "metadata down")
    dq_source.fetch_data_values.return_value = []
    dq_source.fetch_analytics.side_effect = FetchError(FetchErrorKind.SERVER_ERROR, "analytics down")

    with pytest.raises(RunError) as exc_info:
        run_dq(params, dq_source, ValidationEngine([]))

    assert exc_info.value.stage == "fetch"
    assert "for dsA (ou1, 202406)" in str(exc_info.value)


def test_run_dq_publish_failure(dq_source, params, destination):  # pylint: disable=redefined-outer-name
    destination.post_data_values.side_effect = FetchError(FetchErrorKind.SERVER_ERROR, "import failed")

    with pytest.raises(RunError) as exc_info:
        run_dq(params, dq_source, ValidationEngine([]), destination)

    assert exc_info.value.stage == "publish"


def test_run_dq_without_destination(dq_source, params):  # pylint: disable=redefined-outer-name
    result = run_dq(params, dq_source, ValidationEngine([]))
    assert result.publish is None
    assert result.publish_blocked is False


def test_map_for_destination_drops_unmapped():
    values = [_dv("deA", "1", org_unit="ou1"), _dv("deZ", "2", org_unit="ou1"), _dv("deA", "3", org_unit="ou9")]
    mapped = map_for_destination(values, {"deA": "dstA"}, {"ou1": "dstOu"}, "202406")
    assert mapped == [
        RawDataValue("dstA", "dstOu", "202406", "1"),
        RawDataValue("dstA", "ou9", "202406", "3"),
    ]


def test_run_dq_unexpected_login_error_is_run_error(dq_source, params):  # pylint: disable=redefined-outer-name
    dq_source.me.side_effect = KeyError("displayName")

    with pytest.raises(RunError) as exc_info:
        run_dq(params, dq_source, ValidationEngine([]))

    assert exc_info.value.stage == "login"


def test_run_dq_unexpected_engine_error_is_run_error(dq_source, params):  # pylint: disable=redefined-outer-name
    engine = MagicMock()
    engine.validate.side_effect = RuntimeError("engine exploded")

    with pytest.raises(RunError, match="engine exploded") as exc_info:
        run_dq(params, dq_source, engine)

    assert exc_info.value.stage == "validate"


def test_run_dq_unexpected_publish_error_is_run_error(dq_source, params, destination):  # pylint: disable=redefined-outer-name
    destination.post_data_values.side_effect = TypeError("unhashable type")

    with pytest.raises(RunError) as exc_info:
        run_dq(params, dq_source, ValidationEngine([]), destination)

    assert exc_info.value.stage == "publish"


def test_run_dq_unexpected_metadata_error_uses_uids(dq_source, params):  # pylint: disable=redefined-outer-name
    dq_source.fetch_metadata_names.side_effect = ValueError("bad metadata payload")
    result = run_dq(params, dq_source, ValidationEngine([]))
    assert result.names.org_unit("ou1") == "ou1"
    assert len(result.values) == 2
