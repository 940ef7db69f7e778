"""Run orchestration.

- run_comparison(): fetch each source, align, classify and summarize, for one
  or more periods
- run_dq(): login, name resolution, fallback fetch, rule validation and
  optional publish to a destination instance

Every stage failure of run_dq() surfaces as a single RunError.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol, Sequence, Union

from dhis2_dq.comparison.aligner import align
from dhis2_dq.comparison.classifier import summarize
from dhis2_dq.comparison.models import AlignedRecord, ComparisonReport, ComparisonSummary
from dhis2_dq.core.enums import RecordStatus
from dhis2_dq.core.errors import DQError, RunError
from dhis2_dq.core.models import LogicalElementGroup, RawDataValue
from dhis2_dq.core.utils import looks_like_uid
from dhis2_dq.sources.client import MetadataNames
from dhis2_dq.validation.config import DEFAULT_FETCH_TIMEOUT, DEFAULT_FETCH_WORKERS
from dhis2_dq.validation.models import ValidationReport
from dhis2_dq.validation.registry import ValidationEngine
from .fetch import DataSource, fetch_with_fallback
from .progress import ProgressCallback, ProgressReporter

logger = logging.getLogger(__name__)


class Dhis2Api(DataSource, Protocol):
    """Full client surface used by the runners (implemented by Dhis2Client)."""

    def me(self) -> Dict[str, Any]: ...

    def fetch_metadata_names(
        self,
        data_elements: Sequence[str] = (),
        org_units: Sequence[str] = (),
        datasets: Sequence[str] = (),
    ) -> MetadataNames: ...

    def fetch_org_unit_name(self, org_unit: str) -> Optional[str]: ...

    def post_data_values(self, values: Sequence[RawDataValue]) -> Dict[str, Any]: ...


# ============================================================================
# Comparison
# ============================================================================


@dataclass(frozen=True)
class ComparisonSource:
    """One side of a comparison: a dataset in a DHIS2 instance.

    ``source_id`` is the key used in LogicalElementGroup.elements; it defaults
    to the dataset id.
    """

    client: Dhis2Api
    dataset_id: str
    source_id: str = ""

    @property
    def key(self) -> str:
        return self.source_id or self.dataset_id


def _resolve_org_unit_name(client: Dhis2Api, org_unit: str, org_unit_name: str) -> str:
    if org_unit_name and org_unit_name != org_unit and not looks_like_uid(org_unit_name):
        return org_unit_name
    try:
        name = client.fetch_org_unit_name(org_unit)
    except Exception as e:  # noqa: BLE001
        logger.info("Could not resolve org unit name for %s, using provided name: %s", org_unit, e)
        return org_unit_name or org_unit
    return name or org_unit_name or org_unit


def _compare_period(
    sources: Sequence[ComparisonSource],
    groups: Sequence[LogicalElementGroup],
    org_unit: str,
    org_unit_name: str,
    period: str,
    timeout: float,
    progress: ProgressReporter,
) -> List[AlignedRecord]:
    raw_by_source: Dict[str, List[RawDataValue]] = {}
    progress("Fetching data values from all datasets...", 10)
    for i, source in enumerate(sources):
        progress(f"Fetching data from dataset {i + 1}/{len(sources)}...", 10 + 60 * i / len(sources))
        try:
            raw_by_source[source.key] = source.client.fetch_data_values(
                source.dataset_id, org_unit, period, timeout
            )
            logger.info("Dataset %s: %d values", source.dataset_id, len(raw_by_source[source.key]))
        except Exception as e:  # noqa: BLE001
            logger.warning("Error fetching data values for dataset %s: %s", source.dataset_id, e)
            raw_by_source[source.key] = []

    progress("Aligning data element values...", 70)
    records = align(
        groups,
        [s.key for s in sources],
        raw_by_source,
        org_unit=org_unit,
        org_unit_name=org_unit_name,
        period=period,
    )
    progress("Classification complete", 100)
    return records


def _log_summary(summary: ComparisonSummary, records: Sequence[AlignedRecord]) -> None:
    logger.info(
        "Comparison summary: %d records, %d valid, %d mismatched, %d missing, %d out of range",
        summary.total_records,
        summary.valid_records,
        summary.mismatched_records,
        summary.missing_records,
        summary.out_of_range_records,
    )
    for r in [r for r in records if r.status == RecordStatus.MISMATCH][:5]:
        vals = ", ".join(v for v in r.values.values() if v is not None)
        logger.debug("Mismatch %s [%s]: [%s] (variance: %s)", r.logical_name, r.period, vals, r.variance)


def run_comparison(
    sources: Sequence[ComparisonSource],
    groups: Sequence[LogicalElementGroup],
    org_unit: str,
    period: Union[str, Sequence[str]],
    org_unit_name: str = "",
    on_progress: Optional[ProgressCallback] = None,
    timeout: float = DEFAULT_FETCH_TIMEOUT,
) -> ComparisonReport:
    """Compare logical elements across sources for one org unit.

    Args:
        sources: Datasets to compare (typically two or three).
        groups: Logical element mapping keyed by ``ComparisonSource.key``.
        org_unit: Org unit UID.
        period: One period or a list of periods.
        org_unit_name: Display name; resolved from the first source when
            missing or a UID.
        on_progress: Optional ``(step_label, percent)`` callback.
        timeout: Per-request timeout in seconds.

    Returns:
        ComparisonReport with the records of every period. A failing period in
        a multi-period run is logged and skipped.
    """
    if not sources:
        raise RunError("compare", "No datasets selected for comparison")
    periods = [period] if isinstance(period, str) else list(period)
    progress = ProgressReporter(on_progress)

    progress("Preparing dataset information...", 0)
    org_unit_name = _resolve_org_unit_name(sources[0].client, org_unit, org_unit_name)

    records: List[AlignedRecord] = []
    summary = ComparisonSummary()
    processed: List[str] = []
    for i, pe in enumerate(periods):
        period_progress = progress.scaled(
            5 + 95 * i / len(periods),
            5 + 95 * (i + 1) / len(periods),
            prefix=f"Period {i + 1}/{len(periods)}: " if len(periods) > 1 else "",
        )
        try:
            period_records = _compare_period(
                sources, groups, org_unit, org_unit_name, pe, timeout, period_progress
            )
        except DQError as e:
            if len(periods) == 1:
                raise
            logger.error("Error processing period %s: %s", pe, e)
            continue
        records.extend(period_records)
        summary = summary + summarize(period_records)
        processed.append(pe)

    _log_summary(summary, records)
    progress("Comparison complete!", 100)
    return ComparisonReport(
        records=records,
        summary=summary,
        periods=processed,
        dataset_ids=[s.dataset_id for s in sources],
    )


# ============================================================================
# DQ run
# ============================================================================


@dataclass
class DQRunParams:
    """Inputs of a DQ run.

    Attributes:
        dataset_id: Source dataset.
        data_elements: Data elements of interest (used for names and analytics).
        org_units: Source org units.
        period: DHIS2 period (e.g. "202406").
        element_mapping: Source element id -> destination element id; only
            mapped elements are published.
        org_unit_mapping: Source org unit -> destination org unit; unmapped
            org units keep their id.
        block_on_errors: Skip publishing when validation has error failures.
    """

    dataset_id: str
    data_elements: List[str]
    org_units: List[str]
    period: str
    element_mapping: Dict[str, str] = field(default_factory=dict)
    org_unit_mapping: Dict[str, str] = field(default_factory=dict)
    block_on_errors: bool = True
    timeout: float = DEFAULT_FETCH_TIMEOUT
    max_workers: int = DEFAULT_FETCH_WORKERS


@dataclass
class PublishResult:
    posted: int
    skipped_unmapped: int = 0
    conflicts: List[Any] = field(default_factory=list)
    import_summary: Dict[str, Any] = field(default_factory=dict)


@dataclass
class DQRunResult:
    values: List[RawDataValue]
    validation: ValidationReport
    names: MetadataNames
    used_fallback: bool = False
    failed_org_units: Dict[str, str] = field(default_factory=dict)
    counts_by_org_unit: Dict[str, int] = field(default_factory=dict)
    publish: Optional[PublishResult] = None
    publish_blocked: bool = False
    duration_seconds: float = 0.0


def map_for_destination(
    values: Sequence[RawDataValue],
    element_mapping: Dict[str, str],
    org_unit_mapping: Dict[str, str],
    period: str,
) -> List[RawDataValue]:
    """Translate source values to destination ids; unmapped elements are dropped."""
    mapped: List[RawDataValue] = []
    for dv in values:
        target = element_mapping.get(dv.data_element)
        if not target:
            continue
        mapped.append(
            RawDataValue(
                data_element=target,
                org_unit=org_unit_mapping.get(dv.org_unit, dv.org_unit),
                period=period,
                value=dv.value,
            )
        )
    return mapped


def _publish(destination: Dhis2Api, params: DQRunParams, values: Sequence[RawDataValue]) -> PublishResult:
    try:
        user = destination.me()
        logger.info("Destination authenticated as: %s", user.get("displayName", "?"))
    except Exception as e:  # noqa: BLE001
        raise RunError("publish", f"Destination login failed: {e}") from e

    mapped = map_for_destination(values, params.element_mapping, params.org_unit_mapping, params.period)
    skipped = len(values) - len(mapped)
    logger.info("Publishing %d data values (%d unmapped skipped)", len(mapped), skipped)
    if not mapped:
        return PublishResult(posted=0, skipped_unmapped=skipped)
    try:
        response = destination.post_data_values(mapped)
    except Exception as e:  # noqa: BLE001
        raise RunError("publish", f"Failed to post to destination: {e}") from e

    import_count = response.get("importCount") or (response.get("response") or {}).get("importCount") or {}
    return PublishResult(
        posted=int(import_count.get("imported", len(mapped))),
        skipped_unmapped=skipped,
        conflicts=list(response.get("conflicts") or []),
        import_summary=response,
    )


def run_dq(
    params: DQRunParams,
    source: Dhis2Api,
    engine: ValidationEngine,
    destination: Optional[Dhis2Api] = None,
    on_progress: Optional[ProgressCallback] = None,
    cancel_event: Optional[threading.Event] = None,
) -> DQRunResult:
    """Fetch, validate and optionally publish one dataset/period.

    Raises:
        RunError: With the failing stage; names are resolved where possible.
    """
    started = time.monotonic()
    progress = ProgressReporter(on_progress)

    progress("Authenticating with DHIS2 server...", 5)
    try:
        user = source.me()
    except Exception as e:  # noqa: BLE001
        raise RunError("login", f"Login failed: {e}") from e
    logger.info("Authenticated as: %s", user.get("displayName", "?"))

    progress("Fetching metadata for name resolution...", 15)
    try:
        names = source.fetch_metadata_names(params.data_elements, params.org_units, [params.dataset_id])
    except Exception as e:  # noqa: BLE001
        logger.warning("Could not fetch metadata for name resolution, using UIDs: %s", e)
        names = MetadataNames()
    logger.info(
        "Dataset: %s; org units: %s",
        names.dataset(params.dataset_id),
        ", ".join(names.org_unit(ou) for ou in params.org_units),
    )

    outcome = fetch_with_fallback(
        source,
        params.dataset_id,
        params.org_units,
        params.period,
        params.data_elements,
        names=names,
        timeout=params.timeout,
        max_workers=params.max_workers,
        cancel_event=cancel_event,
        progress=progress.scaled(20, 60),
    )

    progress("Running validation rules...", 65)
    try:
        report = engine.validate(outcome.values, dataset_id=params.dataset_id)
    except Exception as e:  # noqa: BLE001
        raise RunError("validate", str(e)) from e

    result = DQRunResult(
        values=outcome.values,
        validation=report,
        names=names,
        used_fallback=outcome.used_fallback,
        failed_org_units=outcome.failed_org_units,
        counts_by_org_unit=outcome.counts_by_org_unit,
    )

    if destination is not None:
        if params.block_on_errors and report.blocks_publish():
            logger.warning(
                "Publishing skipped: %d error-severity validation failures", report.get_error_count()
            )
            result.publish_blocked = True
        else:
            progress("Posting data to destination DHIS2...", 85)
            result.publish = _publish(destination, params, outcome.values)

    result.duration_seconds = time.monotonic() - started
    progress("Processing completed!", 100)
    return result
