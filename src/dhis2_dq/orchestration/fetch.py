"""Two-tier fetch: dataValueSets per org unit, analytics as fallback.

Some DHIS2 deployments only serve one of the two APIs reliably. Raw values
are requested per org unit, concurrently; individual org unit failures are
logged and tolerated. Only when no org unit returned any value is the
analytics endpoint queried for the same dimensions.
"""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Protocol, Sequence

from dhis2_dq.core.enums import FetchErrorKind
from dhis2_dq.core.errors import FetchError, RunCancelled, RunError
from dhis2_dq.core.models import RawDataValue
from dhis2_dq.sources.client import AnalyticsResult, MetadataNames
from dhis2_dq.validation.config import DEFAULT_FETCH_TIMEOUT, DEFAULT_FETCH_WORKERS
from .progress import ProgressReporter

logger = logging.getLogger(__name__)

_CANCEL_POLL_SECONDS = 0.2


class DataSource(Protocol):
    """Fetch adapter used by the orchestrator (implemented by Dhis2Client)."""

    def fetch_data_values(
        self, dataset_id: str, org_unit: str, period: str, timeout: Optional[float] = None
    ) -> List[RawDataValue]: ...

    def fetch_analytics(
        self,
        data_elements: Sequence[str],
        org_units: Sequence[str],
        period: str,
        timeout: Optional[float] = None,
    ) -> AnalyticsResult: ...


@dataclass
class FetchOutcome:
    values: List[RawDataValue]
    used_fallback: bool = False
    failed_org_units: Dict[str, str] = field(default_factory=dict)
    counts_by_org_unit: Dict[str, int] = field(default_factory=dict)


def fetch_per_org_unit(
    source: DataSource,
    dataset_id: str,
    org_units: Sequence[str],
    period: str,
    timeout: float = DEFAULT_FETCH_TIMEOUT,
    max_workers: int = DEFAULT_FETCH_WORKERS,
    cancel_event: Optional[threading.Event] = None,
) -> FetchOutcome:
    """Fetch raw values for each org unit concurrently.

    Results keep the order of ``org_units``. Any failure for one org unit,
    including a request still running ``timeout`` seconds after it started,
    is recorded in ``failed_org_units`` and does not affect the others.

    Raises:
        RunCancelled: If ``cancel_event`` is set before all fetches finish.
    """
    by_org_unit: Dict[str, List[RawDataValue]] = {}
    failed: Dict[str, str] = {}
    started: Dict[str, float] = {}

    def _fetch(ou: str) -> List[RawDataValue]:
        started[ou] = time.monotonic()
        return source.fetch_data_values(dataset_id, ou, period, timeout)

    pool = ThreadPoolExecutor(max_workers=max(1, min(max_workers, len(org_units) or 1)))
    try:
        futures: Dict[Future, str] = {pool.submit(_fetch, ou): ou for ou in org_units}
        pending = set(futures)
        while pending:
            if cancel_event is not None and cancel_event.is_set():
                raise RunCancelled("fetch")
            done, pending = wait(pending, timeout=_CANCEL_POLL_SECONDS, return_when=FIRST_COMPLETED)
            for future in done:
                ou = futures[future]
                try:
                    by_org_unit[ou] = future.result()
                except FetchError as e:
                    logger.warning("No data for org unit %s: %s", ou, e)
                    failed[ou] = str(e)
                except Exception as e:  # noqa: BLE001
                    logger.error("Unexpected error fetching org unit %s: %s: %s", ou, type(e).__name__, e)
                    failed[ou] = f"{type(e).__name__}: {e}"

            if timeout:
                now = time.monotonic()
                for future in list(pending):
                    ou = futures[future]
                    if ou in started and now - started[ou] > timeout:
                        pending.discard(future)
                        error = FetchError(
                            FetchErrorKind.TIMEOUT, f"No complete response within {timeout:g} seconds"
                        )
                        logger.warning("No data for org unit %s: %s", ou, error)
                        failed[ou] = str(error)
    finally:
        pool.shutdown(wait=False, cancel_futures=True)

    values: List[RawDataValue] = []
    counts: Dict[str, int] = {}
    for ou in org_units:
        ou_values = by_org_unit.get(ou, [])
        counts[ou] = len(ou_values)
        values.extend(ou_values)
    return FetchOutcome(values=values, failed_org_units=failed, counts_by_org_unit=counts)


def fetch_with_fallback(
    source: DataSource,
    dataset_id: str,
    org_units: Sequence[str],
    period: str,
    data_elements: Sequence[str],
    names: Optional[MetadataNames] = None,
    timeout: float = DEFAULT_FETCH_TIMEOUT,
    max_workers: int = DEFAULT_FETCH_WORKERS,
    cancel_event: Optional[threading.Event] = None,
    progress: Optional[ProgressReporter] = None,
) -> FetchOutcome:
    """Fetch raw values, falling back to analytics when no org unit has data.

    Raises:
        RunError: (stage "fetch") when the fallback fails or returns no rows;
            the message uses resolved names where available.
        RunCancelled: If the caller cancels during the primary fetch.
    """
    names = names or MetadataNames()
    progress = progress or ProgressReporter()
    if not org_units:
        raise RunError("fetch", "No org units selected", {"dataset": names.dataset(dataset_id)})

    progress("Fetching raw data values...", 0)
    outcome = fetch_per_org_unit(
        source, dataset_id, org_units, period, timeout, max_workers, cancel_event
    )
    if outcome.values:
        logger.info(
            "Fetched %d data values from %d org units (%d failed)",
            len(outcome.values),
            len(org_units),
            len(outcome.failed_org_units),
        )
        progress("Raw data values fetched", 100)
        return outcome

    logger.warning(
        "DataValueSets returned no data for dataset %s, period %s, org units %s; "
        "falling back to analytics",
        names.dataset(dataset_id),
        period,
        ", ".join(names.org_unit(ou) for ou in org_units),
    )
    progress("DataValueSets returned no data, trying analytics...", 50)

    if cancel_event is not None and cancel_event.is_set():
        raise RunCancelled("fetch")

    resolved = {
        "dataset": names.dataset(dataset_id),
        "period": period,
        "org_units": ", ".join(names.org_unit(ou) for ou in org_units),
    }
    if not data_elements:
        raise RunError("fetch", "No data elements to query in the analytics fallback", resolved)

    try:
        analytics = source.fetch_analytics(data_elements, org_units, period, timeout)
    except Exception as e:  # noqa: BLE001
        primary = "; ".join(f"{names.org_unit(ou)}: {msg}" for ou, msg in outcome.failed_org_units.items())
        raise RunError(
            "fetch",
            f"Both DataValueSets and Analytics APIs failed for {resolved['dataset']} "
            f"({resolved['org_units']}, {period}). DataValueSets: {primary or 'no data'}. "
            f"Analytics: {e}",
            resolved,
        ) from e

    if not analytics.values:
        ou_names = ", ".join(
            names.org_units.get(ou) or analytics.item_names.get(ou) or ou for ou in org_units
        )
        period_name = analytics.item_names.get(period, period)
        resolved.update({"org_units": ou_names, "period": period_name})
        raise RunError(
            "fetch",
            f"Source system does not have data for {ou_names} in {period_name} "
            f"for the selected data elements.",
            resolved,
        )

    logger.info("Analytics fallback returned %d data points", len(analytics.values))
    progress("Analytics fallback data fetched", 100)
    counts: Dict[str, int] = {}
    for dv in analytics.values:
        counts[dv.org_unit] = counts.get(dv.org_unit, 0) + 1
    return FetchOutcome(
        values=analytics.values,
        used_fallback=True,
        failed_org_units=outcome.failed_org_units,
        counts_by_org_unit=counts,
    )
