"""Orchestrated runs over DHIS2 instances.

- **Comparison**: run_comparison() across two or more datasets
- **DQ run**: run_dq() fetches with analytics fallback, validates, publishes
- **Progress**: ProgressReporter wraps the optional on_progress callback
"""

from __future__ import annotations

from .fetch import FetchOutcome, fetch_per_org_unit, fetch_with_fallback
from .progress import ProgressCallback, ProgressReporter
from .runner import (
    ComparisonSource,
    DQRunParams,
    DQRunResult,
    PublishResult,
    map_for_destination,
    run_comparison,
    run_dq,
)

__all__ = [
    "ComparisonSource",
    "DQRunParams",
    "DQRunResult",
    "PublishResult",
    "FetchOutcome",
    "ProgressCallback",
    "ProgressReporter",
    "fetch_per_org_unit",
    "fetch_with_fallback",
    "map_for_destination",
    "run_comparison",
    "run_dq",
]
