"""Comparison classifier.

Classifies the values one logical element received from each source:

- no value, or a single value: ``missing`` (a lone value cannot be corroborated)
- two or more identical values: ``valid``
- two or more differing values: ``mismatch``, annotated with the numeric spread
  (max - min) when every present value is a number

Values are compared as raw strings; numeric parsing only feeds the variance.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Mapping, Optional

from dhis2_dq.core.enums import RecordStatus
from dhis2_dq.core.utils import parse_number
from .models import AlignedRecord, ComparisonSummary


@dataclass(frozen=True)
class Classification:
    status: RecordStatus
    variance: Optional[float] = None


def present_values(values: Mapping[str, Optional[str]]) -> List[str]:
    """Non-null, non-empty values in source order."""
    return [v for v in values.values() if v is not None and v != ""]


def classify(values: Mapping[str, Optional[str]]) -> Classification:
    """Classify the per-source values of one aligned record.

    Never raises; degenerate input classifies as ``missing``.

    Examples:
        >>> classify({"dataset1Value": "42", "dataset2Value": "45", "dataset3Value": None})
        Classification(status=<RecordStatus.MISMATCH: 'mismatch'>, variance=3.0)
    """
    present = present_values(values)
    if len(present) < 2:
        return Classification(RecordStatus.MISSING)

    if len(set(present)) == 1:
        return Classification(RecordStatus.VALID)

    numbers = [parse_number(v) for v in present]
    if any(n is None for n in numbers):
        return Classification(RecordStatus.MISMATCH)
    return Classification(RecordStatus.MISMATCH, max(numbers) - min(numbers))


def summarize(records: Iterable[AlignedRecord]) -> ComparisonSummary:
    """Count records per status bucket."""
    summary = ComparisonSummary()
    for record in records:
        summary.count(record.status)
    return summary
