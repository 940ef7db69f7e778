"""Merge validation range failures into comparison records.

The classifier never produces ``out_of_range``; that bucket is filled here
from failed range-rule results when a combined report is built.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Iterable, List, Sequence, Set, Tuple

from dhis2_dq.core.enums import RecordStatus, RuleType
from dhis2_dq.core.errors import ClassificationError
from dhis2_dq.validation.models import ValidationResult
from .classifier import summarize
from .models import AlignedRecord, ComparisonReport


def _range_failure_keys(results: Iterable[ValidationResult]) -> Set[Tuple[str, str, str]]:
    keys = set()
    for r in results:
        if r.rule_type == RuleType.RANGE and not r.passed and r.data_element:
            keys.add((r.data_element, r.org_unit or "", r.period or ""))
    return keys


def apply_range_failures(
    records: Sequence[AlignedRecord], validation_results: Iterable[ValidationResult]
) -> List[AlignedRecord]:
    """Return records re-labelled ``out_of_range`` where a range rule failed.

    A record matches a failed result when one of its element ids, its org unit
    and its period equal the result's data element, org unit and period.
    Results without org unit/period information match on the element only.
    """
    results = list(validation_results)
    keys = _range_failure_keys(results)
    element_only = {
        r.data_element
        for r in results
        if r.rule_type == RuleType.RANGE and not r.passed and r.data_element
        and not r.org_unit and not r.period
    }
    merged: List[AlignedRecord] = []
    for record in records:
        element_ids = {e for e in record.element_ids.values() if e}
        hit = any((e, record.org_unit, record.period) in keys for e in element_ids)
        if hit or element_ids & element_only:
            merged.append(replace(record, status=RecordStatus.OUT_OF_RANGE))
        else:
            merged.append(record)
    return merged


def combine(report: ComparisonReport, validation_results: Iterable[ValidationResult]) -> ComparisonReport:
    """Combined comparison report with range failures merged in.

    Raises:
        ClassificationError: A record does not carry one value per dataset.
    """
    if report.dataset_ids:
        expected = len(report.dataset_ids)
        for record in report.records:
            if len(record.values) != expected:
                raise ClassificationError(
                    f"Record {record.group_id} ({record.period}) has {len(record.values)} "
                    f"values for {expected} datasets"
                )
    records = apply_range_failures(report.records, validation_results)
    return ComparisonReport(
        records=records,
        summary=summarize(records),
        periods=list(report.periods),
        dataset_ids=list(report.dataset_ids),
    )
