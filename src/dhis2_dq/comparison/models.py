"""Comparison data models.

This module defines the structures produced by a comparison run:
- AlignedRecord: one logical element for one org unit/period across all sources
- ComparisonSummary: per-status record counts
- ComparisonReport: records plus summary, with export helpers
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

import pandas as pd

from dhis2_dq.core.enums import RecordStatus


@dataclass(frozen=True)
class AlignedRecord:
    """Values of one logical element contributed by each configured source.

    Attributes:
        group_id: LogicalElementGroup id.
        logical_name: Indicator name.
        org_unit: Org unit UID.
        org_unit_name: Resolved display name (falls back to the UID).
        period: DHIS2 period identifier (e.g. "202406").
        values: Source label -> value (None when absent), in source order.
        status: Classification of ``values``.
        variance: max - min of the values, only for numeric mismatches.
        consensus_value: Most common value when one exists.
        element_ids: Source label -> data element id used for that source.
    """

    group_id: str
    logical_name: str
    org_unit: str
    org_unit_name: str
    period: str
    values: Dict[str, Optional[str]]
    status: RecordStatus
    variance: Optional[float] = None
    consensus_value: Optional[str] = None
    element_ids: Dict[str, Optional[str]] = field(default_factory=dict)

    def to_dict(self) -> Dict:
        data = asdict(self)
        data["status"] = self.status.value
        return data


@dataclass
class ComparisonSummary:
    """Aggregate counts of a comparison run.

    Invariant: valid + mismatched + missing + out_of_range == total.
    """

    total_records: int = 0
    valid_records: int = 0
    mismatched_records: int = 0
    missing_records: int = 0
    out_of_range_records: int = 0

    def count(self, status: RecordStatus) -> None:
        """Add one record to the bucket of ``status``.

        CONSENSUS records are counted as valid since all sources agreed.
        """
        self.total_records += 1
        if status in (RecordStatus.VALID, RecordStatus.CONSENSUS):
            self.valid_records += 1
        elif status == RecordStatus.MISMATCH:
            self.mismatched_records += 1
        elif status == RecordStatus.MISSING:
            self.missing_records += 1
        elif status == RecordStatus.OUT_OF_RANGE:
            self.out_of_range_records += 1

    def __add__(self, other: "ComparisonSummary") -> "ComparisonSummary":
        return ComparisonSummary(
            total_records=self.total_records + other.total_records,
            valid_records=self.valid_records + other.valid_records,
            mismatched_records=self.mismatched_records + other.mismatched_records,
            missing_records=self.missing_records + other.missing_records,
            out_of_range_records=self.out_of_range_records + other.out_of_range_records,
        )

    @property
    def issue_count(self) -> int:
        return self.mismatched_records + self.missing_records + self.out_of_range_records

    def is_conserved(self) -> bool:
        return self.total_records == (
            self.valid_records
            + self.mismatched_records
            + self.missing_records
            + self.out_of_range_records
        )


@dataclass
class ComparisonReport:
    """Records and summary of a comparison run over one or more periods."""

    records: List[AlignedRecord]
    summary: ComparisonSummary
    periods: List[str] = field(default_factory=list)
    dataset_ids: List[str] = field(default_factory=list)

    def get_records(self, status: Optional[RecordStatus] = None) -> List[AlignedRecord]:
        """Get records, optionally filtered by status."""
        return [r for r in self.records if status is None or r.status == status]

    def to_dataframe(self) -> pd.DataFrame:
        """Flatten records into a DataFrame, one column per source label."""
        rows = []
        for r in self.records:
            row = {
                "group_id": r.group_id,
                "logical_name": r.logical_name,
                "org_unit": r.org_unit,
                "org_unit_name": r.org_unit_name,
                "period": r.period,
                "status": r.status.value,
                "variance": r.variance,
                "consensus_value": r.consensus_value,
            }
            row.update(r.values)
            rows.append(row)
        return pd.DataFrame(rows)

    def to_json(self) -> str:
        """Generate a JSON comparison report."""
        report_data = {
            "metadata": {
                "periods": self.periods,
                "dataset_ids": self.dataset_ids,
                "generated_at": datetime.now().isoformat(),
            },
            "summary": asdict(self.summary),
            "records": [r.to_dict() for r in self.records],
        }
        return json.dumps(report_data, indent=2, ensure_ascii=False)

    def to_console_summary(self, max_examples: int = 5) -> str:
        s = self.summary
        lines = [
            "Comparison Summary:",
            f"  Periods: {', '.join(self.periods) if self.periods else '-'}",
            f"  Total Records: {s.total_records}",
            f"  Valid (matching): {s.valid_records}",
            f"  Mismatched: {s.mismatched_records}",
            f"  Missing data: {s.missing_records}",
            f"  Out of range: {s.out_of_range_records}",
        ]
        mismatches = self.get_records(RecordStatus.MISMATCH)
        if mismatches:
            lines.append("")
            lines.append("Mismatched records:")
            for r in mismatches[:max_examples]:
                vals = ", ".join(v for v in r.values.values() if v is not None)
                lines.append(f"   - {r.logical_name} [{r.period}]: [{vals}] (variance: {r.variance})")
        return "\n".join(lines)
