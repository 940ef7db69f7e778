"""Shared helpers for rule checks."""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from dhis2_dq.core.enums import SampleSource, Severity
from dhis2_dq.core.models import RawDataValue
from dhis2_dq.core.utils import parse_number
from ..models import ValidationResult, ValidationRule


@dataclass
class EvaluationContext:
    """Values visible to checks during one validation run.

    Attributes:
        batch: All values under validation.
        historical: Reference values for outlier detection.
        sample_source: Which of the two feeds the outlier sample.
    """

    batch: Sequence[RawDataValue]
    historical: Sequence[RawDataValue] = ()
    sample_source: SampleSource = SampleSource.AUTO
    _by_key: Dict[Tuple[str, str, str], RawDataValue] = field(default_factory=dict, repr=False)
    _samples: Dict[Tuple[str, str], List[float]] = field(default_factory=dict, repr=False)

    def __post_init__(self) -> None:
        # first value wins for duplicate (element, period, org unit) keys
        for dv in self.batch:
            self._by_key.setdefault((dv.data_element, dv.period, dv.org_unit), dv)
        samples: Dict[Tuple[str, str], List[float]] = defaultdict(list)
        for dv in self.sample_values():
            number = parse_number(dv.value)
            if number is not None:
                samples[(dv.data_element, dv.org_unit)].append(number)
        self._samples = dict(samples)

    def sample_values(self) -> Sequence[RawDataValue]:
        if self.sample_source == SampleSource.HISTORICAL:
            return self.historical
        if self.sample_source == SampleSource.CURRENT_BATCH:
            return self.batch
        return self.historical if len(self.historical) > 0 else self.batch

    def find(self, data_element: str, period: str, org_unit: str) -> Optional[RawDataValue]:
        return self._by_key.get((data_element, period, org_unit))

    def numeric_sample(self, data_element: str, org_unit: str) -> List[float]:
        return list(self._samples.get((data_element, org_unit), ()))


def make_result(
    rule: ValidationRule,
    data_value: RawDataValue,
    *,
    passed: bool,
    message: str,
    severity: Optional[Severity] = None,
    value: Any = None,
    expected_value: Optional[float] = None,
    suggested_fix: Optional[str] = None,
    evaluation_error: bool = False,
) -> ValidationResult:
    """Build a ValidationResult for ``rule`` on ``data_value``.

    ``value`` defaults to the raw string value; severity defaults to the rule's.
    """
    return ValidationResult(
        rule_id=rule.id,
        rule_name=rule.name,
        rule_type=rule.rule_type,
        severity=severity or rule.severity,
        passed=passed,
        message=message,
        data_element=data_value.data_element,
        value=data_value.value if value is None else value,
        expected_value=expected_value,
        suggested_fix=suggested_fix,
        org_unit=data_value.org_unit,
        period=data_value.period,
        evaluation_error=evaluation_error,
    )
