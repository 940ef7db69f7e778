"""Outlier validation check.

Z-score of a value against the sample of numeric values for the same data
element and org unit. The sample comes from historical data or the current
batch depending on the engine's sample source. Fewer than three samples pass
with an "insufficient data" message; non-numeric values are skipped (pass).
"""

from __future__ import annotations

import numpy as np

from dhis2_dq.core.models import RawDataValue
from dhis2_dq.core.utils import parse_number
from ..config import DEFAULT_OUTLIER_THRESHOLD, MIN_OUTLIER_SAMPLES
from ..models import ValidationResult, ValidationRule
from ._common import EvaluationContext, make_result


class OutlierCheck:
    """Flag values more than ``threshold`` standard deviations from the mean."""

    def evaluate(
        self,
        rule: ValidationRule,
        data_value: RawDataValue,
        context: EvaluationContext,
    ) -> ValidationResult:
        number = parse_number(data_value.value)
        if number is None:
            return make_result(
                rule,
                data_value,
                passed=True,
                message="Non-numeric value, outlier check skipped",
            )

        sample = context.numeric_sample(data_value.data_element, data_value.org_unit)
        if len(sample) < MIN_OUTLIER_SAMPLES:
            return make_result(
                rule,
                data_value,
                passed=True,
                message="Insufficient data for outlier detection",
                value=number,
            )

        values = np.asarray(sample, dtype=float)
        mean = float(values.mean())
        std_dev = float(values.std())  # population (ddof=0)
        z_score = 0.0 if std_dev == 0 else abs(number - mean) / std_dev

        threshold = rule.threshold if rule.threshold else DEFAULT_OUTLIER_THRESHOLD
        passed = z_score <= threshold
        if passed:
            return make_result(
                rule,
                data_value,
                passed=True,
                message=f"Value is within normal range (Z-score: {z_score:.2f})",
                value=number,
                expected_value=mean,
            )
        return make_result(
            rule,
            data_value,
            passed=False,
            message=f"Potential outlier detected (Z-score: {z_score:.2f}, threshold: {threshold:g})",
            value=number,
            expected_value=mean,
            suggested_fix=(
                f"Mean value for this data element is {mean:.1f}. Verify if {data_value.value} is correct."
            ),
        )
