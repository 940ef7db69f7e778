"""Range validation check.

Health counts are non-negative numbers. A negative value is always reported
as an error regardless of the rule's configured severity; exceeding the
rule's threshold is reported at the configured severity.
"""

from __future__ import annotations

from dhis2_dq.core.enums import Severity
from dhis2_dq.core.models import RawDataValue
from dhis2_dq.core.utils import format_number, parse_number
from ..models import ValidationResult, ValidationRule
from ._common import EvaluationContext, make_result


class RangeCheck:
    """Validate that a value is numeric, non-negative and within the threshold."""

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
                passed=False,
                message=f'Value "{data_value.value}" is not a number',
                suggested_fix="Enter a valid numeric value",
            )

        if number < 0:
            return make_result(
                rule,
                data_value,
                passed=False,
                severity=Severity.ERROR,
                message=f"Negative value detected: {format_number(number)}",
                value=number,
                suggested_fix="Remove negative sign or verify the value",
            )

        if rule.threshold is not None and number > rule.threshold:
            limit = format_number(rule.threshold)
            return make_result(
                rule,
                data_value,
                passed=False,
                message=f"Value {format_number(number)} exceeds threshold of {limit}",
                value=number,
                expected_value=rule.threshold,
                suggested_fix=f"Verify if value greater than {limit} is correct",
            )

        return make_result(
            rule,
            data_value,
            passed=True,
            message="Value is within acceptable range",
            value=number,
        )
