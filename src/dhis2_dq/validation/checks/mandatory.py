"""Mandatory field validation check."""

from __future__ import annotations

from dhis2_dq.core.models import RawDataValue
from dhis2_dq.core.utils import is_blank
from ..models import ValidationResult, ValidationRule
from ._common import EvaluationContext, make_result


class MandatoryCheck:
    """Validate that a required data element has a value."""

    def evaluate(
        self,
        rule: ValidationRule,
        data_value: RawDataValue,
        context: EvaluationContext,
    ) -> ValidationResult:
        if is_blank(data_value.value):
            return make_result(
                rule,
                data_value,
                passed=False,
                message="Required field is empty",
                suggested_fix="Enter a value for this required field",
            )
        return make_result(rule, data_value, passed=True, message="Required field has a value")
