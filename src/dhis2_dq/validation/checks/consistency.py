"""Consistency validation check.

Related data elements must satisfy the rule's condition for the same org unit
and period, e.g. total births = live births + still births::

    data_elements: [LIVE_BIRTHS, STILL_BIRTHS, TOTAL_BIRTHS]
    condition: DE1 + DE2 == DE3

``DE{i}`` is the value of the i-th configured element in the batch; an element
with no value for the org unit/period counts as 0. Conditions that cannot be
parsed fail closed with ``evaluation_error=True``.
"""

from __future__ import annotations

import logging
from functools import lru_cache

from dhis2_dq.core.enums import Severity
from dhis2_dq.core.errors import ExpressionError
from dhis2_dq.core.models import RawDataValue
from dhis2_dq.core.utils import format_number, parse_number
from ..expression import Condition, evaluate, parse_condition
from ..models import ValidationResult, ValidationRule
from ._common import EvaluationContext, make_result

logger = logging.getLogger(__name__)


@lru_cache(maxsize=256)
def _parse(text: str) -> Condition:
    return parse_condition(text)


class ConsistencyCheck:
    """Validate a condition over the rule's data elements."""

    def evaluate(
        self,
        rule: ValidationRule,
        data_value: RawDataValue,
        context: EvaluationContext,
    ) -> ValidationResult:
        if not rule.condition or not rule.condition.strip():
            return make_result(
                rule,
                data_value,
                passed=False,
                severity=Severity.ERROR,
                message="No consistency condition defined",
                suggested_fix="Add a condition such as 'DE1 + DE2 == DE3' to the rule",
                evaluation_error=True,
            )

        try:
            condition = _parse(rule.condition)
            for index in condition.references():
                if index > len(rule.data_elements):
                    raise ExpressionError(
                        f"DE{index} is not configured (rule has {len(rule.data_elements)} data elements)"
                    )

            def lookup(index: int) -> float:
                element = rule.data_elements[index - 1]
                found = context.find(element, data_value.period, data_value.org_unit)
                if found is None or found.value is None or found.value == "":
                    return 0.0
                number = parse_number(found.value)
                if number is None:
                    raise ExpressionError(f"DE{index} ({element}) is not numeric: {found.value!r}")
                return number

            outcome = evaluate(condition, lookup)
        except ExpressionError as e:
            logger.debug("Rule %s: cannot evaluate %r: %s", rule.id, rule.condition, e)
            return make_result(
                rule,
                data_value,
                passed=False,
                severity=Severity.ERROR,
                message=f"Error evaluating condition '{rule.condition}': {e}",
                suggested_fix="Fix the rule condition or the referenced values",
                evaluation_error=True,
            )

        expected = None
        if condition.op == "==" and condition.left_is_arithmetic:
            expected = outcome.left

        suggested_fix = None
        if not outcome.passed and expected is not None:
            suggested_fix = f"Expected value: {expected:.0f}"

        message = (
            f"Consistency check passed: {rule.condition}"
            if outcome.passed
            else f"Consistency check failed: {rule.condition} "
            f"({format_number(outcome.left)} vs {format_number(outcome.right)})"
        )
        number = parse_number(data_value.value)
        return make_result(
            rule,
            data_value,
            passed=outcome.passed,
            message=message,
            value=number,
            expected_value=expected,
            suggested_fix=suggested_fix,
        )
