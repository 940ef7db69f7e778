"""Validation rule checks interface.

Each rule type has one check class in this package. A check evaluates one
rule against one data value and always returns a ValidationResult; it never
raises for data problems (bad values and bad conditions become failing
results).

To add a rule type:

1. Add a member to ``RuleType`` in ``dhis2_dq.core.enums``
2. Create a module here with a class implementing the RuleCheck protocol
3. Register the class in ``RULE_CHECKS`` in ``validation/registry.py``
   (the registry refuses to import when a RuleType has no check)

Example:
    ```python
    # checks/my_check.py
    from dhis2_dq.core.models import RawDataValue
    from ..models import ValidationResult, ValidationRule
    from ._common import EvaluationContext, make_result

    class MyCheck:
        def evaluate(
            self,
            rule: ValidationRule,
            data_value: RawDataValue,
            context: EvaluationContext,
        ) -> ValidationResult:
            return make_result(rule, data_value, passed=True, message="ok")
    ```
"""

from __future__ import annotations

from typing import Protocol

from dhis2_dq.core.models import RawDataValue
from ..models import ValidationResult, ValidationRule
from ._common import EvaluationContext


class RuleCheck(Protocol):
    """Protocol defining the interface for rule checks.

    Methods:
        evaluate: Run the rule against one data value.
    """

    def evaluate(
        self,
        rule: ValidationRule,
        data_value: RawDataValue,
        context: EvaluationContext,
    ) -> ValidationResult:
        """Evaluate ``rule`` on ``data_value``.

        Args:
            rule: Active rule whose data elements include the value's element.
            data_value: Value under test.
            context: Full batch, historical sample and lookup helpers.

        Returns:
            A ValidationResult (passed or failed).
        """
        ...


__all__ = ["RuleCheck", "EvaluationContext"]
