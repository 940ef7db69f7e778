"""Validation rule registry and engine.

This module orchestrates rule evaluation:
- RULE_CHECKS: one check instance per RuleType (exhaustive)
- ValidationEngine: evaluates a fixed rule set against batches of values
- run_validation(): one-shot evaluation returning the list of results
- print_report(): displays validation results to console
"""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional, Sequence

from dhis2_dq.core.enums import RuleType, SampleSource, Severity
from dhis2_dq.core.models import RawDataValue
from .checks import RuleCheck
from .checks._common import EvaluationContext, make_result
from .checks.consistency import ConsistencyCheck
from .checks.mandatory import MandatoryCheck
from .checks.outlier import OutlierCheck
from .checks.range_check import RangeCheck
from .models import ValidationReport, ValidationResult, ValidationRule

logger = logging.getLogger(__name__)

# Registry of checks by rule type
RULE_CHECKS: Dict[RuleType, RuleCheck] = {
    RuleType.RANGE: RangeCheck(),
    RuleType.MANDATORY: MandatoryCheck(),
    RuleType.CONSISTENCY: ConsistencyCheck(),
    RuleType.OUTLIER: OutlierCheck(),
}

_unregistered = set(RuleType) - set(RULE_CHECKS)
if _unregistered:
    raise RuntimeError(f"No check registered for rule types: {sorted(t.value for t in _unregistered)}")


class ValidationEngine:
    """Evaluate a rule set against raw data values.

    The engine holds only its (immutable) inputs, so one instance per run or
    per rule set keeps concurrent runs isolated.

    Args:
        rules: Rules to evaluate; inactive rules are ignored.
        historical_values: Reference values for outlier detection.
        sample_source: Where outlier samples come from (default AUTO:
            historical values when given, else the current batch).
        checks: Override of the check registry (tests).

    Examples:
        >>> engine = ValidationEngine(catalog.active_rules("dsMonthly"))
        >>> report = engine.validate(values)
        >>> report.has_errors()
        False
    """

    def __init__(
        self,
        rules: Iterable[ValidationRule],
        historical_values: Optional[Sequence[RawDataValue]] = None,
        sample_source: SampleSource = SampleSource.AUTO,
        checks: Optional[Dict[RuleType, RuleCheck]] = None,
    ) -> None:
        self.rules: List[ValidationRule] = [r for r in rules if r.is_active]
        self.historical_values: Sequence[RawDataValue] = tuple(historical_values or ())
        self.sample_source = SampleSource(sample_source)
        self.checks = dict(checks) if checks is not None else RULE_CHECKS

    def run(self, values: Sequence[RawDataValue]) -> List[ValidationResult]:
        """Evaluate every active rule on every value of its data elements.

        Returns:
            One ValidationResult per (rule, matching value) pair, in rule order.
        """
        context = EvaluationContext(
            batch=values,
            historical=self.historical_values,
            sample_source=self.sample_source,
        )
        logger.info(
            "Running %d validation rules on %d data values", len(self.rules), len(values)
        )

        results: List[ValidationResult] = []
        for rule in self.rules:
            elements = set(rule.data_elements)
            relevant = [dv for dv in values if dv.data_element in elements]
            check = self.checks[rule.rule_type]
            for data_value in relevant:
                results.append(self._evaluate_one(check, rule, data_value, context))

        failures = sum(1 for r in results if not r.passed)
        logger.info("Validation completed: %d checks, %d failures", len(results), failures)
        return results

    def validate(
        self, values: Sequence[RawDataValue], dataset_id: Optional[str] = None
    ) -> ValidationReport:
        """Run and wrap the results in a ValidationReport."""
        return ValidationReport(
            results=self.run(values),
            rules_run=len(self.rules),
            values_checked=len(values),
            dataset_id=dataset_id,
        )

    @staticmethod
    def _evaluate_one(
        check: RuleCheck,
        rule: ValidationRule,
        data_value: RawDataValue,
        context: EvaluationContext,
    ) -> ValidationResult:
        try:
            return check.evaluate(rule, data_value, context)
        except Exception as e:  # noqa: BLE001
            logger.error(
                "Rule %s (%s) failed on %s/%s/%s: %s",
                rule.id,
                rule.rule_type.value,
                data_value.data_element,
                data_value.org_unit,
                data_value.period,
                e,
            )
            return make_result(
                rule,
                data_value,
                passed=False,
                severity=Severity.ERROR,
                message=f"Rule evaluation failed: {e}",
                evaluation_error=True,
            )


def run_validation(
    values: Sequence[RawDataValue],
    active_rules: Iterable[ValidationRule],
    historical_values: Optional[Sequence[RawDataValue]] = None,
    sample_source: SampleSource = SampleSource.AUTO,
) -> List[ValidationResult]:
    """Run the given rules on a batch of values.

    Args:
        values: Raw values under validation.
        active_rules: Rules to apply (inactive ones are skipped).
        historical_values: Optional reference sample for outlier rules.
        sample_source: Outlier sample selection.

    Returns:
        List of ValidationResult, one per (rule, relevant value) pair.

    Examples:
        >>> results = run_validation(values, catalog.active_rules())
        >>> [r.message for r in results if not r.passed]
    """
    engine = ValidationEngine(active_rules, historical_values, sample_source)
    return engine.run(values)


def print_report(report: ValidationReport, max_examples: int = 20) -> None:
    """Print validation report to console.

    Displays a summary followed by the failed checks.
    """
    print(report.summary())
    print()

    failed = report.get_failures()
    if not failed:
        print("✅ All validation checks passed!")
        return

    print("Failed Checks:")
    for result in failed[:max_examples]:
        icon = {"error": "❌", "warning": "⚠️", "info": "ℹ️"}[result.severity.value]
        print(
            f"{icon} {result.rule_name} ({result.severity.value}) "
            f"{result.data_element}/{result.org_unit}/{result.period}: {result.message}"
        )
        if result.suggested_fix:
            print(f"   - {result.suggested_fix}")
    if len(failed) > max_examples:
        print(f"   ... {len(failed) - max_examples} more")
