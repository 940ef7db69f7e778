"""Validation data models.

This module defines core data structures for rule-based validation:
- ValidationRule: a configured rule (range, mandatory, consistency, outlier)
- ValidationResult: outcome of one rule on one data value
- ValidationReport: aggregated results of a validation run
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import List, Optional, Sequence, Tuple, Union

from dhis2_dq.core.enums import RuleType, Severity

Number = Union[int, float]


@dataclass(frozen=True)
class ValidationRule:
    """A validation rule as stored in configuration.

    Attributes:
        id: Unique rule identifier.
        name: Human-readable rule name.
        rule_type: Kind of check to run.
        data_elements: Data element ids the rule applies to. For consistency
            rules, position i is referenced as ``DE{i+1}`` in ``condition``.
        condition: Consistency expression (e.g. "DE1 + DE2 == DE3").
        threshold: Upper bound for range rules, z-score limit for outlier rules.
        severity: Advisory severity reported on failing results.
        dataset_id: Restrict the rule to one dataset (None = all datasets).
        org_unit_levels: Org unit levels the rule is meant for.
        is_active: Inactive rules are never evaluated.

    Examples:
        >>> ValidationRule(
        ...     id="births",
        ...     name="Total births consistency",
        ...     rule_type=RuleType.CONSISTENCY,
        ...     data_elements=("LIVE", "STILL", "TOTAL"),
        ...     condition="DE1 + DE2 == DE3",
        ...     severity=Severity.ERROR,
        ... )
    """

    id: str
    name: str
    rule_type: RuleType
    data_elements: Tuple[str, ...] = ()
    condition: Optional[str] = None
    threshold: Optional[float] = None
    severity: Severity = Severity.WARNING
    dataset_id: Optional[str] = None
    org_unit_levels: Optional[Tuple[int, ...]] = None
    is_active: bool = True
    description: str = ""

    def applies_to_dataset(self, dataset_id: Optional[str]) -> bool:
        return self.dataset_id is None or dataset_id is None or self.dataset_id == dataset_id


@dataclass(frozen=True)
class ValidationResult:
    """Result of one rule on one data value.

    ``evaluation_error`` distinguishes "the check could not run" (bad
    condition, unexpected exception) from "the check ran and failed".
    """

    rule_id: str
    rule_name: str
    rule_type: RuleType
    severity: Severity
    passed: bool
    message: str
    data_element: Optional[str] = None
    value: Optional[Union[str, Number]] = None
    expected_value: Optional[Number] = None
    suggested_fix: Optional[str] = None
    org_unit: Optional[str] = None
    period: Optional[str] = None
    evaluation_error: bool = False

    def to_dict(self) -> dict:
        data = asdict(self)
        data["rule_type"] = self.rule_type.value
        data["severity"] = self.severity.value
        return data


@dataclass
class ValidationReport:
    """Aggregated validation results.

    Examples:
        >>> report = ValidationReport(results=engine.run(values))
        >>> report.has_errors()
        True
        >>> report.get_error_count()
        2
    """

    results: List[ValidationResult]
    rules_run: int = 0
    values_checked: int = 0
    dataset_id: Optional[str] = None

    def has_errors(self, strict: bool = False) -> bool:
        """Check if validation failed.

        Args:
            strict: If True, treat warnings as errors. Default False.
        """
        for result in self.results:
            if result.passed:
                continue
            if result.severity == Severity.ERROR:
                return True
            if strict and result.severity == Severity.WARNING:
                return True
        return False

    def _count(self, severity: Severity) -> int:
        return sum(1 for r in self.results if not r.passed and r.severity == severity)

    def get_error_count(self) -> int:
        return self._count(Severity.ERROR)

    def get_warning_count(self) -> int:
        return self._count(Severity.WARNING)

    def get_info_count(self) -> int:
        return self._count(Severity.INFO)

    def get_failures(self, severity: Optional[Severity] = None) -> List[ValidationResult]:
        """Get all failed results, optionally filtered by severity."""
        return [
            r for r in self.results if not r.passed and (severity is None or r.severity == severity)
        ]

    def blocks_publish(self) -> bool:
        """Error-severity failures block publishing to a destination instance."""
        return self.has_errors(strict=False)

    def summary(self) -> str:
        """Generate a concise text summary of validation results.

        Examples:
            >>> print(report.summary())
            Validation Summary:
              Rules: 3 run on 12 values
              Checks: 14 executed (11 passed, 3 failed)
              Issues: 2 errors, 1 warnings, 0 info
        """
        total = len(self.results)
        passed = sum(1 for r in self.results if r.passed)
        return (
            f"Validation Summary:\n"
            f"  Rules: {self.rules_run} run on {self.values_checked} values\n"
            f"  Checks: {total} executed ({passed} passed, {total - passed} failed)\n"
            f"  Issues: {self.get_error_count()} errors, {self.get_warning_count()} warnings, "
            f"{self.get_info_count()} info"
        )

    def to_json(self) -> str:
        """Generate detailed JSON validation report."""
        report_data = {
            "metadata": {
                "dataset_id": self.dataset_id,
                "generated_at": datetime.now().isoformat(),
            },
            "summary": {
                "rules_run": self.rules_run,
                "values_checked": self.values_checked,
                "checks": len(self.results),
                "passed": sum(1 for r in self.results if r.passed),
                "errors": self.get_error_count(),
                "warnings": self.get_warning_count(),
                "info": self.get_info_count(),
            },
            "failures": [r.to_dict() for r in self.get_failures()],
        }
        return json.dumps(report_data, indent=2, ensure_ascii=False)

    def to_markdown(self) -> str:
        """Generate a Markdown report grouped by severity."""
        lines = [
            "# Validation Report",
            "",
            f"**Dataset:** {self.dataset_id or 'all'}",
            f"**Generated:** {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}",
            "",
            "## Summary",
            "",
            f"- **Checks:** {len(self.results)}",
            f"- **Errors:** {self.get_error_count()}",
            f"- **Warnings:** {self.get_warning_count()}",
            f"- **Info:** {self.get_info_count()}",
            "",
        ]
        failures = self.get_failures()
        if not failures:
            lines.extend(["## All Checks Passed", "", "No validation issues found.", ""])
            return "\n".join(lines)

        for severity in (Severity.ERROR, Severity.WARNING, Severity.INFO):
            group = _sorted_failures(self.get_failures(severity))
            if not group:
                continue
            lines.append(f"## {severity.value.capitalize()}s")
            lines.append("")
            for r in group:
                where = "/".join(p for p in (r.data_element, r.org_unit, r.period) if p)
                lines.append(f"- **{r.rule_name}** ({where}): {r.message}")
                if r.suggested_fix:
                    lines.append(f"  - Suggested fix: {r.suggested_fix}")
            lines.append("")
        return "\n".join(lines)

    def to_console_summary(self) -> str:
        lines = [self.summary(), ""]
        failures = self.get_failures()
        if not failures:
            lines.append("All validation checks passed!")
            return "\n".join(lines)
        lines.append("Failed Checks:")
        for r in _sorted_failures(failures):
            lines.append(f"- {r.rule_name} ({r.severity.value}): {r.message}")
        return "\n".join(lines)


def _sorted_failures(results: Sequence[ValidationResult]) -> List[ValidationResult]:
    return sorted(results, key=lambda r: (r.rule_name, r.data_element or "", r.period or ""))
