"""Rule-based validation of DHIS2 data values.

- **Models**: ValidationRule, ValidationResult, ValidationReport
- **Checks**: one check per rule type (see validation/checks/)
- **Config**: tolerances, thresholds and severity order (import from .config)
- **Catalog**: RuleCatalog, loads rules from YAML
- **Registry**: ValidationEngine, run_validation(), print_report()

Usage:
    >>> from pathlib import Path
    >>> from dhis2_dq.validation import RuleCatalog, ValidationEngine
    >>> catalog = RuleCatalog.from_yaml(Path("config/validation_rules.yaml"))
    >>> report = ValidationEngine(catalog.active_rules("dsMonthly")).validate(values)
    >>> print(report.summary())
"""

from __future__ import annotations

from dhis2_dq.core.enums import RuleType, SampleSource, Severity

from .catalog import RuleCatalog
from .models import ValidationReport, ValidationResult, ValidationRule
from .registry import ValidationEngine, print_report, run_validation

__all__ = [
    # Data models
    "ValidationRule",
    "ValidationResult",
    "ValidationReport",
    # Engine
    "RuleCatalog",
    "ValidationEngine",
    "run_validation",
    "print_report",
    # Enums
    "RuleType",
    "Severity",
    "SampleSource",
]
