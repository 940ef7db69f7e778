"""Validation rule catalog.

Loads rules from YAML and serves the active rules for a dataset::

    validation_rules:
      - id: births-total
        name: Total births consistency
        rule_type: consistency
        data_elements: [LIVE_BIRTHS, STILL_BIRTHS, TOTAL_BIRTHS]
        condition: DE1 + DE2 == DE3
        severity: error
        dataset_id: dsMaternity       # optional
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

import yaml

from dhis2_dq.core.enums import RuleType
from dhis2_dq.core.errors import ConfigurationError
from .config import get_severity_rank, parse_severity
from .models import ValidationRule


def parse_rule(item: Dict[str, Any]) -> ValidationRule:
    """Build a ValidationRule from one YAML/JSON mapping.

    Raises:
        ConfigurationError: If required keys are missing or values are invalid.
    """
    rule_id = str(item.get("id", "")).strip()
    if not rule_id:
        raise ConfigurationError(f"Validation rule without id: {item!r}")

    try:
        rule_type = RuleType(str(item.get("rule_type", "")).strip().lower())
    except ValueError:
        valid = ", ".join(t.value for t in RuleType)
        raise ConfigurationError(
            f"Rule '{rule_id}': unknown rule_type {item.get('rule_type')!r}. Valid types: {valid}"
        ) from None

    try:
        severity = parse_severity(item.get("severity", "warning"))
    except ValueError as e:
        raise ConfigurationError(f"Rule '{rule_id}': {e}") from e

    elements = item.get("data_elements") or []
    if isinstance(elements, str) or not isinstance(elements, (list, tuple)):
        raise ConfigurationError(f"Rule '{rule_id}': data_elements must be a list")

    threshold = item.get("threshold")
    if threshold is not None:
        try:
            threshold = float(threshold)
        except (TypeError, ValueError):
            raise ConfigurationError(
                f"Rule '{rule_id}': threshold must be a number (got {threshold!r})"
            ) from None

    levels = item.get("org_unit_levels")
    if levels:
        if isinstance(levels, (str, int)) or not isinstance(levels, (list, tuple)):
            raise ConfigurationError(f"Rule '{rule_id}': org_unit_levels must be a list of integers")
        try:
            levels = tuple(int(lv) for lv in levels)
        except (TypeError, ValueError):
            raise ConfigurationError(
                f"Rule '{rule_id}': org_unit_levels must be a list of integers (got {levels!r})"
            ) from None

    is_active = item.get("is_active", True)
    if not isinstance(is_active, bool):
        raise ConfigurationError(
            f"Rule '{rule_id}': is_active must be true or false (got {is_active!r})"
        )

    return ValidationRule(
        id=rule_id,
        name=str(item.get("name") or rule_id),
        rule_type=rule_type,
        data_elements=tuple(str(e) for e in elements),
        condition=item.get("condition"),
        threshold=threshold,
        severity=severity,
        dataset_id=item.get("dataset_id"),
        org_unit_levels=levels or None,
        is_active=is_active,
        description=str(item.get("description", "")),
    )


class RuleCatalog:
    """Immutable set of configured validation rules."""

    def __init__(self, rules: Iterable[ValidationRule]) -> None:
        self._rules: List[ValidationRule] = list(rules)
        ids = [r.id for r in self._rules]
        duplicates = sorted({i for i in ids if ids.count(i) > 1})
        if duplicates:
            raise ConfigurationError(f"Duplicate validation rule ids: {', '.join(duplicates)}")

    @classmethod
    def from_yaml(cls, rules_file: Path) -> "RuleCatalog":
        """Load the catalog from a YAML file with a ``validation_rules`` list."""
        if not rules_file.exists():
            raise FileNotFoundError(f"Validation rules file not found: {rules_file}")
        with rules_file.open("r", encoding="utf-8") as f:
            try:
                data = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise ConfigurationError(f"Invalid YAML in {rules_file}: {e}") from e
        entries = data.get("validation_rules", []) or []
        return cls(parse_rule(item) for item in entries)

    def active_rules(self, dataset_id: Optional[str] = None) -> List[ValidationRule]:
        """Active rules for a dataset (rules without dataset_id apply everywhere).

        Ordered most severe first, then by name.
        """
        rules = [
            r
            for r in self._rules
            if r.is_active and r.applies_to_dataset(dataset_id)
        ]
        return sorted(rules, key=lambda r: (get_severity_rank(r.severity), r.name))

    def __len__(self) -> int:
        return len(self._rules)
