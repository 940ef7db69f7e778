"""Shared pytest fixtures for DHIS2 data quality tests."""

from typing import Callable, List, Optional

import pytest

from dhis2_dq.core.enums import RuleType, Severity
from dhis2_dq.core.models import ElementRef, LogicalElementGroup, RawDataValue
from dhis2_dq.sources.registry import InstanceDefinition
from dhis2_dq.validation.models import ValidationRule

ORG_UNIT = "DiszpKrYNg8"
PERIOD = "202406"


def make_value(
    data_element: str,
    value: Optional[str],
    org_unit: str = ORG_UNIT,
    period: str = PERIOD,
) -> RawDataValue:
    return RawDataValue(data_element=data_element, org_unit=org_unit, period=period, value=value)


def make_rule(
    rule_type: RuleType,
    data_elements=("deA",),
    *,
    rule_id: str = "rule-1",
    threshold: Optional[float] = None,
    condition: Optional[str] = None,
    severity: Severity = Severity.WARNING,
    dataset_id: Optional[str] = None,
    is_active: bool = True,
) -> ValidationRule:
    return ValidationRule(
        id=rule_id,
        name=f"{rule_type.value} rule",
        rule_type=rule_type,
        data_elements=tuple(data_elements),
        condition=condition,
        threshold=threshold,
        severity=severity,
        dataset_id=dataset_id,
        is_active=is_active,
    )


@pytest.fixture
def value_factory() -> Callable[..., RawDataValue]:
    """Factory for RawDataValue with default org unit and period."""
    return make_value


@pytest.fixture
def rule_factory() -> Callable[..., ValidationRule]:
    """Factory for ValidationRule with sensible defaults."""
    return make_rule


@pytest.fixture
def three_source_groups() -> List[LogicalElementGroup]:
    """Two logical elements mapped across three datasets.

    ``anc1`` exists in all three; ``deliveries`` has no element in dsC.
    """
    return [
        LogicalElementGroup(
            id="anc1",
            logical_name="ANC 1st visit",
            elements={
                "dsA": ElementRef("deA1", "ANC1 monthly", "dsA"),
                "dsB": ElementRef("deB1", "ANC1 weekly", "dsB"),
                "dsC": ElementRef("deC1", "ANC1 legacy", "dsC"),
            },
        ),
        LogicalElementGroup(
            id="deliveries",
            logical_name="Deliveries",
            elements={
                "dsA": ElementRef("deA2", dataset_id="dsA"),
                "dsB": ElementRef("deB2", dataset_id="dsB"),
                "dsC": None,
            },
        ),
    ]


@pytest.fixture
def instance() -> InstanceDefinition:
    return InstanceDefinition(
        name="test",
        url="https://dhis2.test/",
        username="admin",
        password="district",
    )
