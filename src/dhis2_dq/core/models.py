"""Source-side data models.

This module defines the structures fetched from or configured against DHIS2:
- ElementRef: a data element as it exists in one dataset
- DatasetElements: the data elements of one dataset
- LogicalElementGroup: one indicator mapped across several datasets/instances
- RawDataValue: a single data value as returned by DHIS2
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Tuple


@dataclass(frozen=True)
class ElementRef:
    """Reference to a data element inside a specific dataset."""

    id: str
    display_name: str = ""
    dataset_id: str = ""
    dataset_name: str = ""
    form_name: str = ""


@dataclass(frozen=True)
class DatasetElements:
    """A dataset and the data elements it collects."""

    dataset_id: str
    dataset_name: str = ""
    elements: Tuple[ElementRef, ...] = ()


@dataclass(frozen=True)
class LogicalElementGroup:
    """The same indicator as it exists in each source.

    Attributes:
        id: Group identifier.
        logical_name: Human-readable indicator name.
        elements: Mapping source id -> ElementRef, or None when the source
            has no equivalent element.

    Examples:
        >>> LogicalElementGroup(
        ...     id="anc1",
        ...     logical_name="ANC 1st visit",
        ...     elements={"dsA": ElementRef("deA"), "dsB": None},
        ... )
    """

    id: str
    logical_name: str
    elements: Mapping[str, Optional[ElementRef]] = field(default_factory=dict)

    def element_id_for(self, source_id: str) -> Optional[str]:
        ref = self.elements.get(source_id)
        return ref.id if ref is not None else None


@dataclass(frozen=True)
class RawDataValue:
    """A data value as returned by dataValueSets or converted from analytics."""

    data_element: str
    org_unit: str
    period: str
    value: Optional[str]
    last_updated: Optional[str] = None

    @classmethod
    def from_api(cls, payload: Dict[str, Any]) -> "RawDataValue":
        """Build from a DHIS2 JSON data value (camelCase keys)."""
        value = payload.get("value")
        return cls(
            data_element=str(payload.get("dataElement", "")),
            org_unit=str(payload.get("orgUnit", "")),
            period=str(payload.get("period", "")),
            value=None if value is None else str(value),
            last_updated=payload.get("lastUpdated"),
        )

    def to_api(self) -> Dict[str, Any]:
        return {
            "dataElement": self.data_element,
            "orgUnit": self.org_unit,
            "period": self.period,
            "value": self.value,
        }


__all__ = ["ElementRef", "LogicalElementGroup", "RawDataValue"]
