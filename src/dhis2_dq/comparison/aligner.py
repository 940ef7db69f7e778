"""Value aligner.

Groups raw values from N sources into one AlignedRecord per logical element,
using the element id each source uses for that element.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Mapping, Optional, Sequence

from dhis2_dq.core.models import LogicalElementGroup, RawDataValue
from dhis2_dq.core.utils import source_label
from .classifier import classify
from .consensus import find_consensus_value
from .models import AlignedRecord

logger = logging.getLogger(__name__)


def _first_value(values: Sequence[RawDataValue], element_id: str) -> Optional[str]:
    for dv in values:
        if dv.data_element == element_id:
            return dv.value if dv.value else None
    return None


def align(
    groups: Sequence[LogicalElementGroup],
    source_order: Sequence[str],
    raw_by_source: Mapping[str, Sequence[RawDataValue]],
    org_unit: str = "",
    org_unit_name: str = "",
    period: str = "",
) -> List[AlignedRecord]:
    """Align raw values of each source into comparable records.

    For each group and each source (in ``source_order``), the first raw value
    whose data element matches the source's element id is taken; an empty or
    missing value becomes None. Groups with no value in any source are skipped.

    Args:
        groups: Logical element groups to compare.
        source_order: Source ids (datasets or instances); position N is
            addressed as ``dataset{N+1}Value`` in the output.
        raw_by_source: Raw values fetched from each source.
        org_unit: Org unit UID the values were fetched for.
        org_unit_name: Display name for ``org_unit`` (defaults to the UID).
        period: Period the values were fetched for.

    Returns:
        One classified AlignedRecord per group with at least one value.
    """
    records: List[AlignedRecord] = []
    for group in groups:
        values: Dict[str, Optional[str]] = {}
        element_ids: Dict[str, Optional[str]] = {}
        for index, source_id in enumerate(source_order):
            label = source_label(index)
            element_id = group.element_id_for(source_id)
            element_ids[label] = element_id
            if element_id is None:
                values[label] = None
                continue
            values[label] = _first_value(raw_by_source.get(source_id, ()), element_id)

        if all(v is None for v in values.values()):
            logger.debug("Skipping group %s: no value in any source", group.logical_name)
            continue

        classification = classify(values)
        records.append(
            AlignedRecord(
                group_id=group.id,
                logical_name=group.logical_name,
                org_unit=org_unit,
                org_unit_name=org_unit_name or org_unit,
                period=period,
                values=values,
                status=classification.status,
                variance=classification.variance,
                consensus_value=find_consensus_value(values.values()),
                element_ids=element_ids,
            )
        )
    return records
