"""Cross-dataset comparison of DHIS2 data values.

- **Models**: AlignedRecord, ComparisonSummary, ComparisonReport
- **Aligner**: align() groups raw values of N sources per logical element
- **Classifier**: classify() and summarize()
- **Mapping**: load_element_groups() and load_publish_mapping() read YAML,
  write_element_groups() writes groups back
- **Automap**: suggest_element_groups() proposes groups from element names
- **Combine**: combine() merges validation range failures into a report
"""

from __future__ import annotations

from dhis2_dq.core.enums import RecordStatus

from .aligner import align
from .automap import (
    MappingSuggestion,
    generate_auto_mappings,
    generate_cross_dataset_mappings,
    suggest_element_groups,
)
from .classifier import Classification, classify, summarize
from .combine import apply_range_failures, combine
from .consensus import find_consensus_value
from .mapping import load_element_groups, load_publish_mapping, write_element_groups
from .models import AlignedRecord, ComparisonReport, ComparisonSummary

__all__ = [
    "AlignedRecord",
    "ComparisonReport",
    "ComparisonSummary",
    "Classification",
    "RecordStatus",
    "align",
    "classify",
    "summarize",
    "apply_range_failures",
    "combine",
    "find_consensus_value",
    "load_element_groups",
    "load_publish_mapping",
    "write_element_groups",
    "MappingSuggestion",
    "generate_auto_mappings",
    "generate_cross_dataset_mappings",
    "suggest_element_groups",
]
