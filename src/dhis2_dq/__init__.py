"""DHIS2 Data Quality Tools: reconciliation and validation engine.

The package compares the same logical indicators across DHIS2 datasets and
instances, and applies rule-based validation to raw data values. The CLI
(compare, validate) is a thin layer over the comparison, validation and
orchestration subpackages.
"""

__all__ = [
    "__version__",
]

__version__ = "0.2.0"
