"""Core enumerations used across the package."""

from __future__ import annotations

from enum import Enum


class RecordStatus(str, Enum):
    """Status of an aligned comparison record.

    Values are strings to ease serialization and CLI interchange.
    """

    VALID = "valid"
    MISMATCH = "mismatch"
    MISSING = "missing"
    OUT_OF_RANGE = "out_of_range"
    CONSENSUS = "consensus"


class RuleType(str, Enum):
    """Kinds of validation rules understood by the engine."""

    RANGE = "range"
    CONSISTENCY = "consistency"
    OUTLIER = "outlier"
    MANDATORY = "mandatory"


class Severity(str, Enum):
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


class SampleSource(str, Enum):
    """Where the outlier check takes its reference sample from.

    - HISTORICAL: only the historical values passed to the engine
    - CURRENT_BATCH: only the values under validation
    - AUTO: historical values when any were given, else the current batch
    """

    HISTORICAL = "historical"
    CURRENT_BATCH = "current_batch"
    AUTO = "auto"


class FetchErrorKind(str, Enum):
    AUTH_FAILED = "auth_failed"
    NOT_FOUND = "not_found"
    TIMEOUT = "timeout"
    SERVER_ERROR = "server_error"


class MappingConfidence(str, Enum):
    """Confidence of a suggested cross-dataset element match."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


__all__ = [
    "RecordStatus",
    "RuleType",
    "Severity",
    "SampleSource",
    "FetchErrorKind",
    "MappingConfidence",
]
