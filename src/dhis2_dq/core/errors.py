"""Exception taxonomy for DHIS2 data quality runs.

- FetchError: network, authentication or timeout problem talking to DHIS2
- ConfigurationError: malformed rule, group or instance configuration
- ClassificationError: broken alignment invariant (programming error)
- ExpressionError: consistency condition that cannot be parsed or evaluated
- RunError: single top-level failure of an orchestrated run
"""

from __future__ import annotations

from typing import Dict, Optional

from .enums import FetchErrorKind


class DQError(Exception):
    """Base class for all package errors."""


class FetchError(DQError):
    """A DHIS2 request failed.

    Attributes:
        kind: Failure category (auth, not found, timeout, server error).
        url: Request URL, when known.
        status_code: HTTP status code, when a response was received.
    """

    def __init__(
        self,
        kind: FetchErrorKind,
        message: str,
        url: Optional[str] = None,
        status_code: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.url = url
        self.status_code = status_code

    def __str__(self) -> str:
        base = super().__str__()
        if self.status_code is not None:
            return f"{base} [{self.kind.value}, HTTP {self.status_code}]"
        return f"{base} [{self.kind.value}]"


class ConfigurationError(DQError):
    """Configuration content is missing or malformed."""


class ClassificationError(DQError):
    """An aligned record violates the alignment invariants."""


class ExpressionError(DQError):
    """A consistency condition could not be parsed or evaluated."""

    def __init__(self, message: str, position: Optional[int] = None) -> None:
        super().__init__(message)
        self.position = position


class RunError(DQError):
    """An orchestrated run failed at a given stage.

    Attributes:
        stage: Stage that failed ("login", "metadata", "fetch", "validate", "publish").
        names: Human-readable names of the dataset, period and org units involved.
    """

    def __init__(
        self, stage: str, message: str, names: Optional[Dict[str, str]] = None
    ) -> None:
        super().__init__(message)
        self.stage = stage
        self.names = dict(names or {})

    def __str__(self) -> str:
        return f"{self.stage} failed: {super().__str__()}"


class RunCancelled(RunError):
    """The caller cancelled the run; partial results were discarded."""

    def __init__(self, stage: str = "fetch") -> None:
        super().__init__(stage, "run cancelled by caller")


__all__ = [
    "DQError",
    "FetchError",
    "ConfigurationError",
    "ClassificationError",
    "ExpressionError",
    "RunError",
    "RunCancelled",
]
