"""Validation configuration constants.

This module centralizes validation tolerances, thresholds and severity ordering.

Severity Levels:
    - "error": Critical issues; the caller may block publishing on them
    - "warning": Issues that warrant review but may be legitimate
    - "info": Advisory notes only
"""

from __future__ import annotations

from dhis2_dq.core.enums import Severity

# ============================================================================
# TOLERANCE CONSTANTS
# ============================================================================

# Absolute tolerance for "==" in consistency conditions (absorbs rounding)
EQUALITY_TOLERANCE = 0.01

# ============================================================================
# OUTLIER DETECTION
# ============================================================================

# Z-score limit when an outlier rule has no threshold (99.7% of a normal sample)
DEFAULT_OUTLIER_THRESHOLD = 3.0

# Minimum numeric samples per (data element, org unit) for a z-score
MIN_OUTLIER_SAMPLES = 3

# ============================================================================
# FETCH
# ============================================================================

# Per-request timeout for DHIS2 data requests, in seconds
DEFAULT_FETCH_TIMEOUT = 120.0

# Concurrent per-org-unit fetches
DEFAULT_FETCH_WORKERS = 4

# ============================================================================
# SEVERITY ORDER
# ============================================================================

_SEVERITY_RANK = {
    Severity.ERROR: 0,
    Severity.WARNING: 1,
    Severity.INFO: 2,
}


def get_severity_rank(severity: Severity) -> int:
    """Sort key for severities, most severe first.

    Examples:
        >>> get_severity_rank(Severity.ERROR)
        0
        >>> get_severity_rank(Severity.INFO)
        2
    """
    return _SEVERITY_RANK[Severity(severity)]


def parse_severity(value: str) -> Severity:
    """Parse a severity name (case insensitive).

    Raises:
        ValueError: If value is not a known severity.
    """
    try:
        return Severity(str(value).strip().lower())
    except ValueError:
        valid = ", ".join(s.value for s in Severity)
        raise ValueError(f"Invalid severity: {value}. Must be one of: {valid}.") from None
