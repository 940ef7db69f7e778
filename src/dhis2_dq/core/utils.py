"""Core utility functions shared across the package."""

from __future__ import annotations

import math
import re
from typing import Any, Optional

_UID_RE = re.compile(r"^[A-Za-z][A-Za-z0-9]{10}$")
_NUMBER_RE = re.compile(r"^[+-]?(?:[0-9]+\.?[0-9]*|\.[0-9]+)(?:[eE][+-]?[0-9]+)?$")


def parse_number(value: Any) -> Optional[float]:
    """Parse a DHIS2 value as a finite number.

    Returns None for None, blank strings, non-numeric text and non-finite
    values ("NaN", "inf"). Text must be a plain ASCII decimal; Python-only
    forms such as "1_000" or non-ASCII digits are not numbers.

    Examples:
        >>> parse_number("42")
        42.0
        >>> parse_number(" 3.5 ")
        3.5
        >>> parse_number("abc") is None
        True
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        text = str(value).strip()
        if not text:
            return None
        if not _NUMBER_RE.match(text):
            return None
        number = float(text)
    if not math.isfinite(number):
        return None
    return number


def is_blank(value: Any) -> bool:
    """True for None and for strings that are empty after trimming."""
    if value is None:
        return True
    return isinstance(value, str) and value.strip() == ""


def looks_like_uid(value: str) -> bool:
    """True when the text has the shape of a DHIS2 UID (11 alphanumerics, letter first)."""
    return bool(_UID_RE.match(value or ""))


def source_label(index: int) -> str:
    """Positional label for the source at a 0-based index.

    Examples:
        >>> source_label(0)
        'dataset1Value'
    """
    return f"dataset{index + 1}Value"


def format_number(value: float) -> str:
    """Render a float without a trailing '.0' for whole numbers."""
    if float(value).is_integer():
        return str(int(value))
    return str(value)
