"""Consensus value (majority vote) across sources."""

from __future__ import annotations

from collections import Counter
from typing import Iterable, Optional


def find_consensus_value(values: Iterable[Optional[str]]) -> Optional[str]:
    """Return the most common non-empty value, if it is a consensus.

    A value is a consensus when it appears more than once, or when it is the
    only value present. Ties resolve to the value seen first.

    Examples:
        >>> find_consensus_value(["42", "42", "45"])
        '42'
        >>> find_consensus_value(["42", "45"]) is None
        True
    """
    present = [v for v in values if v is not None and v != ""]
    if not present:
        return None
    counts = Counter(present)
    best, best_count = None, 0
    for value in present:
        if counts[value] > best_count:
            best, best_count = value, counts[value]
    if best_count > 1 or len(present) == 1:
        return best
    return None
