"""Progress reporting for orchestrated runs."""

from __future__ import annotations

import logging
from typing import Callable, Optional

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str, float], None]


class ProgressReporter:
    """Forward progress milestones to an optional caller callback.

    Progress is advisory: a missing callback is a no-op and a callback that
    raises is logged and ignored. ``scaled`` maps a sub-run's 0-100 range into
    a slice of the parent's range (used for multi-period runs).
    """

    def __init__(
        self,
        callback: Optional[ProgressCallback] = None,
        start: float = 0.0,
        end: float = 100.0,
        prefix: str = "",
    ) -> None:
        self.callback = callback
        self.start = start
        self.end = end
        self.prefix = prefix

    def __call__(self, step: str, percent: float) -> None:
        if self.callback is None:
            return
        percent = max(0.0, min(100.0, float(percent)))
        overall = self.start + (self.end - self.start) * percent / 100.0
        try:
            self.callback(f"{self.prefix}{step}", round(overall, 1))
        except Exception as e:  # noqa: BLE001
            logger.warning("Progress callback failed at '%s': %s", step, e)

    def scaled(self, start: float, end: float, prefix: str = "") -> "ProgressReporter":
        span = self.end - self.start
        return ProgressReporter(
            self.callback,
            start=self.start + span * start / 100.0,
            end=self.start + span * end / 100.0,
            prefix=f"{self.prefix}{prefix}",
        )
