"""Period-over-period comparison for KPI widgets."""

from __future__ import annotations

import math

from ..schemas.widget import TrendResult


def _round2(value: float) -> float:
    # Round half up.
    return math.floor(value * 100.0 + 0.5) / 100.0


class TrendCalculator:
    def trend(self, current: float, previous: float, period_days: int) -> TrendResult:
        """
        Compare the current window's value against the previous window.

        `percentage` is 0 when the previous window is 0 rather than dividing
        by zero. `period_days` only describes the windows; the values are
        already aggregated over them.
        """
        value = float(current) - float(previous)
        percentage = 0.0 if previous == 0 else _round2((value / float(previous)) * 100.0)
        if value > 0:
            direction = "up"
        elif value < 0:
            direction = "down"
        else:
            direction = "neutral"
        return TrendResult(value=value, percentage=percentage, direction=direction)
