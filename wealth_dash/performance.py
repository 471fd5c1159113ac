"""Return calculations over a chronological series of account valuations."""
from __future__ import annotations

import math
from enum import Enum
from typing import Optional, Sequence

from .models import PerformanceResult, ValuationPoint

ZERO_RESULT = PerformanceResult(gain_loss_amount=0.0, return_ratio=0.0)


class ReturnMode(str, Enum):
    """How the return ratio of a window is expressed."""

    PERIOD = "period"
    ALL_TIME = "allTime"

    @classmethod
    def parse(cls, value: "ReturnMode | str") -> "ReturnMode":
        """Accept enum members as well as ``"period"``, ``"allTime"`` and ``"all_time"``."""

        if isinstance(value, cls):
            return value
        normalised = str(value).replace("_", "").lower()
        for mode in cls:
            if mode.value.lower() == normalised:
                return mode
        raise ValueError(f"Unknown return mode: {value!r}")


def compute_return(
    history: Optional[Sequence[ValuationPoint]],
    mode: ReturnMode | str = ReturnMode.PERIOD,
) -> PerformanceResult:
    """Compute the gain/loss and return ratio of a valuation series.

    ``history`` must be ordered by ascending valuation date.  With fewer than
    two points no return can be expressed and a zero result is returned.

    In period mode the ratio is a day-chained time-weighted return: every step
    is neutralised for the cash that flowed in or out during it and the step
    factors are multiplied together.  Steps that start from a zero value (the
    account just opened) are left out of the product.

    In all-time mode the cumulative net contribution is used as cost basis and
    the ratio is the gain relative to it, or ``0`` when nothing was contributed.
    """

    mode = ReturnMode.parse(mode)
    if not history or len(history) < 2:
        return ZERO_RESULT

    first = history[0]
    last = history[-1]

    if mode is ReturnMode.ALL_TIME:
        gain = last.total_value - last.net_contribution
        ratio = gain / last.net_contribution if last.net_contribution != 0 else 0.0
        return PerformanceResult(gain_loss_amount=gain, return_ratio=ratio)

    twr = 1.0
    for prev, curr in zip(history, history[1:]):
        if prev.total_value == 0:
            continue
        cash_flow = curr.net_contribution - prev.net_contribution
        twr *= (curr.total_value - cash_flow) / prev.total_value

    market_gain = last.total_value - first.total_value
    net_flow = last.net_contribution - first.net_contribution
    return PerformanceResult(gain_loss_amount=market_gain - net_flow, return_ratio=twr - 1)


def round_decimal(value: float, precision: int = 6) -> float:
    """Round ``value`` to ``precision`` places, mapping non-finite numbers to ``0``."""

    if not math.isfinite(value):
        return 0.0
    return round(value, precision)
