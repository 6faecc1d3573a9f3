"""
Performance baseline resolution.
Pure functions pairing a security's latest quote with the quote one
calendar interval earlier.
"""

from bisect import bisect_right
from dataclasses import dataclass
from datetime import date
from typing import List, Optional

from analysis.calculations.intervals import Interval, InvalidArgumentError, subtract_interval


@dataclass(frozen=True)
class Baseline:
    """Latest quote and the historical reference quote it is compared with."""
    latest_date: date
    latest_price: float
    base_date: date
    base_price: float


def baseline_cutoff(latest_date: date, interval: Interval) -> date:
    """Latest date a base quote may carry for the given interval."""
    return subtract_interval(latest_date, interval)


def resolve_baseline(
    dates: List[date],
    prices: List[float],
    interval: Interval
) -> Optional[Baseline]:
    """
    Resolve the performance baseline for one security/exchange pair.

    The latest quote is the last element; the base quote is the latest
    quote dated on or before (latest date - interval).

    Args:
        dates: Quote dates in chronological order (unique)
        prices: Corresponding prices
        interval: Calendar look-back

    Returns:
        Baseline, or None if no quote exists at or before the cutoff

    Raises:
        InvalidArgumentError: If interval is not an Interval or the
            inputs have different lengths
    """
    if not isinstance(interval, Interval):
        raise InvalidArgumentError(f"interval must be an Interval, got {interval!r}")

    if len(dates) != len(prices):
        raise InvalidArgumentError("Prices and dates must have same length")

    if not dates:
        return None

    latest_date = dates[-1]
    cutoff = baseline_cutoff(latest_date, interval)

    # Number of quotes dated <= cutoff
    position = bisect_right(dates, cutoff)
    if position == 0:
        return None

    return Baseline(
        latest_date=latest_date,
        latest_price=prices[-1],
        base_date=dates[position - 1],
        base_price=prices[position - 1]
    )
