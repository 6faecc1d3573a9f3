"""
RS Levy (relative strength after Levy) utilities.
Pure functions that locate the weekly and daily windows for one
security/exchange pair and reduce them to a single ratio.

Weekly: latest weekly close x 27 / sum of the 27 most recent weekly closes,
with weeks on the ISO-8601 calendar anchored on the last Thursday.
Daily: latest close / mean of the 200 most recent closes.
"""

import logging
import math
from dataclasses import dataclass
from datetime import date, timedelta
from typing import List, Optional, Tuple

import numpy as np

logger = logging.getLogger(__name__)

WEEKLY_CLOSES = 27
WEEKLY_LOOKBACK_WEEKS = 28
DAILY_WINDOW = 200
THURSDAY = 3  # date.weekday()


@dataclass(frozen=True)
class WeeklyClose:
    """Price on the last quoted date of an ISO week."""
    iso_year: int
    iso_week: int
    date: date
    price: float


def weekly_anchor(latest_date: date) -> date:
    """Most recent Thursday on or before latest_date."""
    return latest_date - timedelta(days=(latest_date.weekday() - THURSDAY) % 7)


def weekly_closes(
    dates: List[date],
    prices: List[float],
    anchor: date,
    lookback_weeks: int = WEEKLY_LOOKBACK_WEEKS
) -> List[WeeklyClose]:
    """
    Partition quotes in (anchor - lookback_weeks, anchor] into ISO weeks.

    Args:
        dates: Quote dates in chronological order
        prices: Corresponding prices
        anchor: Inclusive upper bound of the window
        lookback_weeks: Window length in weeks

    Returns:
        One WeeklyClose per ISO week present in the window, newest first
    """
    window_start = anchor - timedelta(weeks=lookback_weeks)
    closes = {}

    for quote_date, price in zip(dates, prices):
        if quote_date <= window_start or quote_date > anchor:
            continue

        iso_year, iso_week, _ = quote_date.isocalendar()
        key = (iso_year, iso_week)
        current = closes.get(key)
        if current is None or quote_date > current.date:
            closes[key] = WeeklyClose(iso_year, iso_week, quote_date, price)

    return sorted(closes.values(), key=lambda c: c.date, reverse=True)


def resolve_weekly_window(
    dates: List[date],
    prices: List[float]
) -> Optional[List[WeeklyClose]]:
    """
    Select the 27 most recent weekly closes for one pair.

    Returns:
        27 WeeklyClose entries newest first, or None if the 28-week window
        holds fewer than 27 distinct ISO weeks
    """
    if not dates:
        return None

    anchor = weekly_anchor(dates[-1])
    closes = weekly_closes(dates, prices, anchor)

    if len(closes) < WEEKLY_CLOSES:
        logger.debug("Only %d weekly closes before %s; need %d", len(closes), anchor, WEEKLY_CLOSES)
        return None

    return closes[:WEEKLY_CLOSES]


def resolve_daily_window(
    dates: List[date],
    prices: List[float],
    window: int = DAILY_WINDOW
) -> Optional[List[Tuple[date, float]]]:
    """
    Select the most recent `window` quotes for one pair.

    Returns:
        (date, price) tuples newest first, or None if fewer than `window`
        quotes were ever recorded
    """
    if len(dates) < window:
        logger.debug("Only %d quotes recorded; need %d", len(dates), window)
        return None

    recent = list(zip(dates[-window:], prices[-window:]))
    recent.reverse()
    return recent


def safe_ratio(numerator: float, denominator: float) -> float:
    """
    Divide, mapping a zero denominator to NaN (0/0) or +/-inf.

    Only an all-zero price history produces a zero denominator; the row is
    kept and flagged rather than aborting the batch.
    """
    if denominator == 0:
        logger.warning("Zero denominator in RS Levy calculation (numerator=%s)", numerator)
        if numerator == 0:
            return math.nan
        return math.copysign(math.inf, numerator)

    return float(numerator / denominator)


def rsl_weekly(closes: List[WeeklyClose]) -> float:
    """
    Weekly RS Levy value.

    Formula: RSL = P_newest * n / sum(P_i), n = number of closes (27)

    Args:
        closes: Weekly closes newest first
    """
    if not closes:
        raise ValueError("closes must not be empty")

    weekly_prices = np.array([c.price for c in closes], dtype=float)
    return safe_ratio(weekly_prices[0] * len(weekly_prices), float(weekly_prices.sum()))


def rsl_daily(window: List[Tuple[date, float]]) -> float:
    """
    Daily RS Levy value.

    Formula: RSL = P_latest / mean(P_window)

    Args:
        window: (date, price) tuples newest first
    """
    if not window:
        raise ValueError("window must not be empty")

    window_prices = np.array([price for _, price in window], dtype=float)
    return safe_ratio(window_prices[0], float(window_prices.mean()))
