"""
Analytics engine - groups the quote ledger per security/exchange pair
and reduces each pair's history into published metrics.
Reads the ledger snapshot, calls pure window resolvers, holds no state.
"""

import logging
import math
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Dict, Any, List, Optional, Tuple, Union

import pandas as pd

from analysis.calculations.intervals import Interval, InvalidArgumentError
from analysis.calculations.performance import resolve_baseline
from analysis.calculations.rs_levy import (
    resolve_weekly_window,
    resolve_daily_window,
    rsl_weekly,
    rsl_daily
)
from storage.ledger import QuoteLedger

logger = logging.getLogger(__name__)

PairKey = Tuple[int, int]


class RSLevyAlgorithm(str, Enum):
    """RS Levy windowing variants."""
    WEEKLY = 'weekly'
    DAILY = 'daily'


@dataclass
class PairHistory:
    """Identity fields and chronological quotes of one security/exchange pair."""
    isin: str
    security_name: str
    instrument_type: str
    exchange_name: str
    dates: List[date] = field(default_factory=list)
    prices: List[float] = field(default_factory=list)

    def identity(self) -> Dict[str, str]:
        return {
            'isin': self.isin,
            'security_name': self.security_name,
            'instrument_type': self.instrument_type,
            'exchange_name': self.exchange_name
        }


@dataclass(frozen=True)
class PerformanceRecord:
    isin: str
    security_name: str
    instrument_type: str
    exchange_name: str
    latest_date: date
    latest_price: float
    base_date: date
    base_price: float

    @property
    def performance(self) -> float:
        """latest_price / base_price, NaN when the base price is zero."""
        if self.base_price == 0:
            return math.nan
        return self.latest_price / self.base_price

    def to_dict(self) -> Dict[str, Any]:
        return {
            'isin': self.isin,
            'security_name': self.security_name,
            'instrument_type': self.instrument_type,
            'exchange_name': self.exchange_name,
            'latest_date': self.latest_date.isoformat(),
            'latest_price': self.latest_price,
            'base_date': self.base_date.isoformat(),
            'base_price': self.base_price
        }


@dataclass(frozen=True)
class RSLevyRecord:
    """
    One RS Levy value. close_date is the newest weekly close for the weekly
    algorithm and the latest quote date for the daily one.
    """
    isin: str
    security_name: str
    instrument_type: str
    exchange_name: str
    algorithm: RSLevyAlgorithm
    close_date: date
    rsl_value: float

    def to_dict(self) -> Dict[str, Any]:
        date_key = 'newest_weekly_close' if self.algorithm == RSLevyAlgorithm.WEEKLY else 'latest_date'
        return {
            'isin': self.isin,
            'security_name': self.security_name,
            'instrument_type': self.instrument_type,
            'exchange_name': self.exchange_name,
            'algorithm': self.algorithm.value,
            date_key: self.close_date.isoformat(),
            'rsl_value': self.rsl_value
        }


def group_quotes_by_pair(frame: pd.DataFrame) -> Dict[PairKey, PairHistory]:
    """
    Build the per-pair quote sequences used by every analytics call.

    Args:
        frame: Ledger snapshot as returned by QuoteLedger.frame()

    Returns:
        Mapping (security_id, exchange_id) -> PairHistory with dates ascending
    """
    pairs: Dict[PairKey, PairHistory] = {}

    if frame.empty:
        return pairs

    ordered = frame.sort_values(['security_id', 'exchange_id', 'date'])

    for (security_id, exchange_id), group in ordered.groupby(['security_id', 'exchange_id'], sort=False):
        first = group.iloc[0]
        pairs[(int(security_id), int(exchange_id))] = PairHistory(
            isin=first['isin'],
            security_name=first['security_name'],
            instrument_type=first['instrument_type'],
            exchange_name=first['exchange_name'],
            dates=group['date'].tolist(),
            prices=[float(p) for p in group['price'].tolist()]
        )

    return pairs


def parse_algorithm(algorithm: Union[str, RSLevyAlgorithm]) -> RSLevyAlgorithm:
    """
    Raises:
        InvalidArgumentError: On anything but 'weekly' or 'daily'
    """
    if isinstance(algorithm, RSLevyAlgorithm):
        return algorithm
    try:
        return RSLevyAlgorithm(str(algorithm).strip().lower())
    except ValueError:
        raise InvalidArgumentError(f"Unknown RS Levy algorithm {algorithm!r} (expected weekly or daily)")


class AnalyticsEngine:
    """Derived, read-only analytics over a QuoteLedger."""

    def __init__(self, ledger: QuoteLedger):
        self._ledger = ledger

    def _pairs(self) -> Dict[PairKey, PairHistory]:
        return group_quotes_by_pair(self._ledger.frame())

    def get_performance_quotes(self, interval: Interval) -> List[PerformanceRecord]:
        """
        Pair every security/exchange's latest quote with its baseline quote.

        Pairs without a quote at or before (latest date - interval) are left out.

        Raises:
            InvalidArgumentError: If interval is not an Interval
        """
        if not isinstance(interval, Interval):
            raise InvalidArgumentError(f"interval must be an Interval, got {interval!r}")

        records = []
        for pair in self._pairs().values():
            baseline = resolve_baseline(pair.dates, pair.prices, interval)
            if baseline is None:
                logger.debug("No %s baseline for %s@%s", interval, pair.isin, pair.exchange_name)
                continue

            records.append(PerformanceRecord(
                **pair.identity(),
                latest_date=baseline.latest_date,
                latest_price=baseline.latest_price,
                base_date=baseline.base_date,
                base_price=baseline.base_price
            ))

        return records

    def get_rs_levy(self, algorithm: Union[str, RSLevyAlgorithm]) -> List[RSLevyRecord]:
        """
        RS Levy values for every pair with enough history.

        Raises:
            InvalidArgumentError: On an unknown algorithm
        """
        algorithm = parse_algorithm(algorithm)
        pairs = self._pairs()

        if algorithm == RSLevyAlgorithm.DAILY:
            return self._rs_levy_daily(pairs)
        return self._rs_levy_weekly(pairs)

    def _rs_levy_weekly(self, pairs: Dict[PairKey, PairHistory]) -> List[RSLevyRecord]:
        records = []
        for pair in pairs.values():
            closes = resolve_weekly_window(pair.dates, pair.prices)
            if closes is None:
                logger.debug("Not enough weekly data for %s@%s", pair.isin, pair.exchange_name)
                continue

            records.append(RSLevyRecord(
                **pair.identity(),
                algorithm=RSLevyAlgorithm.WEEKLY,
                close_date=closes[0].date,
                rsl_value=rsl_weekly(closes)
            ))

        return records

    def _rs_levy_daily(self, pairs: Dict[PairKey, PairHistory]) -> List[RSLevyRecord]:
        records = []
        for pair in pairs.values():
            window = resolve_daily_window(pair.dates, pair.prices)
            if window is None:
                logger.debug("Not enough daily data for %s@%s", pair.isin, pair.exchange_name)
                continue

            records.append(RSLevyRecord(
                **pair.identity(),
                algorithm=RSLevyAlgorithm.DAILY,
                close_date=window[0][0],
                rsl_value=rsl_daily(window)
            ))

        return records

    def get_quote_counts(self) -> List[Dict[str, Any]]:
        """{'isin', 'exchange_name', 'count'} per pair."""
        return self._ledger.counts()

    def get_latest_quote_dates(self, isin: Optional[str] = None) -> List[Dict[str, Any]]:
        """{'isin', 'exchange_name', 'latest_date'} per pair."""
        return self._ledger.latest_dates(isin)
