"""
Tests for the analytics engine - ledger snapshot to published metrics.
Uses in-memory SQLite seeded through the real ledger loaders.
"""

import math
import pytest
import sqlite3
from datetime import date, timedelta
from unittest.mock import patch

import pandas as pd

from analysis.analytics_engine import (
    AnalyticsEngine,
    RSLevyAlgorithm,
    PerformanceRecord,
    group_quotes_by_pair,
    parse_algorithm
)
from analysis.calculations.intervals import Interval, IntervalUnit, InvalidArgumentError
from storage.ledger import QuoteLedger
from storage.loaders import init_database, upsert_quotes
from storage.master_data import add_security, add_exchange

THURSDAY = date(2024, 7, 4)


@pytest.fixture
def ledger():
    """In-memory ledger with three securities on XETRA."""
    conn = sqlite3.connect(':memory:')
    init_database(conn)
    add_exchange(conn, 'XETRA')
    add_exchange(conn, 'FRA')
    add_security(conn, 'DE0007164600', 'SAP SE', 'share')
    add_security(conn, 'US0378331005', 'Apple Inc.', 'share')
    add_security(conn, 'IE00B4L5Y983', 'iShares Core MSCI World', 'etf')
    return QuoteLedger(conn)


@pytest.fixture
def engine(ledger):
    return AnalyticsEngine(ledger)


def seed(ledger, isin, exchange, dates, prices):
    conn = ledger.connection
    security_id = conn.execute("SELECT id FROM securities WHERE isin = ?", (isin,)).fetchone()[0]
    exchange_id = conn.execute("SELECT id FROM exchanges WHERE name = ?", (exchange,)).fetchone()[0]
    items = [{'date': d, 'price': p} for d, p in zip(dates, prices)]
    upsert_quotes(conn, security_id, exchange_id, items)


def consecutive_days(end: date, count: int):
    return [end - timedelta(days=count - 1 - i) for i in range(count)]


class TestGroupQuotesByPair:

    def test_groups_and_orders(self):
        frame = pd.DataFrame([
            {'security_id': 1, 'exchange_id': 1, 'isin': 'A' * 12, 'security_name': 'A',
             'instrument_type': 'share', 'exchange_name': 'X', 'date': date(2024, 1, 2), 'price': 2.0},
            {'security_id': 1, 'exchange_id': 1, 'isin': 'A' * 12, 'security_name': 'A',
             'instrument_type': 'share', 'exchange_name': 'X', 'date': date(2024, 1, 1), 'price': 1.0},
            {'security_id': 1, 'exchange_id': 2, 'isin': 'A' * 12, 'security_name': 'A',
             'instrument_type': 'share', 'exchange_name': 'Y', 'date': date(2024, 1, 1), 'price': 5.0},
        ])

        pairs = group_quotes_by_pair(frame)

        assert set(pairs.keys()) == {(1, 1), (1, 2)}
        assert pairs[(1, 1)].dates == [date(2024, 1, 1), date(2024, 1, 2)]
        assert pairs[(1, 1)].prices == [1.0, 2.0]
        assert pairs[(1, 2)].exchange_name == 'Y'

    def test_empty_frame(self):
        assert group_quotes_by_pair(pd.DataFrame()) == {}


class TestPerformanceQuotes:

    def test_one_year_baseline(self, ledger, engine):
        dates = consecutive_days(date(2024, 6, 30), 600)
        prices = [float(i) for i in range(600)]
        seed(ledger, 'DE0007164600', 'XETRA', dates, prices)

        records = engine.get_performance_quotes(Interval(1, IntervalUnit.YEAR))

        assert len(records) == 1
        record = records[0]
        assert record.isin == 'DE0007164600'
        assert record.security_name == 'SAP SE'
        assert record.instrument_type == 'share'
        assert record.exchange_name == 'XETRA'
        assert record.latest_date == date(2024, 6, 30)
        assert record.latest_price == 599.0
        assert record.base_date == date(2023, 6, 30)
        assert record.base_price == prices[dates.index(date(2023, 6, 30))]

    def test_short_history_excluded(self, ledger, engine):
        """Pair whose earliest quote is 3 months old has no 6 month baseline."""
        seed(ledger, 'DE0007164600', 'XETRA', consecutive_days(date(2024, 6, 30), 400), [1.0] * 400)
        seed(ledger, 'US0378331005', 'XETRA', consecutive_days(date(2024, 6, 30), 92), [1.0] * 92)

        records = engine.get_performance_quotes(Interval(6, IntervalUnit.MONTH))

        assert [r.isin for r in records] == ['DE0007164600']

    def test_pairs_on_different_exchanges(self, ledger, engine):
        seed(ledger, 'DE0007164600', 'XETRA', [date(2024, 1, 1), date(2024, 1, 10)], [10.0, 12.0])
        seed(ledger, 'DE0007164600', 'FRA', [date(2024, 1, 1), date(2024, 1, 12)], [20.0, 30.0])

        records = engine.get_performance_quotes(Interval(5, IntervalUnit.DAY))
        by_exchange = {r.exchange_name: r for r in records}

        assert by_exchange['XETRA'].latest_price == 12.0
        assert by_exchange['XETRA'].base_price == 10.0
        assert by_exchange['FRA'].performance == pytest.approx(1.5)

    def test_invalid_interval_rejected_before_reading(self, ledger, engine):
        with patch.object(ledger, 'frame') as mock_frame:
            with pytest.raises(InvalidArgumentError):
                engine.get_performance_quotes({'unit': 'day', 'count': 0})
            mock_frame.assert_not_called()

    def test_empty_ledger(self, engine):
        assert engine.get_performance_quotes(Interval(1, IntervalUnit.DAY)) == []

    def test_record_serialization(self):
        record = PerformanceRecord(
            isin='DE0007164600', security_name='SAP SE', instrument_type='share',
            exchange_name='XETRA', latest_date=date(2024, 6, 30), latest_price=150.0,
            base_date=date(2023, 6, 30), base_price=0.0
        )

        assert record.to_dict()['base_date'] == '2023-06-30'
        assert math.isnan(record.performance)


class TestRSLevy:

    def test_weekly(self, ledger, engine):
        dates = sorted(THURSDAY - timedelta(weeks=k) for k in range(28))
        seed(ledger, 'DE0007164600', 'XETRA', dates, [100.0] * 27 + [135.0])
        # Only 26 weeks of history
        short = sorted(THURSDAY - timedelta(weeks=k) for k in range(26))
        seed(ledger, 'US0378331005', 'XETRA', short, [100.0] * 26)

        records = engine.get_rs_levy('weekly')

        assert len(records) == 1
        record = records[0]
        assert record.isin == 'DE0007164600'
        assert record.algorithm == RSLevyAlgorithm.WEEKLY
        assert record.close_date == THURSDAY
        assert record.rsl_value == pytest.approx((135.0 * 27) / (135.0 + 26 * 100.0))

        payload = record.to_dict()
        assert payload['newest_weekly_close'] == '2024-07-04'
        assert 'latest_date' not in payload

    def test_daily(self, ledger, engine):
        dates = consecutive_days(date(2024, 6, 30), 200)
        seed(ledger, 'DE0007164600', 'XETRA', dates, [50.0] * 199 + [100.0])
        seed(ledger, 'US0378331005', 'XETRA', dates[1:], [50.0] * 199)

        records = engine.get_rs_levy(RSLevyAlgorithm.DAILY)

        assert len(records) == 1
        record = records[0]
        assert record.isin == 'DE0007164600'
        assert record.close_date == date(2024, 6, 30)
        assert record.rsl_value == pytest.approx(100.0 / 49.75)
        assert record.to_dict()['latest_date'] == '2024-06-30'

    def test_daily_degenerate_row_does_not_abort(self, ledger, engine):
        dates = consecutive_days(date(2024, 6, 30), 200)
        seed(ledger, 'DE0007164600', 'XETRA', dates, [0.0] * 200)
        seed(ledger, 'IE00B4L5Y983', 'XETRA', dates, [80.0] * 200)

        records = {r.isin: r for r in engine.get_rs_levy('daily')}

        assert math.isnan(records['DE0007164600'].rsl_value)
        assert records['IE00B4L5Y983'].rsl_value == pytest.approx(1.0)
        assert records['IE00B4L5Y983'].instrument_type == 'etf'

    def test_reads_current_snapshot(self, ledger, engine):
        """Each call recomputes from the ledger; ingestion in between is visible."""
        dates = consecutive_days(date(2024, 6, 30), 200)
        seed(ledger, 'DE0007164600', 'XETRA', dates, [50.0] * 200)
        assert engine.get_rs_levy('daily')[0].rsl_value == pytest.approx(1.0)

        seed(ledger, 'DE0007164600', 'XETRA', [date(2024, 6, 30)], [100.0])
        assert engine.get_rs_levy('daily')[0].rsl_value == pytest.approx(100.0 / 50.25)

    def test_unknown_algorithm(self, engine):
        with pytest.raises(InvalidArgumentError, match="Unknown RS Levy algorithm"):
            engine.get_rs_levy('monthly')

    def test_parse_algorithm(self):
        assert parse_algorithm(' Weekly ') == RSLevyAlgorithm.WEEKLY
        assert parse_algorithm(RSLevyAlgorithm.DAILY) == RSLevyAlgorithm.DAILY


class TestCountsAndLatest:

    def test_counts(self, ledger, engine):
        seed(ledger, 'DE0007164600', 'XETRA', consecutive_days(date(2024, 6, 30), 5), [1.0] * 5)
        seed(ledger, 'DE0007164600', 'FRA', consecutive_days(date(2024, 6, 29), 3), [1.0] * 3)

        counts = engine.get_quote_counts()

        assert {(c['isin'], c['exchange_name'], c['count']) for c in counts} == {
            ('DE0007164600', 'XETRA', 5),
            ('DE0007164600', 'FRA', 3),
        }

        latest = {r['exchange_name']: r['latest_date'] for r in engine.get_latest_quote_dates('DE0007164600')}
        assert latest == {'XETRA': date(2024, 6, 30), 'FRA': date(2024, 6, 29)}
