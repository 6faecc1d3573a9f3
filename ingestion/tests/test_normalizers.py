"""
Tests for normalizer functions - transform request quote items to canonical shape.
Using golden fixtures for exact output validation.
"""

import json
import pytest
from datetime import date, datetime
from pathlib import Path

from ingestion.transforms.normalizers import (
    normalize_quotes,
    parse_quote_date,
    summarize_quotes,
    NormalizationError
)


class TestQuoteNormalizer:
    """Tests for normalize_quotes function."""

    def load_fixture(self, filename):
        """Load JSON fixture from golden directory."""
        fixture_path = Path(__file__).parent.parent.parent / 'tests/fixtures/golden' / filename
        with open(fixture_path, 'r') as f:
            return json.load(f)

    def test_normalize_request_quotes(self):
        """Raw request items normalize to the golden canonical rows."""
        raw_data = self.load_fixture('quote_request_raw.json')
        expected = self.load_fixture('quote_request_normalized.json')

        result = normalize_quotes(raw_data['quotes'])

        assert len(result) == len(expected)
        for row, golden in zip(result, expected):
            assert row['date'] == date.fromisoformat(golden['date'])
            assert row['price'] == pytest.approx(golden['price'])

    def test_normalize_empty_list(self):
        assert normalize_quotes([]) == []

    def test_normalize_duplicate_dates_keep_last(self):
        """Duplicate dates collapse to the last value, first position."""
        raw = [
            {'date': '2024-01-15', 'quote': 1.0},
            {'date': '2024-01-16', 'quote': 2.0},
            {'date': '2024-01-15', 'quote': 3.0},
        ]

        result = normalize_quotes(raw)

        assert result == [
            {'date': date(2024, 1, 15), 'price': 3.0},
            {'date': date(2024, 1, 16), 'price': 2.0},
        ]

    def test_normalize_integer_quote_to_float(self):
        result = normalize_quotes([{'date': date(2024, 1, 15), 'quote': 100}])

        assert isinstance(result[0]['price'], float)

    def test_normalize_bad_date(self):
        with pytest.raises(NormalizationError):
            normalize_quotes([{'date': 'yesterday-ish', 'quote': 1.0}])


class TestParseQuoteDate:

    def test_date_passthrough(self):
        assert parse_quote_date(date(2024, 2, 29)) == date(2024, 2, 29)

    def test_datetime_truncated(self):
        assert parse_quote_date(datetime(2024, 2, 29, 17, 30)) == date(2024, 2, 29)

    def test_iso_string(self):
        assert parse_quote_date('2024-02-29') == date(2024, 2, 29)

    def test_timestamp_string(self):
        assert parse_quote_date('2024-02-29T17:30:00Z') == date(2024, 2, 29)

    def test_unsupported_type(self):
        with pytest.raises(NormalizationError):
            parse_quote_date(20240229)


class TestSummarizeQuotes:

    def test_summary(self):
        items = [
            {'date': date(2024, 1, 17), 'price': 1.0},
            {'date': date(2024, 1, 15), 'price': 1.0},
        ]

        assert summarize_quotes(items) == {
            'first_date': date(2024, 1, 15),
            'last_date': date(2024, 1, 17),
            'quote_days': 2
        }

    def test_summary_empty(self):
        assert summarize_quotes([]) == {'first_date': None, 'last_date': None, 'quote_days': 0}
