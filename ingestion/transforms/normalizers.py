"""
Normalizers for transforming request quote items to canonical shape.
Pure functions - no IO, network, or side effects.
Minimal normalization - only when necessary.
"""

from datetime import date, datetime
from typing import Dict, Any, List, Union

from dateutil import parser as date_parser


class NormalizationError(ValueError):
    """Raised when a quote item cannot be normalized."""
    pass


def parse_quote_date(value: Union[date, datetime, str]) -> date:
    """
    Parse a quote date to a calendar date.

    Accepts date/datetime objects and date strings (ISO or anything
    dateutil understands). Time-of-day is dropped; quotes are daily.

    Raises:
        NormalizationError: If the value cannot be parsed
    """
    if isinstance(value, datetime):
        return value.date()

    if isinstance(value, date):
        return value

    if isinstance(value, str):
        try:
            return date.fromisoformat(value)
        except ValueError:
            pass
        try:
            return date_parser.parse(value).date()
        except (ValueError, OverflowError) as e:
            raise NormalizationError(f"Unparsable quote date {value!r}") from e

    raise NormalizationError(f"Unsupported date type {type(value)}")


def normalize_quotes(raw_items: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """
    Transform request quote items to canonical ledger rows.

    Minimal normalization:
    - Date strings to date objects (required for schema)
    - Field name mapping ('quote' in requests, 'price' in the ledger)
    - Deduplication by date (keep last to handle corrections)

    Args:
        raw_items: List of {'date', 'quote'} dictionaries

    Returns:
        List of {'date': date, 'price': float} dictionaries, one per date
    """
    if not raw_items:
        return []

    seen_dates: Dict[date, Dict[str, Any]] = {}

    for raw in raw_items:
        quote_date = parse_quote_date(raw['date'])

        # Position of first occurrence, value of the last
        seen_dates[quote_date] = {
            'date': quote_date,
            'price': float(raw['quote']),
        }

    return list(seen_dates.values())


def summarize_quotes(items: List[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Date range summary of normalized quote rows.

    Returns:
        {'first_date', 'last_date', 'quote_days'} (dates None when empty)
    """
    if not items:
        return {'first_date': None, 'last_date': None, 'quote_days': 0}

    dates = [item['date'] for item in items]
    return {
        'first_date': min(dates),
        'last_date': max(dates),
        'quote_days': len(dates)
    }
