"""
Core validators for quote ingestion requests.
Pure functions - no IO, network, or side effects.
"""

import math
from datetime import date
from typing import Dict, Any


class ValidationError(ValueError):
    """Raised when data validation fails."""
    pass


ISIN_LENGTH = 12


def validate_quote_request(request: Dict[str, Any]) -> None:
    """
    Validate an ingestion request payload.

    Expected shape: {'isin': str, 'exchange': str | int, 'quotes': [{'date', 'quote'}]}

    Args:
        request: Dictionary with the raw request

    Raises:
        ValidationError: If validation fails
    """
    if not isinstance(request, dict):
        raise ValidationError(f"request must be a mapping, got {type(request)}")

    required_keys = {'isin', 'exchange', 'quotes'}
    missing = required_keys - set(request.keys())
    if missing:
        raise ValidationError(f"Missing required keys: {missing}")

    isin = request['isin']
    if not isinstance(isin, str):
        raise ValidationError(f"isin must be string, got {type(isin)}")

    if len(isin) != ISIN_LENGTH:
        raise ValidationError("ISIN must be exactly 12 characters long")

    exchange = request['exchange']
    if isinstance(exchange, bool) or not isinstance(exchange, (str, int)):
        raise ValidationError(f"exchange must be a name or id, got {type(exchange)}")

    if isinstance(exchange, str) and not exchange.strip():
        raise ValidationError("exchange must be non-empty")

    quotes = request['quotes']
    if not isinstance(quotes, list):
        raise ValidationError(f"quotes must be a list, got {type(quotes)}")

    for index, item in enumerate(quotes):
        try:
            validate_quote_item(item)
        except ValidationError as e:
            raise ValidationError(f"quotes[{index}]: {e}") from e


def validate_quote_item(item: Dict[str, Any]) -> None:
    """
    Validate a single {'date', 'quote'} item.

    Dates may be date objects or ISO strings; they are parsed later by the
    normalizer. Quotes must be finite, non-negative numbers.

    Raises:
        ValidationError: If validation fails
    """
    if not isinstance(item, dict):
        raise ValidationError(f"item must be an object, got {type(item)}")

    missing = {'date', 'quote'} - set(item.keys())
    if missing:
        raise ValidationError(f"Missing required keys: {missing}")

    if not isinstance(item['date'], (date, str)):
        raise ValidationError(f"date must be date or string, got {type(item['date'])}")

    value = item['quote']
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(f"quote must be numeric, got {type(value)}")

    if not math.isfinite(value):
        raise ValidationError(f"quote must be finite, got {value}")

    if value < 0:
        raise ValidationError(f"quote must be non-negative, got {value}")
