"""
Calendar interval utilities.
Pure functions for parsing performance intervals and stepping back in time.
"""

from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Union

from dateutil.relativedelta import relativedelta


class InvalidArgumentError(ValueError):
    """Raised when an analytics argument is malformed."""
    pass


class IntervalUnit(str, Enum):
    """Calendar units a performance interval can be expressed in."""
    DAY = 'day'
    MONTH = 'month'
    YEAR = 'year'


@dataclass(frozen=True)
class Interval:
    """A calendar look-back such as 6 months or 1 year."""
    count: int
    unit: IntervalUnit

    def __post_init__(self):
        if isinstance(self.count, bool) or not isinstance(self.count, int):
            raise InvalidArgumentError(f"count must be an integer, got {self.count!r}")

        if self.count < 1:
            raise InvalidArgumentError(f"count must be >= 1, got {self.count}")

        if not isinstance(self.unit, IntervalUnit):
            raise InvalidArgumentError(f"unit must be an IntervalUnit, got {self.unit!r}")

    def __str__(self) -> str:
        suffix = '' if self.count == 1 else 's'
        return f"{self.count} {self.unit.value}{suffix}"


def parse_interval(unit: Union[str, IntervalUnit], count: Union[int, str]) -> Interval:
    """
    Build an Interval from loosely typed request values.

    Args:
        unit: 'day', 'month' or 'year' (case-insensitive)
        count: Positive integer, or a string holding one

    Returns:
        Validated Interval

    Raises:
        InvalidArgumentError: On unknown unit or count < 1
    """
    if isinstance(unit, IntervalUnit):
        parsed_unit = unit
    else:
        try:
            parsed_unit = IntervalUnit(str(unit).strip().lower())
        except ValueError:
            valid = ', '.join(u.value for u in IntervalUnit)
            raise InvalidArgumentError(f"Unknown interval unit {unit!r} (expected one of: {valid})")

    if isinstance(count, str):
        try:
            count = int(count.strip())
        except ValueError:
            raise InvalidArgumentError(f"count must be an integer, got {count!r}")

    return Interval(count=count, unit=parsed_unit)


def subtract_interval(anchor: date, interval: Interval) -> date:
    """
    Step back from anchor by a calendar interval.

    Month and year steps clamp to the last valid day of the target month
    (2024-03-31 minus 1 month is 2024-02-29).
    """
    if interval.unit == IntervalUnit.DAY:
        delta = relativedelta(days=interval.count)
    elif interval.unit == IntervalUnit.MONTH:
        delta = relativedelta(months=interval.count)
    else:
        delta = relativedelta(years=interval.count)

    return anchor - delta
