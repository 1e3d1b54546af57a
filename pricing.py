from datetime import date, datetime
from typing import Union

from errors import InvalidDateRange, ValidationError

SECONDS_PER_DAY = 24 * 60 * 60

DateLike = Union[date, datetime]


def rental_days(start: DateLike, end: DateLike) -> float:
    """Length of the rental in days; partial days count fractionally."""
    duration = end - start
    return duration.total_seconds() / SECONDS_PER_DAY


def compute_total(daily_rate: float, start: DateLike, end: DateLike) -> float:
    if daily_rate is None or daily_rate <= 0:
        raise ValidationError("Daily rate must be positive")
    if end < start:
        raise InvalidDateRange()
    return daily_rate * rental_days(start, end)
