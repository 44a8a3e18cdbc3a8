"""
Date and time utility functions for the sales workflow engine.
Provides the injectable clock used for expiry, overdue and aging calculations.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime, time, timedelta
from typing import Optional, Tuple, Union
import pytz
from dateutil.relativedelta import relativedelta

UTC_TZ = pytz.UTC

DateLike = Union[date, datetime]


class Clock(ABC):
    """Source of "now" for the engine."""

    @abstractmethod
    def now(self) -> datetime:
        """Current timezone-aware datetime."""

    def today(self) -> date:
        return self.now().date()


class SystemClock(Clock):
    """Wall clock in the configured timezone."""

    def __init__(self, timezone_name: str = "UTC"):
        self.tz = pytz.timezone(timezone_name)

    def now(self) -> datetime:
        return datetime.now(self.tz)


class FixedClock(Clock):
    """Clock frozen at a given instant; advance() moves it forward."""

    def __init__(self, current: datetime):
        self._current = DateUtils.ensure_aware(current)

    def now(self) -> datetime:
        return self._current

    def set(self, current: datetime) -> None:
        self._current = DateUtils.ensure_aware(current)

    def advance(self, **kwargs) -> datetime:
        self._current = self._current + timedelta(**kwargs)
        return self._current


class DateUtils:
    """Date helpers shared by the workflow services."""

    @staticmethod
    def ensure_aware(dt: datetime, tz=UTC_TZ) -> datetime:
        """Attach a timezone to naive datetimes (UTC by default)."""
        if dt.tzinfo is None:
            return tz.localize(dt)
        return dt

    @staticmethod
    def to_date(value: DateLike) -> date:
        if isinstance(value, datetime):
            return value.date()
        return value

    @staticmethod
    def start_of_day(value: DateLike) -> datetime:
        """Midnight UTC for a date, or an aware copy of a datetime."""
        if isinstance(value, datetime):
            return DateUtils.ensure_aware(value)
        return UTC_TZ.localize(datetime.combine(value, time.min))

    @staticmethod
    def add_months(value: DateLike, months: int) -> DateLike:
        """Calendar month arithmetic (Jan 31 + 1 month -> Feb 28/29)."""
        return value + relativedelta(months=months)

    @staticmethod
    def add_days(value: DateLike, days: int) -> DateLike:
        return value + timedelta(days=days)

    @staticmethod
    def days_between(start: DateLike, end: DateLike) -> int:
        """Whole calendar days from start to end (negative if end is earlier)."""
        return (DateUtils.to_date(end) - DateUtils.to_date(start)).days

    @staticmethod
    def fractional_days_between(start: datetime, end: datetime) -> float:
        delta = DateUtils.ensure_aware(end) - DateUtils.ensure_aware(start)
        return delta.total_seconds() / 86400

    @staticmethod
    def is_within(value: datetime, start: Optional[datetime], end: Optional[datetime]) -> bool:
        """Inclusive range check; open bounds are ignored."""
        value = DateUtils.ensure_aware(value)
        if start is not None and value < DateUtils.ensure_aware(start):
            return False
        if end is not None and value > DateUtils.ensure_aware(end):
            return False
        return True

    @staticmethod
    def previous_period(start: datetime, end: datetime) -> Tuple[datetime, datetime]:
        """Same-length window ending just before start."""
        start = DateUtils.ensure_aware(start)
        end = DateUtils.ensure_aware(end)
        length = end - start
        previous_end = start - timedelta(microseconds=1)
        return previous_end - length, previous_end

    @staticmethod
    def month_label(value: DateLike) -> str:
        return value.strftime('%Y-%m')

    @staticmethod
    def code_date(value: DateLike) -> str:
        """Date part of document numbers."""
        return value.strftime('%Y%m%d')
