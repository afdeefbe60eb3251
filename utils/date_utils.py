"""
Date helpers for match dates and award buckets.
"""

from datetime import date, datetime, timedelta
from typing import Optional, Tuple, Union


class DateUtils:
    """Utilities for parsing and bucketing dates."""

    @staticmethod
    def parse_date(value: Union[str, date, datetime, None]) -> Optional[date]:
        """Parse an ISO date or datetime string into a date."""
        if value is None:
            return None
        if isinstance(value, datetime):
            return value.date()
        if isinstance(value, date):
            return value
        return datetime.fromisoformat(str(value)).date()

    @staticmethod
    def now_iso() -> str:
        return datetime.now().isoformat(timespec='seconds')

    @staticmethod
    def start_of_week(day: date) -> date:
        """Monday of the week containing ``day``."""
        return day - timedelta(days=day.weekday())

    @staticmethod
    def month_range(year: int, month: int) -> Tuple[date, date]:
        """Half-open [first day of month, first day of next month)."""
        start = date(year, month, 1)
        end = date(year + 1, 1, 1) if month == 12 else date(year, month + 1, 1)
        return start, end
