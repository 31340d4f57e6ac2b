"""Time helpers for bucketing epoch-millisecond timestamps in local time."""

from datetime import date, datetime, timedelta
from typing import Iterator

MS_PER_DAY = 24 * 60 * 60 * 1000

NOT_AVAILABLE = "N/A"


class TimeUtils:
    """Conversions between epoch milliseconds and local calendar keys."""

    @staticmethod
    def to_datetime(timestamp_ms: int) -> datetime:
        """Convert epoch milliseconds to a naive local datetime."""
        return datetime.fromtimestamp(timestamp_ms / 1000)

    @staticmethod
    def date_key(timestamp_ms: int) -> str:
        """Local calendar date as ``YYYY-MM-DD``."""
        return TimeUtils.to_datetime(timestamp_ms).strftime("%Y-%m-%d")

    @staticmethod
    def month_key(timestamp_ms: int) -> str:
        """Local calendar month as ``YYYY-MM``."""
        return TimeUtils.to_datetime(timestamp_ms).strftime("%Y-%m")

    @staticmethod
    def format_timestamp(timestamp_ms: float) -> str:
        """Format a timestamp as a date key, or ``N/A`` when it is unset."""
        if not timestamp_ms or timestamp_ms == float("inf"):
            return NOT_AVAILABLE
        return TimeUtils.date_key(int(timestamp_ms))

    @staticmethod
    def cutoff_ms(now_ms: int, days: int) -> int:
        """Start of a trailing window of ``days`` days ending at ``now_ms``."""
        return now_ms - days * MS_PER_DAY

    @staticmethod
    def local_midnight(timestamp_ms: int) -> date:
        """Local calendar day containing ``timestamp_ms``."""
        return TimeUtils.to_datetime(timestamp_ms).date()

    @staticmethod
    def iter_days(start: date, end: date) -> Iterator[date]:
        """Yield every calendar day from ``start`` to ``end`` inclusive."""
        current = start
        while current <= end:
            yield current
            current += timedelta(days=1)
