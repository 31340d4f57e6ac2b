"""Calendar heatmap construction.

Turns per-day assistant activity into a dense, zero-filled series over a
window and classifies each day into one of five relative intensity levels.
"""

from datetime import date
from typing import Dict, Iterable, Union

from ..models.analytics import DateRange, DayTotals, HeatmapData, HeatmapDay
from ..models.usage import UsageEvent
from ..utils.filters import METRICS
from ..utils.time_utils import TimeUtils

Number = Union[int, float]


class HeatmapBuilder:
    """Builds heatmap data from filtered assistant events."""

    @staticmethod
    def aggregate_days(events: Iterable[UsageEvent]) -> Dict[str, DayTotals]:
        """Sum tokens, cost and message count per local calendar day."""
        daily: Dict[str, DayTotals] = {}
        for event in events:
            totals = daily.setdefault(TimeUtils.date_key(event.created_at), DayTotals())
            totals.tokens += event.tokens.total
            totals.cost += event.cost
            totals.messages += 1
        return daily

    @staticmethod
    def calculate_level(value: Number, max_value: Number) -> int:
        """Intensity level 0-4 of ``value`` relative to the window maximum."""
        if value <= 0 or max_value <= 0:
            return 0

        ratio = value / max_value
        if ratio >= 0.75:
            return 4
        if ratio >= 0.5:
            return 3
        if ratio >= 0.25:
            return 2
        return 1

    @staticmethod
    def build(
        daily: Dict[str, DayTotals],
        window_start: date,
        window_end: date,
        metric: str = "tokens",
    ) -> HeatmapData:
        """Build a zero-filled heatmap over ``[window_start, window_end]``.

        Args:
            daily: Per-day totals keyed by ``YYYY-MM-DD``
            window_start: First calendar day of the window
            window_end: Last calendar day of the window, inclusive
            metric: One of ``tokens``, ``cost`` or ``messages``

        Returns:
            Heatmap data with one entry per calendar day

        Raises:
            ValueError: If the metric is unknown
        """
        if metric not in METRICS:
            raise ValueError(
                f"Unknown heatmap metric '{metric}'. Expected one of: {', '.join(METRICS)}"
            )

        days = []
        max_value: Number = 0
        total: Number = 0
        for day in TimeUtils.iter_days(window_start, window_end):
            key = day.isoformat()
            totals = daily.get(key)
            value = getattr(totals, metric) if totals is not None else 0
            days.append(HeatmapDay(date=key, value=value))
            max_value = max(max_value, value)
            total += value

        # Levels need the final maximum.
        for day_entry in days:
            day_entry.level = HeatmapBuilder.calculate_level(day_entry.value, max_value)

        return HeatmapData(
            days=days,
            metric=metric,
            total=total,
            max_value=max_value,
            date_range=DateRange(
                start=window_start.isoformat(), end=window_end.isoformat()
            ),
        )
