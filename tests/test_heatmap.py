"""Tests for heatmap construction."""

from datetime import date

import pytest

from opencode_usage.models.analytics import DayTotals
from opencode_usage.models.usage import TokenUsage, UsageEvent
from opencode_usage.services.heatmap import HeatmapBuilder

from conftest import local_ms


class TestCalculateLevel:
    """Tests for relative intensity levels."""

    @pytest.mark.parametrize(
        "value, expected",
        [(0, 0), (1, 1), (24, 1), (25, 2), (49, 2), (50, 3), (74, 3), (75, 4), (100, 4)],
    )
    def test_thresholds(self, value, expected):
        assert HeatmapBuilder.calculate_level(value, 100) == expected

    def test_zero_max(self):
        assert HeatmapBuilder.calculate_level(0, 0) == 0


class TestAggregateDays:
    """Tests for per-day totals."""

    def test_sums_per_local_day(self):
        events = [
            UsageEvent(
                id=str(i),
                session_id="ses_1",
                role="assistant",
                tokens=TokenUsage(input=10, reasoning=5),
                cost=0.5,
                created_at=created,
            )
            for i, created in enumerate(
                [local_ms(2025, 3, 1, 1), local_ms(2025, 3, 1, 23), local_ms(2025, 3, 2, 8)]
            )
        ]

        daily = HeatmapBuilder.aggregate_days(events)

        assert daily["2025-03-01"] == DayTotals(tokens=30, cost=1.0, messages=2)
        assert daily["2025-03-02"] == DayTotals(tokens=15, cost=0.5, messages=1)


class TestBuild:
    """Tests for the dense day series."""

    def test_zero_fill(self):
        data = HeatmapBuilder.build({}, date(2025, 1, 1), date(2025, 1, 30), "tokens")

        assert len(data.days) == 30
        assert all(d.value == 0 and d.level == 0 for d in data.days)
        assert data.max_value == 0
        assert data.total == 0
        assert data.days[0].date == "2025-01-01"
        assert data.days[-1].date == "2025-01-30"

    def test_window_crosses_year(self):
        data = HeatmapBuilder.build({}, date(2024, 12, 30), date(2025, 1, 2), "messages")
        assert [d.date for d in data.days] == [
            "2024-12-30",
            "2024-12-31",
            "2025-01-01",
            "2025-01-02",
        ]

    def test_levels_are_scale_invariant(self):
        raw = [0, 3, 7, 12, 20, 40, 41]
        start = date(2025, 2, 1)

        def levels(factor):
            daily = {
                date(2025, 2, 1 + i).isoformat(): DayTotals(tokens=value * factor)
                for i, value in enumerate(raw)
            }
            data = HeatmapBuilder.build(daily, start, date(2025, 2, 7), "tokens")
            return [d.level for d in data.days]

        assert levels(1) == levels(13) == levels(1000)
        assert levels(1) == [0, 1, 1, 2, 2, 4, 4]

    def test_cost_metric(self):
        daily = {"2025-01-02": DayTotals(tokens=10, cost=2.5, messages=1)}
        data = HeatmapBuilder.build(daily, date(2025, 1, 1), date(2025, 1, 2), "cost")

        assert [d.value for d in data.days] == [0, 2.5]
        assert data.total == 2.5
        assert data.max_value == 2.5

    def test_unknown_metric(self):
        with pytest.raises(ValueError):
            HeatmapBuilder.build({}, date(2025, 1, 1), date(2025, 1, 2), "lines")
