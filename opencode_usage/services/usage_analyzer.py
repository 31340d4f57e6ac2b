"""Usage analysis service for OpenCode Usage."""

import logging
import time
from typing import Callable, Dict, Iterator, List, Optional, Tuple, Type, TypeVar

from ..config import Config
from ..models.analytics import (
    AnalysisResult,
    CostSummary,
    DailyUsage,
    DateRange,
    HeatmapData,
    ModelSummary,
    MonthlyUsage,
    SessionAggregate,
    SessionSummary,
    TokenTotals,
    UsageBucket,
    UsageTotals,
)
from ..models.usage import TokenUsage, UsageEvent
from ..utils.data_source import DataSource, MetadataResolver
from ..utils.filters import METRICS, AnalyzeOptions, UsageFilter
from ..utils.time_utils import NOT_AVAILABLE, TimeUtils
from .heatmap import HeatmapBuilder

logger = logging.getLogger(__name__)

B = TypeVar("B", bound=UsageBucket)


def _safe_divide(numerator: float, denominator: int) -> float:
    return numerator / denominator if denominator else 0.0


class UsageAnalyzer:
    """Aggregates OpenCode usage events into session, period and heatmap views."""

    def __init__(
        self,
        data_source: DataSource,
        config: Optional[Config] = None,
        clock: Callable[[], float] = time.time,
    ):
        """Initialize usage analyzer.

        Args:
            data_source: Active storage backend
            config: Configuration supplying default time windows
            clock: Returns the current time in epoch seconds
        """
        self.data_source = data_source
        self.config = config or Config()
        self.clock = clock
        self.metadata = MetadataResolver(data_source)

    def now_ms(self) -> int:
        return int(self.clock() * 1000)

    def _prepare(
        self, options: Optional[AnalyzeOptions], default_days: int
    ) -> Tuple[AnalyzeOptions, UsageFilter]:
        options = options or AnalyzeOptions()
        if options.days is None:
            options = options.model_copy(update={"days": default_days})
        return options, UsageFilter(options, self.now_ms())

    def _load_events(self, usage_filter: UsageFilter) -> Iterator[UsageEvent]:
        # Open-ended so every backend applies only the lower bound.
        return self.data_source.iter_events(usage_filter.cutoff_ms, None)

    def _qualifying_events(self, usage_filter: UsageFilter) -> Iterator[UsageEvent]:
        for event in self._load_events(usage_filter):
            if usage_filter.qualifies(event):
                yield event

    # Session view

    def analyze_usage(self, options: Optional[AnalyzeOptions] = None) -> AnalysisResult:
        """Summarize usage per session.

        Session time ranges cover every event inside the time window, while
        tokens, cost and message counts only include assistant events that
        pass every filter.

        Args:
            options: Filters and presentation flags

        Returns:
            Session-view report; ``sessions`` is omitted when ``options.summary``
        """
        options, usage_filter = self._prepare(
            options, self.config.analytics.session_days
        )

        aggregates: Dict[str, SessionAggregate] = {}
        for event in self._load_events(usage_filter):
            if not usage_filter.passes_time_window(event):
                continue

            aggregate = aggregates.get(event.session_id)
            if aggregate is None:
                aggregate = SessionAggregate(session_id=event.session_id)
                aggregates[event.session_id] = aggregate
            aggregate.observe(event)

            if event.is_assistant and usage_filter.passes_scope(event):
                aggregate.add(event)

        sessions = [a for a in aggregates.values() if a.message_count > 0]
        for aggregate in sessions:
            aggregate.title = self.metadata.title(aggregate.session_id)
            aggregate.directory = self.metadata.directory(aggregate.session_id)

        sessions.sort(key=lambda a: a.start_time, reverse=not options.reverse)
        logger.debug(
            "Session view: %d of %d sessions have qualifying messages",
            len(sessions),
            len(aggregates),
        )

        return self._build_result(sessions, include_sessions=not options.summary)

    def _build_result(
        self, sessions: List[SessionAggregate], include_sessions: bool
    ) -> AnalysisResult:
        tokens = TokenUsage()
        total_cost = 0.0
        total_messages = 0
        for aggregate in sessions:
            tokens.add(aggregate.tokens)
            total_cost += aggregate.cost
            total_messages += aggregate.message_count

        result = AnalysisResult(
            total_sessions=len(sessions),
            total_messages=total_messages,
            date_range=self._date_range(sessions),
            tokens=TokenTotals(
                input=tokens.input,
                output=tokens.output,
                reasoning=tokens.reasoning,
                cache_read=tokens.cache_read,
                cache_write=tokens.cache_write,
            ),
            cost=CostSummary(
                total=total_cost,
                avg_per_session=_safe_divide(total_cost, len(sessions)),
                avg_per_message=_safe_divide(total_cost, total_messages),
            ),
            models=self._model_rollup(sessions),
        )

        if include_sessions:
            result.sessions = [
                SessionSummary(
                    id=aggregate.session_id,
                    title=aggregate.title,
                    directory=aggregate.directory,
                    start_time=TimeUtils.format_timestamp(aggregate.start_time),
                    end_time=TimeUtils.format_timestamp(aggregate.end_time),
                    messages=aggregate.message_count,
                    tokens=aggregate.tokens.total,
                    cost=aggregate.cost,
                    model=aggregate.primary_model,
                )
                for aggregate in sessions
            ]
        return result

    @staticmethod
    def _date_range(sessions: List[SessionAggregate]) -> DateRange:
        starts = [
            a.start_time for a in sessions if a.start_time and a.start_time != float("inf")
        ]
        ends = [a.end_time for a in sessions if a.end_time]
        return DateRange(
            start=TimeUtils.format_timestamp(min(starts)) if starts else NOT_AVAILABLE,
            end=TimeUtils.format_timestamp(max(ends)) if ends else NOT_AVAILABLE,
        )

    @staticmethod
    def _model_rollup(sessions: List[SessionAggregate]) -> List[ModelSummary]:
        """Tokens, cost and session count per model, most expensive first."""
        rollup: Dict[str, ModelSummary] = {}
        for aggregate in sessions:
            for model, stats in aggregate.models.items():
                summary = rollup.setdefault(model, ModelSummary(name=model))
                summary.tokens += stats.tokens
                summary.cost += stats.cost
                summary.sessions += 1
        return sorted(rollup.values(), key=lambda m: m.cost, reverse=True)

    # Period views

    def analyze_daily_usage(
        self, options: Optional[AnalyzeOptions] = None
    ) -> List[DailyUsage]:
        """Bucket qualifying assistant events by local calendar day."""
        options, usage_filter = self._prepare(options, self.config.analytics.daily_days)
        return self._bucket_events(
            usage_filter, options.group_by_project, DailyUsage, "date", TimeUtils.date_key
        )

    def analyze_monthly_usage(
        self, options: Optional[AnalyzeOptions] = None
    ) -> List[MonthlyUsage]:
        """Bucket qualifying assistant events by local calendar month."""
        options, usage_filter = self._prepare(
            options, self.config.analytics.monthly_days
        )
        return self._bucket_events(
            usage_filter,
            options.group_by_project,
            MonthlyUsage,
            "month",
            TimeUtils.month_key,
        )

    def _bucket_events(
        self,
        usage_filter: UsageFilter,
        group_by_project: bool,
        bucket_type: Type[B],
        period_field: str,
        period_key: Callable[[int], str],
    ) -> List[B]:
        buckets: Dict[Tuple[str, Optional[str]], B] = {}
        for event in self._qualifying_events(usage_filter):
            period = period_key(event.created_at)
            project = self.metadata.project(event.session_id) if group_by_project else None

            bucket = buckets.get((period, project))
            if bucket is None:
                bucket = bucket_type(**{period_field: period, "project": project})
                buckets[(period, project)] = bucket
            bucket.add(event)

        return [buckets[key] for key in sorted(buckets, key=lambda k: (k[0], k[1] or ""))]

    @staticmethod
    def calculate_totals(buckets: List[UsageBucket]) -> UsageTotals:
        """Grand totals over a list of daily or monthly buckets."""
        totals = UsageTotals()
        for bucket in buckets:
            totals.input_tokens += bucket.input_tokens
            totals.output_tokens += bucket.output_tokens
            totals.cache_creation_tokens += bucket.cache_creation_tokens
            totals.cache_read_tokens += bucket.cache_read_tokens
            totals.total_cost += bucket.total_cost
        return totals

    @staticmethod
    def group_buckets_by_project(buckets: List[B]) -> Dict[str, List[B]]:
        """Split project-tagged buckets into per-project lists, in first-seen order."""
        grouped: Dict[str, List[B]] = {}
        for bucket in buckets:
            grouped.setdefault(bucket.project or MetadataResolver.DEFAULT_PROJECT, []).append(
                bucket
            )
        return grouped

    # Heatmap

    def analyze_heatmap(self, options: Optional[AnalyzeOptions] = None) -> HeatmapData:
        """Build a calendar heatmap over the trailing time window.

        Raises:
            ValueError: If ``options.metric`` is not tokens, cost or messages
        """
        options, usage_filter = self._prepare(
            options, self.config.analytics.heatmap_days
        )
        if options.metric not in METRICS:
            raise ValueError(
                f"Unknown heatmap metric '{options.metric}'. "
                f"Expected one of: {', '.join(METRICS)}"
            )

        daily = HeatmapBuilder.aggregate_days(self._qualifying_events(usage_filter))
        return HeatmapBuilder.build(
            daily,
            TimeUtils.local_midnight(usage_filter.cutoff_ms),
            TimeUtils.local_midnight(usage_filter.now_ms),
            options.metric,
        )
