"""Aggregate and report models for OpenCode Usage.

Report models serialize with camelCase keys (``model_dump(by_alias=True)``)
so JSON output keeps the field names other OpenCode tooling expects.
"""

from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .usage import TokenUsage, UsageEvent


class ReportModel(BaseModel):
    """Base for models that are emitted as JSON."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        protected_namespaces=(),
    )


class ModelStats(BaseModel):
    """Per-model sub-aggregate inside a session."""

    tokens: int = Field(default=0)
    cost: float = Field(default=0.0)
    messages: int = Field(default=0)


class SessionAggregate(BaseModel):
    """Running totals for one session while events are folded in."""

    session_id: str
    title: str = Field(default="Untitled")
    directory: Optional[str] = Field(default=None)
    events: List[UsageEvent] = Field(default_factory=list)
    tokens: TokenUsage = Field(default_factory=TokenUsage)
    cost: float = Field(default=0.0)
    models: Dict[str, ModelStats] = Field(default_factory=dict)
    start_time: float = Field(
        default=float("inf"), description="Min created_at in the time window"
    )
    end_time: int = Field(default=0, description="Max completed_at in the time window")

    def observe(self, event: UsageEvent) -> None:
        """Widen the session's time range with an event from the time window."""
        self.start_time = min(self.start_time, event.created_at)
        self.end_time = max(self.end_time, event.completed_at)

    def add(self, event: UsageEvent) -> None:
        """Fold a qualifying assistant event into the running totals."""
        self.events.append(event)
        self.tokens.add(event.tokens)
        self.cost += event.cost

        if event.model_id:
            stats = self.models.setdefault(event.model_id, ModelStats())
            stats.tokens += event.tokens.total
            stats.cost += event.cost
            stats.messages += 1

    @property
    def message_count(self) -> int:
        return len(self.events)

    @property
    def primary_model(self) -> str:
        """Model with the most assistant messages; first seen wins ties."""
        best_model = "N/A"
        best_count = 0
        for model, stats in self.models.items():
            if stats.messages > best_count:
                best_model = model
                best_count = stats.messages
        return best_model


class DateRange(ReportModel):
    start: str
    end: str


class TokenTotals(ReportModel):
    input: int = 0
    output: int = 0
    reasoning: int = 0
    cache_read: int = 0
    cache_write: int = 0


class CostSummary(ReportModel):
    total: float = 0.0
    avg_per_session: float = 0.0
    avg_per_message: float = 0.0


class ModelSummary(ReportModel):
    """Model rollup across all sessions in a session-view report."""

    name: str
    tokens: int = 0
    cost: float = 0.0
    sessions: int = 0


class SessionSummary(ReportModel):
    id: str
    title: str
    directory: Optional[str] = None
    start_time: str
    end_time: str
    messages: int
    tokens: int
    cost: float
    model: str


class AnalysisResult(ReportModel):
    """Session-view report."""

    total_sessions: int
    total_messages: int
    date_range: DateRange
    tokens: TokenTotals
    cost: CostSummary
    models: List[ModelSummary] = Field(default_factory=list)
    sessions: Optional[List[SessionSummary]] = None


class ModelBreakdown(ReportModel):
    """Per-model token and cost subtotal within a bucket."""

    model_name: str
    input_tokens: int = 0
    output_tokens: int = 0
    cache_creation_tokens: int = 0
    cache_read_tokens: int = 0
    cost: float = 0.0

    def add(self, event: UsageEvent) -> None:
        self.input_tokens += event.tokens.input
        self.output_tokens += event.tokens.output
        self.cache_creation_tokens += event.tokens.cache_write
        self.cache_read_tokens += event.tokens.cache_read
        self.cost += event.cost


class UsageBucket(ReportModel, ABC):
    """Token and cost totals for one period, optionally scoped to a project."""

    project: Optional[str] = None
    input_tokens: int = 0
    output_tokens: int = 0
    cache_creation_tokens: int = 0
    cache_read_tokens: int = 0
    total_cost: float = 0.0
    models_used: List[str] = Field(default_factory=list)
    model_breakdowns: List[ModelBreakdown] = Field(default_factory=list)

    @property
    @abstractmethod
    def period(self) -> str:
        """Date or month key of the bucket."""

    @property
    def total_tokens(self) -> int:
        return (
            self.input_tokens
            + self.output_tokens
            + self.cache_creation_tokens
            + self.cache_read_tokens
        )

    def add(self, event: UsageEvent) -> None:
        """Fold an assistant event into the bucket and its model breakdown."""
        self.input_tokens += event.tokens.input
        self.output_tokens += event.tokens.output
        self.cache_creation_tokens += event.tokens.cache_write
        self.cache_read_tokens += event.tokens.cache_read
        self.total_cost += event.cost

        if not event.model_id:
            return

        if event.model_id not in self.models_used:
            self.models_used.append(event.model_id)

        breakdown = next(
            (b for b in self.model_breakdowns if b.model_name == event.model_id),
            None,
        )
        if breakdown is None:
            breakdown = ModelBreakdown(model_name=event.model_id)
            self.model_breakdowns.append(breakdown)
        breakdown.add(event)


class DailyUsage(UsageBucket):
    date: str

    @property
    def period(self) -> str:
        return self.date


class MonthlyUsage(UsageBucket):
    month: str

    @property
    def period(self) -> str:
        return self.month


class UsageTotals(ReportModel):
    """Grand totals over a list of buckets."""

    input_tokens: int = 0
    output_tokens: int = 0
    cache_creation_tokens: int = 0
    cache_read_tokens: int = 0
    total_cost: float = 0.0

    @property
    def total_tokens(self) -> int:
        return (
            self.input_tokens
            + self.output_tokens
            + self.cache_creation_tokens
            + self.cache_read_tokens
        )


class DayTotals(BaseModel):
    """Assistant activity for one calendar day, before metric selection."""

    tokens: int = 0
    cost: float = 0.0
    messages: int = 0


class HeatmapDay(ReportModel):
    date: str
    value: Union[int, float] = 0
    level: int = Field(default=0, ge=0, le=4)


class HeatmapData(ReportModel):
    days: List[HeatmapDay] = Field(default_factory=list)
    metric: str
    total: Union[int, float] = 0
    max_value: Union[int, float] = 0
    date_range: DateRange

    @property
    def active_days(self) -> int:
        return sum(1 for day in self.days if day.value > 0)
