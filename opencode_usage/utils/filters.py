"""Event filter pipeline for OpenCode Usage.

Stages run in a fixed order: time window, model pattern, project pattern,
current-directory scope. An event is dropped on its first failing stage.
"""

import os
from typing import Optional

from pydantic import BaseModel, Field

from ..models.usage import UsageEvent
from .time_utils import TimeUtils

METRICS = ("tokens", "cost", "messages")


class AnalyzeOptions(BaseModel):
    """Options recognized by every analysis view."""

    days: Optional[int] = Field(default=None, ge=0, description="Look-back window in days")
    model: Optional[str] = Field(default=None, description="Model substring pattern")
    project: Optional[str] = Field(default=None, description="Project path pattern")
    project_exact: bool = Field(default=False)
    current_only: bool = Field(default=False)
    current_path: Optional[str] = Field(
        default=None, description="Overrides the working directory for current_only"
    )
    group_by_project: bool = Field(default=False)
    reverse: bool = Field(default=False)
    summary: bool = Field(default=False)
    metric: str = Field(default="tokens")


def normalize_project_path(path: str) -> str:
    """Lower-case a path and strip its trailing slash, keeping a bare root."""
    normalized = path.lower()
    while len(normalized) > 1 and normalized.endswith("/"):
        normalized = normalized[:-1]
    return normalized


def _with_trailing_slash(path: str) -> str:
    path = path.lower()
    return path if path.endswith("/") else path + "/"


def matches_exact_project(path: str, pattern: str) -> bool:
    """True if ``path`` is ``pattern`` itself or lies somewhere beneath it."""
    path = normalize_project_path(path)
    pattern = normalize_project_path(pattern)
    if path == pattern:
        return True
    prefix = pattern if pattern.endswith("/") else pattern + "/"
    return path.startswith(prefix)


class UsageFilter:
    """Applies one set of options to a stream of events.

    Args:
        options: Active filter options
        now_ms: Reference time for the look-back window
        current_path: Working directory for the current-directory scope;
            falls back to ``options.current_path`` and then ``os.getcwd()``
    """

    def __init__(
        self,
        options: AnalyzeOptions,
        now_ms: int,
        current_path: Optional[str] = None,
    ):
        self.options = options
        self.now_ms = now_ms
        self.cutoff_ms = (
            TimeUtils.cutoff_ms(now_ms, options.days) if options.days is not None else None
        )

        self.model_pattern = options.model.lower() if options.model else None
        self.project_pattern = (
            normalize_project_path(options.project) if options.project else None
        )

        self.current_dir: Optional[str] = None
        if options.current_only:
            self.current_dir = _with_trailing_slash(
                current_path or options.current_path or os.getcwd()
            )

    def passes_time_window(self, event: UsageEvent) -> bool:
        if self.cutoff_ms is None:
            return True
        return event.created_at >= self.cutoff_ms

    def passes_model(self, event: UsageEvent) -> bool:
        if not self.model_pattern or not event.model_id:
            return True
        return self.model_pattern in event.model_id.lower()

    def passes_project(self, event: UsageEvent) -> bool:
        if not self.project_pattern or not event.project_path:
            return True
        if self.options.project_exact:
            return matches_exact_project(event.project_path, self.project_pattern)
        return self.project_pattern in normalize_project_path(event.project_path)

    def passes_current_dir(self, event: UsageEvent) -> bool:
        if self.current_dir is None or not event.project_path:
            return True
        event_dir = _with_trailing_slash(event.project_path)
        return event_dir.startswith(self.current_dir) or self.current_dir.startswith(
            event_dir
        )

    def passes_scope(self, event: UsageEvent) -> bool:
        """Model, project and current-directory stages, in that order."""
        return (
            self.passes_model(event)
            and self.passes_project(event)
            and self.passes_current_dir(event)
        )

    def passes(self, event: UsageEvent) -> bool:
        return self.passes_time_window(event) and self.passes_scope(event)

    def qualifies(self, event: UsageEvent) -> bool:
        """Whether an event contributes to token and cost aggregation."""
        return event.is_assistant and self.passes(event)
