"""Report generation service for OpenCode Usage."""

import csv
import io
from datetime import date
from typing import Any, Dict, List, Optional, Sequence

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.rule import Rule
from rich.table import Table
from rich.text import Text

from ..models.analytics import (
    AnalysisResult,
    HeatmapData,
    HeatmapDay,
    ModelBreakdown,
    SessionSummary,
    UsageBucket,
    UsageTotals,
)
from ..utils.data_source import MetadataResolver
from .usage_analyzer import UsageAnalyzer

MONTH_NAMES = [
    "Jan", "Feb", "Mar", "Apr", "May", "Jun",
    "Jul", "Aug", "Sep", "Oct", "Nov", "Dec",
]
DAY_LABELS = ["Sun", "Mon", "Tue", "Wed", "Thu", "Fri", "Sat"]
LEVEL_COLORS = ["#2d333b", "#0e4429", "#006d32", "#26a641", "#39d353"]
HEATMAP_CELL = "■ "


def format_number(value: float) -> str:
    """Abbreviate large numbers (1.2K, 3.4M, 5.6B)."""
    if value >= 1_000_000_000:
        return f"{value / 1_000_000_000:.1f}B"
    if value >= 1_000_000:
        return f"{value / 1_000_000:.1f}M"
    if value >= 1_000:
        return f"{value / 1_000:.1f}K"
    return f"{value:g}" if isinstance(value, float) else str(value)


def _truncate(text: str, width: int) -> str:
    return text if len(text) <= width else text[: width - 3] + "..."


class ReportGenerator:
    """Service for rendering analysis results to the terminal and to CSV."""

    def __init__(self, console: Optional[Console] = None, top_sessions: int = 10):
        """Initialize report generator.

        Args:
            console: Rich console for output
            top_sessions: Number of sessions listed in the session breakdown
        """
        self.console = console or Console()
        self.top_sessions = top_sessions

    # Session view

    def render_analysis(
        self,
        result: AnalysisResult,
        show_sessions: bool = False,
        show_paths: bool = False,
    ) -> None:
        """Display a session-view report.

        Args:
            result: Session-view report
            show_sessions: List the most recent sessions
            show_paths: Add a per-directory rollup of the sessions
        """
        self.console.print()
        self.console.print(Rule("[bold magenta]OpenCode Usage Analysis[/bold magenta]"))
        self.console.print()

        summary_table = Table(show_header=False, box=None, padding=(0, 2))
        summary_table.add_column("Label", style="bold")
        summary_table.add_column("Value", style="cyan")
        summary_table.add_row("Total Sessions", f"{result.total_sessions:,}")
        summary_table.add_row("Total Messages", f"{result.total_messages:,}")
        summary_table.add_row(
            "Date Range", f"{result.date_range.start} to {result.date_range.end}"
        )
        summary_table.add_row("", "")
        summary_table.add_row("Input", format_number(result.tokens.input))
        summary_table.add_row("Output", format_number(result.tokens.output))
        summary_table.add_row("Reasoning", format_number(result.tokens.reasoning))
        summary_table.add_row("Cache Read", format_number(result.tokens.cache_read))
        summary_table.add_row("Cache Write", format_number(result.tokens.cache_write))
        summary_table.add_row("", "")
        summary_table.add_row(
            "[bold]Total Cost[/bold]", f"[bold red]${result.cost.total:.4f}[/bold red]"
        )
        summary_table.add_row("Avg Cost per Session", f"${result.cost.avg_per_session:.4f}")
        summary_table.add_row("Avg Cost per Message", f"${result.cost.avg_per_message:.4f}")
        self.console.print(Panel(summary_table, title="Summary", border_style="green"))

        if result.models:
            self._display_models_table(result)

        sessions = result.sessions or []
        if show_sessions and sessions:
            self._display_sessions_table(sessions)

        if show_paths and sessions:
            self._display_paths_table(sessions, result.cost.total)

        self.console.print()

    def _display_models_table(self, result: AnalysisResult) -> None:
        self.console.print(Rule("[bold cyan]By Model[/bold cyan]"))
        table = Table(show_header=True, header_style="bold blue")
        table.add_column("Model", style="cyan")
        table.add_column("Sessions", justify="right", style="green")
        table.add_column("Tokens", justify="right", style="yellow")
        table.add_column("Cost", justify="right", style="red")
        table.add_column("Share", justify="right", style="dim")

        for model in result.models:
            share = model.cost / result.cost.total * 100 if result.cost.total > 0 else 0.0
            table.add_row(
                escape(model.name),
                f"{model.sessions}",
                format_number(model.tokens),
                f"${model.cost:.4f}",
                f"{share:.1f}%",
            )
        self.console.print(table)

    def _display_sessions_table(self, sessions: List[SessionSummary]) -> None:
        self.console.print(Rule("[bold cyan]Top Sessions[/bold cyan]"))
        table = Table(show_header=True, header_style="bold blue")
        table.add_column("Session", style="cyan", no_wrap=True)
        table.add_column("Title", style="white")
        table.add_column("Model", style="magenta")
        table.add_column("Started", style="dim")
        table.add_column("Msgs", justify="right", style="green")
        table.add_column("Tokens", justify="right", style="yellow")
        table.add_column("Cost", justify="right", style="red")

        for session in sessions[: self.top_sessions]:
            table.add_row(
                escape(_truncate(session.id, 25)),
                escape(_truncate(session.title, 40)),
                escape(session.model),
                session.start_time,
                f"{session.messages}",
                format_number(session.tokens),
                f"${session.cost:.4f}",
            )
        self.console.print(table)

    def _display_paths_table(
        self, sessions: List[SessionSummary], total_cost: float
    ) -> None:
        self.console.print(Rule("[bold cyan]By Path[/bold cyan]"))
        groups: Dict[str, List[SessionSummary]] = {}
        for session in sessions:
            groups.setdefault(
                session.directory or MetadataResolver.DEFAULT_PROJECT, []
            ).append(session)

        table = Table(show_header=True, header_style="bold blue")
        table.add_column("Path", style="cyan")
        table.add_column("Sessions", justify="right", style="green")
        table.add_column("Tokens", justify="right", style="yellow")
        table.add_column("Cost", justify="right", style="red")
        table.add_column("Share", justify="right", style="dim")

        for path, path_sessions in groups.items():
            path_cost = sum(s.cost for s in path_sessions)
            share = path_cost / total_cost * 100 if total_cost > 0 else 0.0
            table.add_row(
                escape(path),
                f"{len(path_sessions)}",
                format_number(sum(s.tokens for s in path_sessions)),
                f"${path_cost:.4f}",
                f"{share:.1f}%",
            )
        self.console.print(table)

    def format_analysis_csv(self, result: AnalysisResult) -> str:
        """Format a session-view report as ``Category,Metric,Value`` CSV."""
        rows: List[List[Any]] = [
            ["Category", "Metric", "Value"],
            ["Summary", "Total Sessions", result.total_sessions],
            ["Summary", "Total Messages", result.total_messages],
            [
                "Summary",
                "Date Range",
                f"{result.date_range.start} to {result.date_range.end}",
            ],
            ["Tokens", "Input", result.tokens.input],
            ["Tokens", "Output", result.tokens.output],
            ["Tokens", "Reasoning", result.tokens.reasoning],
            ["Tokens", "Cache Read", result.tokens.cache_read],
            ["Tokens", "Cache Write", result.tokens.cache_write],
            ["Costs", "Total", result.cost.total],
            ["Costs", "Avg per Session", result.cost.avg_per_session],
            ["Costs", "Avg per Message", result.cost.avg_per_message],
        ]
        for model in result.models:
            rows.append(["Model", model.name, model.cost, model.tokens])

        buffer = io.StringIO()
        writer = csv.writer(buffer, lineterminator="\n")
        writer.writerows(rows)
        return buffer.getvalue()

    # Period views

    def render_usage_report(
        self,
        buckets: Sequence[UsageBucket],
        period_label: str,
        breakdown: bool = False,
        group_by_project: bool = False,
    ) -> None:
        """Display daily or monthly buckets as a table with a totals row.

        Args:
            buckets: Daily or monthly buckets, already sorted
            period_label: First column header ("Date" or "Month")
            breakdown: Add a row per model under each bucket
            group_by_project: Group rows under a header per project
        """
        title = "Daily" if period_label == "Date" else "Monthly"
        table = Table(
            title=f"OpenCode Usage Report - {title}",
            show_header=True,
            header_style="bold blue",
            title_style="bold magenta",
        )
        first_column = f"{period_label} / Model" if breakdown else period_label
        table.add_column(first_column, style="cyan", no_wrap=True)
        table.add_column("Models", style="magenta")
        table.add_column("Input", justify="right", style="green")
        table.add_column("Output", justify="right", style="green")
        table.add_column("Cache Create", justify="right", style="yellow")
        table.add_column("Cache Read", justify="right", style="yellow")
        table.add_column("Total Tokens", justify="right", style="white")
        table.add_column("Cost", justify="right", style="red")

        if group_by_project and any(b.project for b in buckets):
            groups = UsageAnalyzer.group_buckets_by_project(list(buckets))
            for index, (project, project_buckets) in enumerate(groups.items()):
                if index > 0:
                    table.add_section()
                table.add_row(f"[bold cyan]Project: {escape(project)}[/bold cyan]")
                self._add_bucket_rows(table, project_buckets, breakdown)
        else:
            self._add_bucket_rows(table, buckets, breakdown)

        table.add_section()
        totals = UsageAnalyzer.calculate_totals(list(buckets))
        self._add_totals_row(table, totals)

        self.console.print()
        self.console.print(table)
        self.console.print()

    def _add_bucket_rows(
        self, table: Table, buckets: Sequence[UsageBucket], breakdown: bool
    ) -> None:
        for bucket in buckets:
            table.add_row(
                bucket.period,
                escape(", ".join(bucket.models_used)),
                f"{bucket.input_tokens:,}",
                f"{bucket.output_tokens:,}",
                f"{bucket.cache_creation_tokens:,}",
                f"{bucket.cache_read_tokens:,}",
                f"{bucket.total_tokens:,}",
                f"${bucket.total_cost:.2f}",
            )
            if breakdown:
                self._add_breakdown_rows(table, bucket.model_breakdowns)

    @staticmethod
    def _add_breakdown_rows(table: Table, breakdowns: List[ModelBreakdown]) -> None:
        for model_data in sorted(breakdowns, key=lambda b: b.cost, reverse=True):
            total = (
                model_data.input_tokens
                + model_data.output_tokens
                + model_data.cache_creation_tokens
                + model_data.cache_read_tokens
            )
            table.add_row(
                f"  ↳ {escape(model_data.model_name)}",
                "",
                f"{model_data.input_tokens:,}",
                f"{model_data.output_tokens:,}",
                f"{model_data.cache_creation_tokens:,}",
                f"{model_data.cache_read_tokens:,}",
                f"{total:,}",
                f"${model_data.cost:.2f}",
                style="dim",
            )

    @staticmethod
    def _add_totals_row(table: Table, totals: UsageTotals) -> None:
        table.add_row(
            "[bold]Total[/bold]",
            "",
            f"[bold]{totals.input_tokens:,}[/bold]",
            f"[bold]{totals.output_tokens:,}[/bold]",
            f"[bold]{totals.cache_creation_tokens:,}[/bold]",
            f"[bold]{totals.cache_read_tokens:,}[/bold]",
            f"[bold]{totals.total_tokens:,}[/bold]",
            f"[bold red]${totals.total_cost:.2f}[/bold red]",
        )

    def format_usage_json(
        self,
        buckets: Sequence[UsageBucket],
        key: str,
        group_by_project: bool = False,
    ) -> Dict[str, Any]:
        """JSON-ready dictionary for daily or monthly buckets.

        Args:
            buckets: Daily or monthly buckets
            key: Top-level key for the plain list ("daily" or "monthly")
            group_by_project: Nest the buckets under ``projects`` by project name

        Returns:
            ``{key: [...], totals}`` or ``{projects: {...}, totals}``
        """
        totals = UsageAnalyzer.calculate_totals(list(buckets)).model_dump(by_alias=True)
        if group_by_project and any(b.project for b in buckets):
            grouped = UsageAnalyzer.group_buckets_by_project(list(buckets))
            return {
                "projects": {
                    project: [
                        b.model_dump(by_alias=True, exclude_none=True)
                        for b in project_buckets
                    ]
                    for project, project_buckets in grouped.items()
                },
                "totals": totals,
            }
        return {
            key: [b.model_dump(by_alias=True, exclude_none=True) for b in buckets],
            "totals": totals,
        }

    # Heatmap

    @staticmethod
    def _weeks(days: List[HeatmapDay]) -> List[List[Optional[HeatmapDay]]]:
        """Lay days out in Sunday-first week columns, padding the first week."""
        weeks: List[List[Optional[HeatmapDay]]] = []
        current: List[Optional[HeatmapDay]] = []
        if days:
            first = date.fromisoformat(days[0].date)
            current.extend([None] * ((first.weekday() + 1) % 7))

        for day in days:
            current.append(day)
            if len(current) == 7:
                weeks.append(current)
                current = []
        if current:
            weeks.append(current)
        return weeks

    @staticmethod
    def _month_line(weeks: List[List[Optional[HeatmapDay]]]) -> str:
        first_week: Dict[int, int] = {}
        for index, week in enumerate(weeks):
            for day in week:
                if day is not None:
                    first_week.setdefault(date.fromisoformat(day.date).month, index)

        line = "    "
        last_pos = 0
        for month, index in sorted(first_week.items(), key=lambda item: item[1]):
            target = index * len(HEATMAP_CELL)
            line += " " * max(0, target - last_pos) + MONTH_NAMES[month - 1]
            last_pos = target + 3
        return line

    @staticmethod
    def format_metric_total(data: HeatmapData) -> str:
        if data.metric == "cost":
            return f"${data.total:.2f}"
        if data.metric == "tokens":
            return format_number(data.total)
        return f"{data.total:,}"

    def render_heatmap(self, data: HeatmapData) -> None:
        """Draw a week-column calendar grid with a legend and summary."""
        self.console.print()
        self.console.print(Text("OpenCode Usage Heatmap", style="bold cyan"))
        self.console.print()

        weeks = self._weeks(data.days)
        self.console.print(Text(self._month_line(weeks), style="dim"))

        for weekday in range(7):
            line = Text(f"{DAY_LABELS[weekday]:<3} ", style="dim")
            for week in weeks:
                day = week[weekday] if weekday < len(week) else None
                if day is None:
                    line.append(" " * len(HEATMAP_CELL))
                else:
                    line.append(HEATMAP_CELL, style=LEVEL_COLORS[day.level])
            self.console.print(line)

        legend = Text("Less ", style="dim")
        for color in LEVEL_COLORS:
            legend.append(HEATMAP_CELL, style=color)
        legend.append("More", style="dim")
        self.console.print()
        self.console.print(legend)

        self.console.print()
        self.console.print("[bold]Summary:[/bold]")
        self.console.print(
            f"  Total {data.metric.capitalize()}: {self.format_metric_total(data)}"
        )
        self.console.print(
            f"  Date Range: {data.date_range.start} to {data.date_range.end}"
        )
        self.console.print(f"  Active Days: {data.active_days}")
        self.console.print()
