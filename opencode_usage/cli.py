"""Command line interface for OpenCode Usage."""

import click
import json
import logging
from typing import Any, Callable, Optional

from rich.console import Console

from .config import PathsConfig, config_manager
from .services.report_generator import ReportGenerator
from .services.usage_analyzer import UsageAnalyzer
from .utils.data_source import get_data_source
from .utils.error_handling import ErrorHandler, handle_errors
from .utils.filters import METRICS, AnalyzeOptions
from . import __version__

NO_DATA_MESSAGE = "No usage data found."


def json_serializer(obj):
    """Custom JSON serializer for special types."""
    if hasattr(obj, "model_dump"):
        return obj.model_dump(by_alias=True, exclude_none=True)
    elif hasattr(obj, "isoformat"):
        return obj.isoformat()
    else:
        return str(obj)


def echo_json(data: Any) -> None:
    if hasattr(data, "model_dump"):
        data = data.model_dump(by_alias=True, exclude_none=True)
    click.echo(json.dumps(data, indent=2, default=json_serializer))


def scope_options(func: Callable) -> Callable:
    """Options that restrict the analysis to the current directory."""
    func = click.option(
        "--path",
        "current_path",
        type=str,
        default=None,
        help="Directory to use instead of the working directory for --current",
    )(func)
    func = click.option(
        "--current",
        "current_only",
        is_flag=True,
        help="Only include sessions run in or below the current directory",
    )(func)
    return func


def filter_options(func: Callable) -> Callable:
    """Time window, model and project filters shared by the report commands."""
    func = scope_options(func)
    func = click.option(
        "--exact-path",
        "project_exact",
        is_flag=True,
        help="Match --project as a directory instead of a substring",
    )(func)
    func = click.option(
        "--project", "-p", type=str, default=None, help="Filter by project path pattern"
    )(func)
    func = click.option(
        "--model", "-m", type=str, default=None, help="Filter by model pattern (e.g. sonnet)"
    )(func)
    func = click.option(
        "--days", "-d", type=click.IntRange(min=0), default=None, help="Show last N days"
    )(func)
    return func


def build_analyzer(ctx: click.Context) -> UsageAnalyzer:
    """Open the active data source and wrap it in an analyzer.

    The data source is closed when the command's context is torn down.
    """
    config = ctx.obj["config"]
    data_source = get_data_source(config.paths)
    ctx.call_on_close(data_source.close)
    if ctx.obj["verbose"]:
        click.echo(f"[Source: {data_source.name}]", err=True)
    return UsageAnalyzer(data_source, config=config)


@click.group()
@click.version_option(version=__version__)
@click.option(
    "--config", "-c", type=click.Path(exists=True), help="Path to configuration file"
)
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output")
@click.option(
    "--data-dir",
    type=click.Path(file_okay=False),
    default=None,
    help="OpenCode data directory (contains opencode.db or storage/)",
)
@click.pass_context
def cli(ctx: click.Context, config: Optional[str], verbose: bool, data_dir: Optional[str]):
    """OpenCode Usage - token and cost analytics for OpenCode sessions.

    Reads OpenCode's local history (SQLite database or legacy JSON storage)
    and summarizes usage per session, day, month, or as a calendar heatmap.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    # Initialize context object
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["error_handler"] = ErrorHandler(verbose=verbose)

    # Load configuration
    try:
        if config:
            config_manager.config_path = config
            config_manager.reload()

        settings = config_manager.config
        if data_dir:
            settings = settings.model_copy(
                update={"paths": PathsConfig(data_dir=data_dir)}
            )
        ctx.obj["config"] = settings

        console = Console(no_color=not settings.ui.colors)
        ctx.obj["console"] = console
        ctx.obj["report_generator"] = ReportGenerator(
            console, top_sessions=settings.ui.top_sessions
        )

    except Exception as e:
        ctx.obj["error_handler"].report(e, "Error initializing OpenCode Usage")
        ctx.exit(1)


@cli.command()
@filter_options
@click.option(
    "--instances", "-i", is_flag=True, help="Show usage breakdown by project path"
)
@click.option("--sessions", "-s", is_flag=True, help="Show session breakdown")
@click.option("--reverse", "-r", is_flag=True, help="Oldest sessions first")
@click.option("--json", "as_json", is_flag=True, help="Output in JSON format")
@click.option("--csv", "as_csv", is_flag=True, help="Output in CSV format")
@click.pass_context
@handle_errors("Error analyzing usage")
def analyze(
    ctx: click.Context,
    days: Optional[int],
    model: Optional[str],
    project: Optional[str],
    project_exact: bool,
    current_only: bool,
    current_path: Optional[str],
    instances: bool,
    sessions: bool,
    reverse: bool,
    as_json: bool,
    as_csv: bool,
):
    """Analyze session usage (overall summary).

    Examples:
        opencode-usage analyze -d 14 -s
        opencode-usage analyze -m sonnet --json
        opencode-usage analyze -p ~/work/api --exact-path -i
    """
    analyzer = build_analyzer(ctx)
    result = analyzer.analyze_usage(
        AnalyzeOptions(
            days=days,
            model=model,
            project=project,
            project_exact=project_exact,
            current_only=current_only,
            current_path=current_path,
            group_by_project=instances,
            reverse=reverse,
        )
    )

    if as_json:
        echo_json(result)
    elif as_csv:
        click.echo(ctx.obj["report_generator"].format_analysis_csv(result), nl=False)
    elif result.total_sessions == 0:
        click.echo(NO_DATA_MESSAGE, err=True)
    else:
        ctx.obj["report_generator"].render_analysis(
            result, show_sessions=sessions, show_paths=instances
        )


def _period_report(
    ctx: click.Context,
    period: str,
    options: AnalyzeOptions,
    breakdown: bool,
    as_json: bool,
) -> None:
    analyzer = build_analyzer(ctx)
    report_generator = ctx.obj["report_generator"]

    if period == "daily":
        buckets = analyzer.analyze_daily_usage(options)
    else:
        buckets = analyzer.analyze_monthly_usage(options)

    if not buckets:
        click.echo(NO_DATA_MESSAGE, err=True)
        return

    if as_json:
        echo_json(
            report_generator.format_usage_json(
                buckets, period, group_by_project=options.group_by_project
            )
        )
    else:
        report_generator.render_usage_report(
            buckets,
            "Date" if period == "daily" else "Month",
            breakdown=breakdown,
            group_by_project=options.group_by_project,
        )


@cli.command()
@filter_options
@click.option(
    "--instances", "-i", is_flag=True, help="Show usage breakdown by project path"
)
@click.option("--breakdown", is_flag=True, help="Show per-model breakdown")
@click.option("--json", "as_json", is_flag=True, help="Output in JSON format")
@click.pass_context
@handle_errors("Error generating daily breakdown")
def daily(
    ctx: click.Context,
    days: Optional[int],
    model: Optional[str],
    project: Optional[str],
    project_exact: bool,
    current_only: bool,
    current_path: Optional[str],
    instances: bool,
    breakdown: bool,
    as_json: bool,
):
    """Show daily breakdown of OpenCode usage."""
    options = AnalyzeOptions(
        days=days,
        model=model,
        project=project,
        project_exact=project_exact,
        current_only=current_only,
        current_path=current_path,
        group_by_project=instances,
    )
    _period_report(ctx, "daily", options, breakdown, as_json)


@cli.command()
@filter_options
@click.option(
    "--instances", "-i", is_flag=True, help="Show usage breakdown by project path"
)
@click.option("--breakdown", is_flag=True, help="Show per-model breakdown")
@click.option("--json", "as_json", is_flag=True, help="Output in JSON format")
@click.pass_context
@handle_errors("Error generating monthly breakdown")
def monthly(
    ctx: click.Context,
    days: Optional[int],
    model: Optional[str],
    project: Optional[str],
    project_exact: bool,
    current_only: bool,
    current_path: Optional[str],
    instances: bool,
    breakdown: bool,
    as_json: bool,
):
    """Show monthly breakdown of OpenCode usage."""
    options = AnalyzeOptions(
        days=days,
        model=model,
        project=project,
        project_exact=project_exact,
        current_only=current_only,
        current_path=current_path,
        group_by_project=instances,
    )
    _period_report(ctx, "monthly", options, breakdown, as_json)


@cli.command()
@click.option(
    "--days", "-d", type=click.IntRange(min=0), default=None, help="Show last N days"
)
@scope_options
@click.option("--json", "as_json", is_flag=True, help="Output in JSON format")
@click.pass_context
@handle_errors("Error generating summary")
def summary(
    ctx: click.Context,
    days: Optional[int],
    current_only: bool,
    current_path: Optional[str],
    as_json: bool,
):
    """Show overall usage summary."""
    config = ctx.obj["config"]
    analyzer = build_analyzer(ctx)
    result = analyzer.analyze_usage(
        AnalyzeOptions(
            days=days if days is not None else config.analytics.summary_days,
            current_only=current_only,
            current_path=current_path,
            summary=True,
        )
    )

    if as_json:
        echo_json(result)
    elif result.total_sessions == 0:
        click.echo(NO_DATA_MESSAGE, err=True)
    else:
        ctx.obj["report_generator"].render_analysis(result)


@cli.command()
@filter_options
@click.option(
    "--metric",
    type=click.Choice(list(METRICS)),
    default=None,
    help="Value shown per day (default from config: tokens)",
)
@click.option("--json", "as_json", is_flag=True, help="Output in JSON format")
@click.pass_context
@handle_errors("Error generating heatmap")
def heatmap(
    ctx: click.Context,
    days: Optional[int],
    model: Optional[str],
    project: Optional[str],
    project_exact: bool,
    current_only: bool,
    current_path: Optional[str],
    metric: Optional[str],
    as_json: bool,
):
    """Show a calendar heatmap of daily activity."""
    config = ctx.obj["config"]
    analyzer = build_analyzer(ctx)
    data = analyzer.analyze_heatmap(
        AnalyzeOptions(
            days=days,
            model=model,
            project=project,
            project_exact=project_exact,
            current_only=current_only,
            current_path=current_path,
            metric=metric or config.analytics.heatmap_metric,
        )
    )

    if as_json:
        echo_json(data)
    else:
        ctx.obj["report_generator"].render_heatmap(data)


def main():
    """Entry point for the CLI application."""
    cli()
