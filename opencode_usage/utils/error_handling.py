"""Error taxonomy and user-facing error reporting for OpenCode Usage.

Exception hierarchy:
    OpenCodeUsageError (base)
    ├── DataSourceMissingError (no database and no JSON storage; fatal)
    ├── ConfigurationError (unreadable or invalid config file; fatal)
    ├── RecordParseError (one message record; skipped by the adapter)
    └── SessionDirectoryUnreadable (one session directory; skipped by the adapter)
"""

import functools
import logging
import sqlite3
from typing import Callable, Optional, TypeVar

import click

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable)


class OpenCodeUsageError(Exception):
    """Base exception for all OpenCode Usage errors."""


class DataSourceMissingError(OpenCodeUsageError):
    """Raised when neither the SQLite store nor the JSON storage tree exists."""

    def __init__(self, db_path: str, storage_dir: str):
        self.db_path = db_path
        self.storage_dir = storage_dir
        super().__init__(
            "No OpenCode data found. Looked for a database at "
            f"{db_path} and a storage directory at {storage_dir}. "
            "Please run OpenCode first to create session data."
        )


class ConfigurationError(OpenCodeUsageError):
    """Raised when the configuration file cannot be parsed."""


class RecordParseError(OpenCodeUsageError):
    """Raised when a single message record cannot be normalized."""

    def __init__(self, message: str, record_id: Optional[str] = None):
        self.record_id = record_id
        super().__init__(message)


class SessionDirectoryUnreadable(OpenCodeUsageError):
    """Raised when a session's message directory cannot be listed."""

    def __init__(self, session_id: str, reason: str):
        self.session_id = session_id
        super().__init__(f"Cannot read session {session_id}: {reason}")


def create_user_friendly_error(error: Exception) -> str:
    """Turn an exception into a one-line message suitable for the terminal.

    Args:
        error: Exception raised while running a command

    Returns:
        Human-readable error message
    """
    if isinstance(error, OpenCodeUsageError):
        return str(error)
    if isinstance(error, sqlite3.DatabaseError):
        return f"Could not read the OpenCode database: {error}"
    if isinstance(error, PermissionError):
        return f"Permission denied: {error.filename or error}"
    if isinstance(error, FileNotFoundError):
        return f"File not found: {error.filename or error}"
    return f"Unexpected error: {error}"


class ErrorHandler:
    """Reports fatal errors from CLI commands."""

    def __init__(self, verbose: bool = False):
        self.verbose = verbose

    def report(self, error: Exception, context: str = "Error") -> None:
        """Print a friendly error, with details when running verbose."""
        click.echo(f"{context}: {create_user_friendly_error(error)}", err=True)
        if self.verbose:
            logger.debug("Details for %s", context, exc_info=error)


def handle_errors(context: str) -> Callable[[F], F]:
    """Decorate a click command so fatal errors exit with status 1.

    The command must receive the click context as its first argument
    (``@click.pass_context``) and the context object must hold an
    ``ErrorHandler`` under ``"error_handler"``.

    Args:
        context: Prefix for the reported error line
    """

    def decorator(func: F) -> F:
        @functools.wraps(func)
        def wrapper(ctx: click.Context, *args, **kwargs):
            try:
                return func(ctx, *args, **kwargs)
            except (click.exceptions.Exit, click.ClickException, click.Abort):
                raise
            except Exception as e:
                handler = (ctx.obj or {}).get("error_handler") or ErrorHandler()
                handler.report(e, context)
                ctx.exit(1)

        return wrapper  # type: ignore[return-value]

    return decorator
