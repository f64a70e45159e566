"""Global exception handling for ScriptLoop CLI.

Converts :class:`~scriptloop.errors.ScriptLoopError` and its subclasses into
user-facing messages and exit codes, so every command reports failures the
same way.
"""

from functools import wraps
from typing import Callable, TypeVar, Any
import logging
import traceback

import typer
from rich.console import Console

from scriptloop.cli.exit_codes import ExitCode
from scriptloop.errors import ScriptLoopError

# Console for error output (stderr)
console = Console(stderr=True)

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])


def _report(error: ScriptLoopError) -> None:
    logger.error(
        f"{type(error).__name__}: {error.message}",
        extra={"exit_code": error.exit_code, "details": error.details},
    )
    console.print(f"[red]Error:[/red] {error.message}", markup=True, highlight=False)
    for key, value in error.details.items():
        console.print(f"  [dim]{key}:[/dim] {value}")


def handle_errors(func: F) -> F:
    """Decorator for consistent error handling across CLI commands.

    - ScriptLoopError subclasses: display the message and exit with the
      error's exit code
    - KeyboardInterrupt: show a cancellation message, exit code 130
    - Other exceptions: show a generic error, exit code 1

    Example:
        @app.command()
        @handle_errors
        def my_command():
            raise ConfigurationError("Invalid config")
    """
    @wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return func(*args, **kwargs)
        except ScriptLoopError as e:
            _report(e)
            raise typer.Exit(code=e.exit_code)

        except KeyboardInterrupt:
            console.print("\n[yellow]Operation cancelled by user.[/yellow]")
            logger.info("Operation cancelled by user (KeyboardInterrupt)")
            raise typer.Exit(code=ExitCode.CANCELLED)

        except typer.Exit:
            raise

        except Exception as e:
            logger.exception("Unexpected error occurred")
            console.print(f"[red]Unexpected error:[/red] {e}")
            console.print("[dim]Run with --verbose for more details[/dim]")
            raise typer.Exit(code=ExitCode.GENERAL_ERROR)

    return wrapper  # type: ignore[return-value]


def handle_errors_async(func: F) -> F:
    """Variant of :func:`handle_errors` for async commands."""
    @wraps(func)
    async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return await func(*args, **kwargs)
        except ScriptLoopError as e:
            _report(e)
            raise typer.Exit(code=e.exit_code)

        except KeyboardInterrupt:
            console.print("\n[yellow]Operation cancelled by user.[/yellow]")
            logger.info("Operation cancelled by user (KeyboardInterrupt)")
            raise typer.Exit(code=ExitCode.CANCELLED)

        except typer.Exit:
            raise

        except Exception as e:
            logger.exception("Unexpected error occurred")
            console.print(f"[red]Unexpected error:[/red] {e}")
            console.print("[dim]Run with --verbose for more details[/dim]")
            raise typer.Exit(code=ExitCode.GENERAL_ERROR)

    return async_wrapper  # type: ignore[return-value]


def get_error_context(verbose: bool = False) -> str:
    """Get formatted error context for debugging.

    Args:
        verbose: If True, include full traceback

    Returns:
        Formatted error context string
    """
    exc_info = traceback.format_exc()

    if verbose:
        return exc_info

    lines = exc_info.strip().split("\n")
    if len(lines) >= 2:
        return f"{lines[-2]}: {lines[-1]}"

    return exc_info
