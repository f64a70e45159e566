"""ScriptLoop run command - Run a host entry point inside a bridge."""

import importlib
import inspect
import logging
from typing import Any, Callable

import typer
from rich.console import Console
from rich.pretty import Pretty

from scriptloop.cli.error_handler import handle_errors
from scriptloop.cli.exit_codes import ExitCode
from scriptloop.errors import ScriptLoopError

console = Console()
logger = logging.getLogger(__name__)


def resolve_entry_point(target: str) -> Callable[..., Any]:
    """Import ``module:function`` and return the function.

    Raises:
        ScriptLoopError: If the target is malformed, missing or not async
    """
    module_name, sep, attr = target.partition(":")
    if not sep or not module_name or not attr:
        raise ScriptLoopError(
            f"Entry point must be in format MODULE:FUNCTION, got '{target}'",
            exit_code=ExitCode.INVALID_ARGUMENT,
        )

    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise ScriptLoopError(
            f"Cannot import module '{module_name}'",
            exit_code=ExitCode.NOT_FOUND,
            details={"reason": str(e)},
        ) from e

    func = module
    for part in attr.split("."):
        func = getattr(func, part, None)
        if func is None:
            raise ScriptLoopError(
                f"'{attr}' not found in module '{module_name}'",
                exit_code=ExitCode.NOT_FOUND,
            )

    if not inspect.iscoroutinefunction(func):
        raise ScriptLoopError(
            f"Entry point '{target}' must be an async function",
            exit_code=ExitCode.INVALID_ARGUMENT,
        )
    return func


@handle_errors
def run(
    target: str = typer.Argument(
        ...,
        help="Entry point as MODULE:FUNCTION; called as `await FUNCTION(bridge)`.",
    ),
) -> None:
    """Run an async entry point with a configured bridge.

    The function receives the bridge, runs on a fresh event loop, and its
    return value is printed.

    Example:
        scriptloop run myapp.scripts:main
    """
    from scriptloop.bridge import get_bridge

    main = resolve_entry_point(target)
    logger.debug(f"Running entry point {target}")

    result = get_bridge().run(main)
    if result is not None:
        console.print(Pretty(result))
