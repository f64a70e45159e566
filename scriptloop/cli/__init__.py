"""CLI command modules for ScriptLoop.

Command implementations live in their own modules and are registered on
the main application in :mod:`scriptloop.main`.
"""

from scriptloop.cli.exit_codes import ExitCode

__all__ = [
    "ExitCode",
]
