"""Standard exit codes for the ScriptLoop CLI.

This module defines standard exit codes used across ScriptLoop
for consistent error reporting and scripting support.
"""


class ExitCode:
    """Standard exit codes for the ScriptLoop CLI.

    These codes follow common Unix conventions where possible:
    - 0: Success
    - 1: General error
    - 130: Script terminated by Ctrl+C (SIGINT)

    ScriptLoop-specific codes start at 2:
    - 2: Configuration error
    - 3: Script error (an engine throw reached the host)
    - 4: No running event loop
    - 5: Unsupported value crossed the boundary
    - 6: Awaitable already consumed
    - 7: Invalid argument
    - 8: Not found
    """

    # Standard success
    SUCCESS = 0

    # General errors
    GENERAL_ERROR = 1

    # ScriptLoop-specific errors (2-8)
    CONFIGURATION_ERROR = 2
    SCRIPT_ERROR = 3
    NO_EVENT_LOOP = 4
    UNSUPPORTED_VALUE = 5
    ALREADY_CONSUMED = 6
    INVALID_ARGUMENT = 7
    NOT_FOUND = 8

    # Signal-based exits (128 + signal number)
    CANCELLED = 130  # Ctrl+C (SIGINT = 2)

    @classmethod
    def get_name(cls, code: int) -> str:
        """Get the name of an exit code.

        Args:
            code: The exit code value

        Returns:
            Human-readable name for the exit code
        """
        names = {
            cls.SUCCESS: "SUCCESS",
            cls.GENERAL_ERROR: "GENERAL_ERROR",
            cls.CONFIGURATION_ERROR: "CONFIGURATION_ERROR",
            cls.SCRIPT_ERROR: "SCRIPT_ERROR",
            cls.NO_EVENT_LOOP: "NO_EVENT_LOOP",
            cls.UNSUPPORTED_VALUE: "UNSUPPORTED_VALUE",
            cls.ALREADY_CONSUMED: "ALREADY_CONSUMED",
            cls.INVALID_ARGUMENT: "INVALID_ARGUMENT",
            cls.NOT_FOUND: "NOT_FOUND",
            cls.CANCELLED: "CANCELLED",
        }
        return names.get(code, f"UNKNOWN({code})")

    @classmethod
    def get_description(cls, code: int) -> str:
        """Get the description of an exit code.

        Args:
            code: The exit code value

        Returns:
            Human-readable description for the exit code
        """
        descriptions = {
            cls.SUCCESS: "Operation completed successfully",
            cls.GENERAL_ERROR: "An unexpected error occurred",
            cls.CONFIGURATION_ERROR: "Configuration error or invalid config file",
            cls.SCRIPT_ERROR: "The script threw an error that reached the host",
            cls.NO_EVENT_LOOP: "An asynchronous call was made without a running event loop",
            cls.UNSUPPORTED_VALUE: "A value could not be represented across the boundary",
            cls.ALREADY_CONSUMED: "A single-use awaitable was consumed twice",
            cls.INVALID_ARGUMENT: "Invalid command-line argument",
            cls.NOT_FOUND: "Requested resource not found",
            cls.CANCELLED: "Operation cancelled by user",
        }
        return descriptions.get(code, f"Unknown exit code: {code}")
