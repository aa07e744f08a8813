# Copyright 2025 Roger Cibrian
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""Logging interface for m365pkg.

This module provides a configurable logging interface that library modules
can use for output without depending on the CLI. The logger can be configured
globally or passed as a parameter for better isolation.

The logger supports these output levels:
- Step: Always printed (pipeline progress)
- Verbose: Only printed when verbose mode is enabled
- Debug: Only printed when debug mode is enabled (implies verbose)
- Warning/Error: Always printed, to stderr

Example:
    Configure global logger:
        ```python
        from m365pkg.logging import get_logger, set_global_logger

        logger = get_logger(verbose=True, debug=False)
        set_global_logger(logger)
        ```

    Use in library code:
        ```python
        from m365pkg.logging import get_global_logger

        logger = get_global_logger()
        logger.step(1, 5, "Staging configuration...")
        logger.verbose("CONFIG", "Set channel: MonthlyEnterprise")
        logger.debug("GRAPH", "GET /deviceAppManagement/mobileApps")
        ```

Note:
    The default logger is silent, so library functions won't print anything
    unless explicitly configured. The CLI configures the global logger when
    commands are executed.
"""

from __future__ import annotations

import sys
from typing import Any, Protocol

# Keys whose values are masked by redact()
SECRET_KEYS = frozenset(
    {"client_secret", "access_token", "authorization", "encryptionkey", "mackey"}
)


class Logger(Protocol):
    """Protocol for logger implementations."""

    def step(self, step: int, total: int, message: str) -> None:
        """Print a step indicator.

        Args:
            step: Current step number (1-based).
            total: Total number of steps.
            message: Step description.
        """
        ...

    def verbose(self, prefix: str, message: str) -> None:
        """Print a verbose log message.

        Args:
            prefix: Message prefix (e.g., "BUILD", "GRAPH").
            message: Log message.
        """
        ...

    def debug(self, prefix: str, message: str) -> None:
        """Print a debug log message.

        Args:
            prefix: Message prefix (e.g., "HTTP", "MANIFEST").
            message: Log message.
        """
        ...

    def warning(self, prefix: str, message: str) -> None:
        """Print a warning message."""
        ...

    def error(self, prefix: str, message: str) -> None:
        """Print an error message."""
        ...


class DefaultLogger:
    """Default logger implementation.

    Progress goes to stdout, warnings and errors go to stderr.
    """

    def __init__(self, verbose: bool = False, debug: bool = False) -> None:
        """Initialize logger with verbosity settings.

        Args:
            verbose: If True, print verbose messages.
            debug: If True, print debug messages (implies verbose).
        """
        self._verbose = verbose or debug
        self._debug = debug

    def step(self, step: int, total: int, message: str) -> None:
        """Print a step indicator."""
        print(f"[{step}/{total}] {message}")

    def verbose(self, prefix: str, message: str) -> None:
        """Print a verbose log message (only when verbose mode is active)."""
        if self._verbose:
            print(f"[{prefix}] {message}")

    def debug(self, prefix: str, message: str) -> None:
        """Print a debug log message (only when debug mode is active)."""
        if self._debug:
            print(f"[{prefix}] {message}")

    def warning(self, prefix: str, message: str) -> None:
        print(f"[{prefix}] WARNING: {message}", file=sys.stderr)

    def error(self, prefix: str, message: str) -> None:
        print(f"[{prefix}] ERROR: {message}", file=sys.stderr)


class SilentLogger:
    """Logger that suppresses all output.

    Useful for programmatic usage and tests.
    """

    def step(self, step: int, total: int, message: str) -> None:
        pass

    def verbose(self, prefix: str, message: str) -> None:
        pass

    def debug(self, prefix: str, message: str) -> None:
        pass

    def warning(self, prefix: str, message: str) -> None:
        pass

    def error(self, prefix: str, message: str) -> None:
        pass


# Global logger instance (defaults to silent)
_global_logger: Logger = SilentLogger()


def get_logger(verbose: bool = False, debug: bool = False) -> Logger:
    """Get a logger instance with specified verbosity.

    Args:
        verbose: If True, logger will print verbose messages.
        debug: If True, logger will print debug messages (implies verbose).

    Returns:
        A logger instance configured with the specified verbosity.
    """
    return DefaultLogger(verbose=verbose, debug=debug)


def get_global_logger() -> Logger:
    """Get the global logger instance.

    Note:
        The default global logger is silent. Use set_global_logger() to
        configure it, or pass a logger instance directly to functions.
    """
    return _global_logger


def set_global_logger(logger: Logger) -> None:
    """Set the global logger instance.

    Args:
        logger: Logger instance to use as the global logger.

    Example:
        Configure global logger from CLI:
            ```python
            from m365pkg.logging import get_logger, set_global_logger

            logger = get_logger(verbose=args.verbose, debug=args.debug)
            set_global_logger(logger)
            ```
    """
    global _global_logger
    _global_logger = logger


def redact(data: Any) -> Any:
    """Return a copy of data with secret values masked.

    Dicts are walked recursively; keys are matched case-insensitively
    against SECRET_KEYS. Other values are returned unchanged.

    Example:
        ```python
        redact({"client_id": "abc", "client_secret": "s3cr3t"})
        # {'client_id': 'abc', 'client_secret': '***'}
        ```
    """
    if isinstance(data, dict):
        return {
            k: "***" if str(k).lower() in SECRET_KEYS else redact(v)
            for k, v in data.items()
        }
    if isinstance(data, list):
        return [redact(item) for item in data]
    return data
