"""CLI utility functions for plugforge.

This module provides common utilities used across CLI commands including:
- Loading JSON configuration files
- Error handling and formatting
- Path validation
"""

import json
import sys
from pathlib import Path
from typing import Any, Dict

from plugforge.config.agent_config import ConfigValidationError


class ConfigLoader:
    """Loads JSON documents given on the command line."""

    @staticmethod
    def load_json(path: Path) -> Dict[str, Any]:
        """Read a JSON object from ``path``.

        Raises:
            FileNotFoundError: If the file doesn't exist
            ConfigValidationError: If the file is not a JSON object
        """
        with open(path, "r", encoding="utf-8") as f:
            try:
                data = json.load(f)
            except json.JSONDecodeError as e:
                raise ConfigValidationError([f"{path} is not valid JSON: {e}"])
        if not isinstance(data, dict):
            raise ConfigValidationError([f"{path} must contain a JSON object"])
        return data


class ErrorFormatter:
    """Formats and displays error messages with ANSI color codes."""

    # ANSI color codes
    RED = "\033[1;31m"
    GREEN = "\033[1;32m"
    YELLOW = "\033[1;33m"
    RESET = "\033[0m"

    @staticmethod
    def print_error(title: str, message: str) -> None:
        """Print formatted error message.

        Args:
            title: Error title (e.g., "Build failed")
            message: Error message details
        """
        print()
        print(f"{ErrorFormatter.RED}✗ {title}{ErrorFormatter.RESET}")
        print()
        print(message)
        print()

    @staticmethod
    def print_success(message: str) -> None:
        print()
        print(f"{ErrorFormatter.GREEN}✓ {message}{ErrorFormatter.RESET}")

    @staticmethod
    def print_warning(message: str) -> None:
        print()
        print(f"{ErrorFormatter.YELLOW}✗ {message}{ErrorFormatter.RESET}")

    @staticmethod
    def handle_file_not_found(error: FileNotFoundError) -> None:
        ErrorFormatter.print_error("Error: File not found", str(error))
        print("Check the path of the configuration file.")
        sys.exit(1)

    @staticmethod
    def handle_config_error(error: ConfigValidationError) -> None:
        """Report an invalid configuration and exit with status 2."""
        ErrorFormatter.print_error("Invalid configuration", "\n".join(f"  - {p}" for p in error.problems))
        sys.exit(2)

    @staticmethod
    def handle_keyboard_interrupt() -> None:
        """Handle KeyboardInterrupt with standard formatting."""
        ErrorFormatter.print_warning("Interrupted")
        sys.exit(130)  # Standard exit code for SIGINT

    @staticmethod
    def handle_unexpected_error(error: Exception, verbose: bool = False) -> None:
        """Handle unexpected errors with standard formatting.

        Args:
            error: The exception to handle
            verbose: Whether to print traceback
        """
        message = f"{type(error).__name__}: {error}"
        ErrorFormatter.print_error("Unexpected error", message)

        if verbose:
            import traceback

            print("Traceback:")
            print(traceback.format_exc())

        sys.exit(1)


class PathValidator:
    """Validates paths given on the command line."""

    @staticmethod
    def validate_input_file(path: Path) -> None:
        """Exit with status 2 unless ``path`` is an existing file."""
        if not path.exists():
            print(f"{ErrorFormatter.RED}✗ Error: Path does not exist: {path}{ErrorFormatter.RESET}")
            sys.exit(2)
        if not path.is_file():
            print(f"{ErrorFormatter.RED}✗ Error: Path is not a file: {path}{ErrorFormatter.RESET}")
            sys.exit(2)

    @staticmethod
    def validate_output_dir(path: Path) -> None:
        """Exit with status 2 if ``path`` exists but is not a directory."""
        if path.exists() and not path.is_dir():
            print(f"{ErrorFormatter.RED}✗ Error: Path is not a directory: {path}{ErrorFormatter.RESET}")
            sys.exit(2)
