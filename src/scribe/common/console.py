"""
User-facing status output.

Everything is written to stderr through a rich Console so stdout only ever
carries the transcript.
"""

import logging
from typing import Any

from rich.console import Console
from rich.markup import escape

_CONSOLE = Console(stderr=True, highlight=False, soft_wrap=True)

STYLE_MAP = {
    "error": "bold red",
    "warning": "bold yellow",
    "success": "bold green",
    "info": "bold blue",
}


def get_console() -> Console:
    return _CONSOLE


def safe_print(message: Any, style: str = "default") -> None:
    """
    Print a message on stderr with optional Rich styling.

    Handles I/O errors on closed streams gracefully (e.g. during interpreter
    shutdown after Ctrl+C).

    Args:
        message: The message to print
        style: Style hint - one of "error", "warning", "success", "info", or "default"
    """
    try:
        if style in STYLE_MAP and isinstance(message, str):
            _CONSOLE.print(f"[{STYLE_MAP[style]}]{escape(message)}[/]")
        elif isinstance(message, str):
            _CONSOLE.print(escape(message))
        else:
            _CONSOLE.print(message)
    except ValueError as e:
        if "I/O operation on closed file" not in str(e):
            logging.error(f"Error in safe_print: {e}")


def status(message: str) -> None:
    safe_print(message)


def success(message: str) -> None:
    safe_print(message, "success")


def warn(message: str) -> None:
    safe_print(f"Warning: {message}", "warning")


def error(message: str) -> None:
    safe_print(f"Error: {message}", "error")
