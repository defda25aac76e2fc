"""
Logging configuration for the Scribe CLI.

Diagnostics go to stderr so they never interfere with a transcript printed
on stdout. Core modules only use ``logging.getLogger(__name__)``; this is the
one place that decides levels and handlers.
"""

import logging
import sys
from pathlib import Path


def setup_logging(
    verbose: bool = False,
    log_file: Path | str | None = None,
    component: str = "scribe",
) -> logging.Logger:
    """
    Set up logging with a stderr console handler and an optional file handler.

    Args:
        verbose: Show DEBUG/INFO diagnostics on stderr (warnings only otherwise)
        log_file: Optional file that always receives DEBUG output
        component: Component name for log messages

    Returns:
        Logger instance for the component
    """
    console_level = logging.DEBUG if verbose else logging.WARNING

    verbose_formatter = logging.Formatter(
        f"%(asctime)s - [{component}] %(name)s - %(levelname)s - "
        f"[%(filename)s:%(lineno)d] - %(message)s"
    )
    console_formatter = logging.Formatter("[%(levelname)s] %(message)s")

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(logging.DEBUG if (verbose or log_file) else logging.WARNING)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(console_level)
    console_handler.setFormatter(console_formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        try:
            path = Path(log_file).expanduser()
            path.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(path, mode="a", encoding="utf-8")
            file_handler.setLevel(logging.DEBUG)  # Always log DEBUG to file
            file_handler.setFormatter(verbose_formatter)
            root_logger.addHandler(file_handler)
        except OSError as e:
            root_logger.warning(f"Could not set up file logging: {e}")

    # Third-party chatter stays quiet unless something is wrong
    for noisy in ("faster_whisper", "urllib3", "httpx", "huggingface_hub"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    return logging.getLogger(component)
