"""Logging utilities for Ensemble sessions.

Provides color-coded output to distinguish routine pipeline steps, state
changes, and recovered failures.
"""

import os
from enum import Enum


class Color(Enum):
    """ANSI color codes for terminal output."""

    # Colors for operation types
    BLUE = "\033[94m"      # Deterministic pipeline steps (perceive, decide, act)
    YELLOW = "\033[93m"    # State-machine transitions
    RED = "\033[91m"       # Errors recovered inside the pipeline
    GREEN = "\033[92m"     # Success/completion
    CYAN = "\033[96m"      # Info/metadata

    # Formatting
    BOLD = "\033[1m"
    RESET = "\033[0m"


def colored(text: str, color: Color, bold: bool = False) -> str:
    """Wrap text in ANSI color codes if colors are enabled.

    Args:
        text: Text to colorize
        color: Color to apply
        bold: Whether to make text bold

    Returns:
        Colorized text if ENSEMBLE_NO_COLOR is not set, otherwise plain text
    """
    if os.getenv("ENSEMBLE_NO_COLOR"):
        return text

    prefix = color.value
    if bold:
        prefix = Color.BOLD.value + prefix

    return f"{prefix}{text}{Color.RESET.value}"


def verbose_enabled() -> bool:
    """Return True when ENSEMBLE_VERBOSE is set for this process."""
    return bool(os.getenv("ENSEMBLE_VERBOSE"))


def log_deterministic(message: str) -> None:
    """Log a deterministic pipeline step (blue)."""
    print(colored(f"{LOG_TAG_DETERMINISTIC} {message}", Color.BLUE))


def log_transition(message: str) -> None:
    """Log a state-machine transition (yellow)."""
    print(colored(f"{LOG_TAG_TRANSITION} {message}", Color.YELLOW))


def log_error(message: str) -> None:
    """Log a recovered error (red)."""
    print(colored(f"{LOG_TAG_ERROR} {message}", Color.RED))


def log_success(message: str) -> None:
    """Log a success (green)."""
    print(colored(f"{LOG_TAG_SUCCESS} {message}", Color.GREEN))


def log_info(message: str) -> None:
    """Log metadata/info (cyan)."""
    print(colored(f"{LOG_TAG_INFO} {message}", Color.CYAN))


# Markers for operation types (color-blind accessible)
LOG_TAG_DETERMINISTIC = "[•]"  # Pipeline step
LOG_TAG_TRANSITION = "[~]"     # State-machine transition
LOG_TAG_ERROR = "[!]"          # Recovered error
LOG_TAG_SUCCESS = "[✓]"        # Success
LOG_TAG_INFO = "[i]"           # Information
