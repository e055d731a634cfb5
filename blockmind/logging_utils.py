"""Logging utilities for Blockmind agents.

Provides color-coded output to distinguish deterministic work from oracle calls.
"""

import os
from enum import Enum


class Color(Enum):
    """ANSI color codes for terminal output."""

    # Colors for operation types
    BLUE = "\033[94m"      # Deterministic operations (perception, dispatch)
    YELLOW = "\033[93m"    # Oracle calls (decide action, compose reply)
    RED = "\033[91m"       # Errors, warnings and fallbacks
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
        Colorized text if BLOCKMIND_NO_COLOR is not set, otherwise plain text
    """
    if os.getenv("BLOCKMIND_NO_COLOR"):
        return text

    prefix = color.value
    if bold:
        prefix = Color.BOLD.value + prefix

    return f"{prefix}{text}{Color.RESET.value}"


# Markers for operation types (color-blind accessible)
LOG_TAG_DETERMINISTIC = "[•]"  # Deterministic operation
LOG_TAG_LLM = "[AI]"           # Oracle call
LOG_TAG_ERROR = "[!]"          # Error/fallback
LOG_TAG_SUCCESS = "[✓]"        # Success
LOG_TAG_INFO = "[i]"           # Information


def _agent_line(tag: str, agent: str | None, message: str) -> str:
    if agent:
        return f"  {tag} [{agent}] {message}"
    return f"  {tag} {message}"


def log_deterministic(message: str, agent: str | None = None) -> None:
    """Log a deterministic operation (blue)."""
    print(colored(_agent_line(LOG_TAG_DETERMINISTIC, agent, message), Color.BLUE))


def log_llm(message: str, agent: str | None = None) -> None:
    """Log an oracle operation (yellow)."""
    print(colored(_agent_line(LOG_TAG_LLM, agent, message), Color.YELLOW))


def log_error(message: str, agent: str | None = None) -> None:
    """Log an error, warning or fallback (red)."""
    print(colored(_agent_line(LOG_TAG_ERROR, agent, message), Color.RED))


def log_success(message: str, agent: str | None = None) -> None:
    """Log a success (green)."""
    print(colored(_agent_line(LOG_TAG_SUCCESS, agent, message), Color.GREEN))


def log_info(message: str, agent: str | None = None) -> None:
    """Log metadata/info (cyan)."""
    print(colored(_agent_line(LOG_TAG_INFO, agent, message), Color.CYAN))
