"""Formatting utilities for consistent output across the CSV log, notifications and CLI."""

BYTES_PER_MB = 1024 * 1024


def bytes_to_mb(num_bytes: int) -> float:
    """Convert a byte count to mebibytes."""
    return num_bytes / BYTES_PER_MB


def format_mb(num_bytes: int) -> str:
    """Format a byte count as megabytes with one decimal (e.g. "512.0")."""
    return f"{bytes_to_mb(num_bytes):.1f}"


def format_percent(value: float | None) -> str:
    """Format a percentage with one decimal, or "N/A" when unknown.

    Args:
        value: Percentage, or None if the counter is unavailable

    Returns:
        "12.5%" or "N/A"
    """
    if value is None:
        return "N/A"
    return f"{value:.1f}%"


def truncate(text: str, length: int) -> str:
    """Truncate text to length, marking the cut with "..".

    Args:
        text: Text to truncate
        length: Maximum length of the result (must be > 2)
    """
    if len(text) <= length:
        return text
    return text[: length - 2] + ".."
