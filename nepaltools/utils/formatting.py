"""
Helper functions for formatting data into human-readable strings.
"""

from datetime import datetime

from nepaltools.models.stats import classify_mime_type


def format_size(bytes_size: int) -> str:
    """Formats bytes into a human-readable size string (e.g., '145.3 MB')."""
    if bytes_size <= 0:
        return "0 B"
    units = ["B", "KB", "MB", "GB", "TB"]
    i = 0
    while bytes_size >= 1024 and i < len(units) - 1:
        bytes_size /= 1024
        i += 1
    return f"{bytes_size:.1f} {units[i]}"


def format_timestamp(epoch_ms: int) -> str:
    """Formats an epoch-milliseconds timestamp as local 'YYYY-MM-DD HH:MM:SS'."""
    return datetime.fromtimestamp(epoch_ms / 1000).strftime("%Y-%m-%d %H:%M:%S")


def format_percent(percent: float) -> str:
    """Formats a usage percentage, keeping small non-zero values visible."""
    if 0 < percent < 0.1:
        return "<0.1%"
    return f"{percent:.1f}%"


def category_for_mime_type(mime_type: str) -> str:
    """Derives the default storage category, matching how stats count the type."""
    return classify_mime_type(mime_type) or "other"
