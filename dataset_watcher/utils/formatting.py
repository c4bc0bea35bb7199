"""
Helper functions for formatting data into human-readable strings.
"""

from datetime import datetime


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


def format_duration(seconds: float) -> str:
    """
    Formats a duration in seconds into a human-readable string (e.g., '2h 34m 12s').
    Durations under a second keep one decimal ('0.4s').
    """
    if seconds < 1:
        return f"{max(seconds, 0.0):.1f}s"
    s = int(seconds)
    hours, remainder = divmod(s, 3600)
    minutes, secs = divmod(remainder, 60)
    parts = []
    if hours > 0:
        parts.append(f"{hours}h")
    if minutes > 0:
        parts.append(f"{minutes}m")
    if secs > 0 or not parts:
        parts.append(f"{secs}s")
    return " ".join(parts)


def format_timestamp(value: datetime | None) -> str:
    """Renders a stored timestamp in local time, or "-" if unset."""
    if value is None:
        return "-"
    return value.astimezone().strftime("%Y-%m-%d %H:%M:%S")


def format_interval(minutes: float) -> str:
    """Formats a polling interval, dropping the fraction for whole minutes."""
    if float(minutes).is_integer():
        return f"{int(minutes)} min"
    return f"{minutes:g} min"
