"""
Helpers for turning sizes and timestamps into human-readable strings.

Used by the CLI summary, the dashboard and the `history` command.
"""

import time
from datetime import datetime
from typing import Optional

SIZE_UNITS = ["B", "KB", "MB", "GB"]


def format_file_size(size_bytes: int) -> str:
    """
    Formats a byte count with 1024-based units and at most one decimal.

    Trailing ".0" is dropped, so 1024 becomes "1 KB" and 1536 becomes "1.5 KB".
    Sizes beyond the GB range stay in GB.
    """
    if size_bytes <= 0:
        return "0 B"

    value = float(size_bytes)
    idx = 0
    while value >= 1024.0 and idx < len(SIZE_UNITS) - 1:
        value /= 1024.0
        idx += 1

    text = f"{value:.1f}".rstrip("0").rstrip(".")
    return f"{text} {SIZE_UNITS[idx]}"


def format_relative_time(timestamp_ms: int, now_ms: Optional[int] = None) -> str:
    """
    Describes an epoch-millisecond timestamp relative to now.

    "Just now" under a minute, then minutes, hours and days up to a week;
    older entries are shown as a plain date.
    """
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    diff = now_ms - timestamp_ms

    minutes = diff // (1000 * 60)
    hours = diff // (1000 * 60 * 60)
    days = diff // (1000 * 60 * 60 * 24)

    if minutes < 1:
        return "Just now"
    if minutes < 60:
        return f"{minutes} minute{'s' if minutes > 1 else ''} ago"
    if hours < 24:
        return f"{hours} hour{'s' if hours > 1 else ''} ago"
    if days < 7:
        return f"{days} day{'s' if days > 1 else ''} ago"
    return datetime.fromtimestamp(timestamp_ms / 1000).strftime("%Y-%m-%d")


def format_ratio(ratio: Optional[float]) -> str:
    if ratio is None:
        return "-"
    return f"{ratio:.1f}%"
