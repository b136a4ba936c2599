"""
Human-readable formatting helpers for notification text.
"""

from typing import Iterable

SPARK_CHARS = "▁▂▃▄▅▆▇█"


def format_duration(seconds: float) -> str:
    """Format a duration as ``45s``, ``3m``, ``3m20s`` or ``2h5m``."""
    total = int(round(max(seconds, 0)))
    if total < 60:
        return f"{total}s"
    if total < 3600:
        minutes, secs = divmod(total, 60)
        return f"{minutes}m{secs}s" if secs else f"{minutes}m"
    hours, rem = divmod(total, 3600)
    return f"{hours}h{rem // 60}m"


def format_uptime(seconds: float) -> str:
    seconds = int(seconds)
    days = seconds // 86400
    hours = (seconds % 86400) // 3600
    minutes = (seconds % 3600) // 60
    if days > 0:
        return f"{days}d{hours}h"
    return f"{hours}h{minutes}m"


def format_bytes(num_bytes: float) -> str:
    """Format a byte count in whole gigabytes, or terabytes above 1000G."""
    gb = num_bytes / 1024 / 1024 / 1024
    if gb >= 1000:
        return f"{gb / 1024:.0f}T"
    return f"{gb:.0f}G"


def format_ram(mb: float) -> str:
    if mb >= 1024:
        return f"{mb / 1024.0:.1f}G"
    return f"{int(mb)}M"


def truncate(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[:limit - 1] + "~"


def progress_bar(percent: float) -> str:
    """10-step bar, rounded to the nearest step."""
    percent = min(max(percent, 0.0), 100.0)
    filled = min(int((percent + 5) / 10), 10)
    return "█" * filled + "░" * (10 - filled)


def mini_graph(values: Iterable[float], max_points: int = 12) -> str:
    """Render the last ``max_points`` percentages as a sparkline."""
    points = list(values)[-max_points:] if max_points > 0 else []
    chars = []
    for value in points:
        idx = min(max(int(value / 12.5), 0), len(SPARK_CHARS) - 1)
        chars.append(SPARK_CHARS[idx])
    return "".join(chars)
