"""Human-readable record timestamps (unix seconds)."""
import time
from typing import Optional

_UNITS = [
    (31536000, "year"),
    (2592000, "month"),
    (86400, "day"),
    (3600, "hour"),
    (60, "minute"),
]


def format_time_ago(timestamp: int, now: Optional[int] = None) -> str:
    """'just now', '1 minute ago', '3 days ago', ..."""
    if now is None:
        now = int(time.time())
    diff = now - timestamp
    if diff < 60:
        return "just now"
    for seconds, unit in _UNITS:
        if diff >= seconds:
            n = diff // seconds
            return f"{n} {unit if n == 1 else unit + 's'} ago"
    return "just now"
