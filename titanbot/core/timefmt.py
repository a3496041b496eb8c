from __future__ import annotations

import time
from datetime import datetime, timezone


def now_ms() -> int:
    return int(time.time() * 1000)


def format_duration(milliseconds: int) -> str:
    sec = max(0, (int(milliseconds) + 999) // 1000)
    days, sec = divmod(sec, 86400)
    hh, sec = divmod(sec, 3600)
    mm, ss = divmod(sec, 60)
    if days > 0:
        return f"{days}d {hh}h {mm}m"
    if hh > 0:
        return f"{hh}h {mm}m {ss}s"
    if mm > 0:
        return f"{mm}m {ss}s"
    return f"{ss}s"


def time_ago(timestamp_ms: int, *, now: int | None = None) -> str:
    current = now_ms() if now is None else int(now)
    elapsed = max(0, current - int(timestamp_ms))
    if elapsed < 60_000:
        return "just now"
    return f"{format_duration(elapsed)} ago"


def ms_to_datetime(timestamp_ms: int) -> datetime:
    return datetime.fromtimestamp(int(timestamp_ms) / 1000, tz=timezone.utc)
