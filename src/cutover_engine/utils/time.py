"""Time helpers."""

from __future__ import annotations

from datetime import datetime, timezone


def utc_now() -> datetime:
    return datetime.now(tz=timezone.utc)


def log_timestamp() -> str:
    return datetime.now().strftime("%H:%M:%S")


def format_duration(seconds: float) -> str:
    """Render a duration the way existing runbooks print it (``5m0s``, ``1h0m0s``, ``30s``)."""
    if seconds <= 0:
        return "0s"
    whole = int(seconds)
    fraction = seconds - whole
    hours, remainder = divmod(whole, 3600)
    minutes, secs = divmod(remainder, 60)

    if fraction:
        secs_text = f"{secs + fraction:g}s"
    else:
        secs_text = f"{secs}s"

    if hours:
        return f"{hours}h{minutes}m{secs_text}"
    if minutes:
        return f"{minutes}m{secs_text}"
    return secs_text
