"""Timecode formatting for widget output."""

from __future__ import annotations

from datetime import datetime, timedelta, tzinfo
from typing import Optional


def format_timecode(value: timedelta) -> str:
    """Format a duration as ``minutes:seconds``, e.g. ``19:29`` or ``0:05``."""
    total_seconds = max(int(value.total_seconds()), 0)
    minutes, secs = divmod(total_seconds, 60)
    return f"{minutes}:{secs:02d}"


def format_countdown(progress: timedelta, full_length: timedelta) -> str:
    """Time left until ``progress`` reaches ``full_length``; ``Now`` once it has."""
    if progress >= full_length:
        return "Now"
    return format_timecode(full_length - progress)


def format_clock_time(value: datetime, tz: Optional[tzinfo] = None) -> str:
    return value.astimezone(tz).strftime("%H:%M")
