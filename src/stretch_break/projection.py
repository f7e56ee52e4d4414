"""Project scheduler state into the widget info payload."""

from __future__ import annotations

from datetime import timedelta, tzinfo
from typing import Optional

from .config import SchedulerSettings
from .formatting import format_clock_time, format_countdown, format_timecode
from .models import (
    ZERO,
    Active,
    Muted,
    OnBreak,
    PreBreak,
    SchedulerState,
    WidgetInfo,
)


def project(
    state: SchedulerState,
    settings: SchedulerSettings,
    *,
    idle_duration: timedelta = ZERO,
    tz: Optional[tzinfo] = None,
) -> WidgetInfo:
    """Build the :class:`WidgetInfo` for ``state``.

    Pure: the same state, idle duration and timezone always give the same
    result. ``tz`` only affects ``snoozed_until_time`` and defaults to the local
    timezone.
    """
    mode = state.mode
    reset_countdown = _reset_countdown(state, settings, idle_duration)

    normal_timer_value = ""
    if isinstance(mode, Active):
        normal_timer_value = reset_countdown or format_countdown(
            state.elapsed_active_time, settings.break_interval
        )

    prebreak_timer_value = ""
    if isinstance(mode, (PreBreak, OnBreak)):
        prebreak_timer_value = format_timecode(mode.remaining)

    until = getattr(mode, "until", None)
    return WidgetInfo(
        normal_timer_value=normal_timer_value,
        prebreak_timer_value=prebreak_timer_value,
        countdown_to_reset_value=reset_countdown,
        overdue_value=format_timecode(state.overdue_time) if state.overdue_time > ZERO else "",
        presence_mode={
            "type": mode.tag,
            "until": until.isoformat() if until is not None else None,
        },
        snoozed_until_time=format_clock_time(until, tz) if until is not None else None,
        reading_mode=state.reading_mode,
    )


def _reset_countdown(
    state: SchedulerState, settings: SchedulerSettings, idle_duration: timedelta
) -> str:
    # Preview an imminent idle reset once the user has been away for a moment.
    if state.reading_mode or not isinstance(state.mode, (Active, Muted)):
        return ""
    if state.elapsed_active_time == ZERO and state.overdue_time == ZERO:
        return ""
    if not settings.reset_preview_grace <= idle_duration < settings.idle_reset_threshold:
        return ""
    return format_timecode(settings.idle_reset_threshold - idle_duration)
