"""Break scheduling state machine.

The scheduler turns clock ticks and idle samples into presence-mode
transitions::

    Active -> PreBreak -> OnBreak -> Active

with user overrides (snooze, mute, forced/skipped/postponed breaks) layered on
top. Every operation works on a copy of the current state and commits it with a
single assignment, so an exception part-way through leaves the previous state
untouched.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Optional

from .config import SchedulerSettings
from .errors import InvalidOperation
from .models import (
    ZERO,
    Active,
    Muted,
    OnBreak,
    PreBreak,
    SchedulerState,
    Snoozed,
    Transition,
)

logger = logging.getLogger(__name__)


class BreakScheduler:
    """Owns a :class:`SchedulerState` and applies ticks and commands to it."""

    def __init__(self, settings: SchedulerSettings, state: SchedulerState) -> None:
        self.settings = settings
        self._state = state

    @property
    def state(self) -> SchedulerState:
        """A copy of the current state."""
        return replace(self._state)

    def on_tick(self, now: datetime, idle_duration: timedelta) -> Optional[Transition]:
        state = replace(self._state)
        previous_mode = state.mode
        before = _reporting_key(state)

        dt = now - state.last_tick_at
        if dt < ZERO or dt > self.settings.max_tick_gap:
            # Suspend/resume or a clock jump: charge nothing, count the gap as idle.
            logger.info("Tick gap of %s treated as suspend/resume.", dt)
            if dt > ZERO:
                idle_duration = max(idle_duration, dt)
            dt = ZERO
        idle_duration = max(idle_duration, ZERO)

        self._expire_override(state, now)

        mode = state.mode
        if isinstance(mode, (Active, PreBreak)):
            self._advance_countdown(state, dt, idle_duration)
        elif isinstance(mode, OnBreak):
            self._advance_break(state, mode, dt)
        elif isinstance(mode, Muted):
            self._advance_muted(state, dt, idle_duration)
        elif isinstance(mode, Snoozed):
            pass
        else:  # pragma: no cover - closed set of modes
            raise TypeError(f"Unknown presence mode: {mode!r}")

        state.last_tick_at = now
        self._commit(state)

        if state.mode != previous_mode or _reporting_key(state) != before:
            return Transition(previous_mode=previous_mode, mode=state.mode)
        return None

    def snooze_for(self, duration: timedelta, now: datetime) -> Optional[Transition]:
        if duration < ZERO:
            raise InvalidOperation("Snooze duration must not be negative.")
        self._reject_on_break("snooze")
        state = replace(self._state, mode=Snoozed(until=now + duration), overdue_time=ZERO)
        return self._apply(state)

    def mute(self) -> Optional[Transition]:
        self._reject_on_break("mute")
        return self._apply(replace(self._state, mode=Muted(until=None)))

    def mute_for(self, duration: timedelta, now: datetime) -> Optional[Transition]:
        if duration < ZERO:
            raise InvalidOperation("Mute duration must not be negative.")
        self._reject_on_break("mute")
        return self._apply(replace(self._state, mode=Muted(until=now + duration)))

    def unmute(self) -> Optional[Transition]:
        if not isinstance(self._state.mode, (Snoozed, Muted)):
            return None
        return self._apply(replace(self._state, mode=Active(), overdue_time=ZERO))

    def trigger_break_now(self) -> Optional[Transition]:
        if isinstance(self._state.mode, OnBreak):
            return None
        state = replace(self._state)
        self._start_break(state)
        return self._apply(state)

    def skip_break(self) -> Optional[Transition]:
        if not isinstance(self._state.mode, OnBreak):
            return None
        return self._apply(
            replace(
                self._state,
                mode=Active(),
                elapsed_active_time=ZERO,
                overdue_time=ZERO,
            )
        )

    def postpone_break(self, duration: timedelta) -> Optional[Transition]:
        """End the current break so the next one is due after ``duration`` of activity."""
        if duration <= ZERO:
            raise InvalidOperation("Postpone duration must be positive.")
        if not isinstance(self._state.mode, OnBreak):
            return None
        elapsed = max(self.settings.break_interval - duration, ZERO)
        return self._apply(
            replace(self._state, mode=Active(), elapsed_active_time=elapsed)
        )

    def set_reading_mode(self, enabled: bool) -> None:
        self._commit(replace(self._state, reading_mode=enabled))
        logger.info("Reading mode %s.", "enabled" if enabled else "disabled")

    def _expire_override(self, state: SchedulerState, now: datetime) -> None:
        mode = state.mode
        if isinstance(mode, Snoozed) and now >= mode.until:
            logger.info("Snooze expired.")
            state.mode = Active()
        elif isinstance(mode, Muted) and mode.until is not None and now >= mode.until:
            logger.info("Timed mute expired.")
            state.mode = Active()
            state.overdue_time = ZERO

    def _advance_countdown(
        self, state: SchedulerState, dt: timedelta, idle_duration: timedelta
    ) -> None:
        settings = self.settings
        if idle_duration >= settings.idle_reset_threshold and not state.reading_mode:
            state.elapsed_active_time = ZERO
            state.mode = Active()
            return

        state.elapsed_active_time = min(
            state.elapsed_active_time + dt, settings.break_interval
        )
        mode = state.mode
        if isinstance(mode, Active):
            if state.elapsed_active_time >= settings.prebreak_threshold:
                state.mode = PreBreak(remaining=settings.prebreak_warning_duration)
            return

        if state.elapsed_active_time < settings.prebreak_threshold:
            state.mode = Active()
            return

        remaining = mode.remaining - dt
        if remaining <= ZERO:
            self._start_break(state)
        else:
            state.mode = PreBreak(remaining=remaining)

    def _advance_break(self, state: SchedulerState, mode: OnBreak, dt: timedelta) -> None:
        remaining = mode.remaining - dt
        if remaining <= ZERO:
            state.mode = Active()
            state.elapsed_active_time = ZERO
        else:
            state.mode = OnBreak(remaining=remaining)

    def _advance_muted(
        self, state: SchedulerState, dt: timedelta, idle_duration: timedelta
    ) -> None:
        settings = self.settings
        if idle_duration >= settings.idle_reset_threshold and not state.reading_mode:
            state.elapsed_active_time = ZERO
            state.overdue_time = ZERO
            return

        total = state.elapsed_active_time + dt
        if total > settings.break_interval:
            # Due: the excess goes to overdue and elapsed stays pinned.
            state.overdue_time += total - max(state.elapsed_active_time, settings.break_interval)
        state.elapsed_active_time = min(total, settings.break_interval)

    def _start_break(self, state: SchedulerState) -> None:
        state.mode = OnBreak(remaining=self.settings.break_duration)
        state.overdue_time = ZERO

    def _reject_on_break(self, action: str) -> None:
        if isinstance(self._state.mode, OnBreak):
            raise InvalidOperation(f"Cannot {action} while a break is in progress.")

    def _apply(self, state: SchedulerState) -> Transition:
        previous_mode = self._state.mode
        self._commit(state)
        return Transition(previous_mode=previous_mode, mode=state.mode)

    def _commit(self, state: SchedulerState) -> None:
        previous_mode = self._state.mode
        self._state = state
        if type(previous_mode) is not type(state.mode):
            logger.info(
                "Presence mode changed: %s -> %s", previous_mode.tag, state.mode.tag
            )


def _reporting_key(state: SchedulerState) -> tuple[object, ...]:
    remaining = getattr(state.mode, "remaining", None)
    return (
        type(state.mode),
        _whole_seconds(state.elapsed_active_time),
        _whole_seconds(state.overdue_time),
        _whole_seconds(remaining) if remaining is not None else None,
        state.reading_mode,
    )


def _whole_seconds(value: timedelta) -> int:
    return int(value.total_seconds())
