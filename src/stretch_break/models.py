"""Domain models for the break scheduler."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Optional, Union

ZERO = timedelta(0)


@dataclass(frozen=True, slots=True)
class Active:
    """Normal countdown running."""

    tag = "normal"


@dataclass(frozen=True, slots=True)
class PreBreak:
    """Warning window before an imminent break."""

    remaining: timedelta
    tag = "prebreak"


@dataclass(frozen=True, slots=True)
class OnBreak:
    remaining: timedelta
    tag = "break"


@dataclass(frozen=True, slots=True)
class Snoozed:
    """Countdown suspended until ``until``; elapsed time is frozen."""

    until: datetime
    tag = "snoozed"


@dataclass(frozen=True, slots=True)
class Muted:
    """Breaks suppressed indefinitely or until ``until``; overdue time accrues."""

    until: Optional[datetime] = None
    tag = "muted"


PresenceMode = Union[Active, PreBreak, OnBreak, Snoozed, Muted]


@dataclass(slots=True)
class SchedulerState:
    """The aggregate mutated by the scheduler and snapshotted to disk."""

    last_tick_at: datetime
    elapsed_active_time: timedelta = ZERO
    overdue_time: timedelta = ZERO
    mode: PresenceMode = field(default_factory=Active)
    reading_mode: bool = False

    @classmethod
    def fresh(cls, now: datetime) -> "SchedulerState":
        return cls(last_tick_at=now)


@dataclass(frozen=True, slots=True)
class Transition:
    """Emitted by the scheduler when something externally visible changed."""

    previous_mode: PresenceMode
    mode: PresenceMode

    @property
    def mode_changed(self) -> bool:
        return self.previous_mode != self.mode


@dataclass(frozen=True, slots=True)
class WidgetInfo:
    """Projection of scheduler state published to display surfaces."""

    normal_timer_value: str
    prebreak_timer_value: str
    countdown_to_reset_value: str
    overdue_value: str
    presence_mode: dict[str, Optional[str]]
    snoozed_until_time: Optional[str]
    reading_mode: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "normal_timer_value": self.normal_timer_value,
            "prebreak_timer_value": self.prebreak_timer_value,
            "countdown_to_reset_value": self.countdown_to_reset_value,
            "overdue_value": self.overdue_value,
            "presence_mode": dict(self.presence_mode),
            "snoozed_until_time": self.snoozed_until_time,
            "reading_mode": self.reading_mode,
        }
