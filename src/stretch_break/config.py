"""Configuration models and helpers for the break scheduler."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta


@dataclass(frozen=True, slots=True)
class SchedulerSettings:
    """Runtime configuration for the break scheduler.

    The first four fields are the break policy; the rest tune the service loop.
    """

    break_interval: timedelta = timedelta(minutes=20)
    prebreak_warning_duration: timedelta = timedelta(seconds=15)
    break_duration: timedelta = timedelta(seconds=90)
    idle_reset_threshold: timedelta = timedelta(seconds=90)
    tick_interval: timedelta = timedelta(seconds=1)
    max_tick_gap: timedelta = timedelta(seconds=5)
    reset_preview_grace: timedelta = timedelta(seconds=5)
    save_interval: timedelta = timedelta(seconds=15)
    idle_sample_interval: timedelta = timedelta(seconds=1)

    def __post_init__(self) -> None:
        for name in (
            "break_interval",
            "prebreak_warning_duration",
            "break_duration",
            "idle_reset_threshold",
            "tick_interval",
            "max_tick_gap",
            "save_interval",
            "idle_sample_interval",
        ):
            if getattr(self, name) <= timedelta(0):
                raise ValueError(f"{name} must be positive")
        if self.reset_preview_grace < timedelta(0):
            raise ValueError("reset_preview_grace must not be negative")
        if self.prebreak_warning_duration >= self.break_interval:
            raise ValueError(
                "prebreak_warning_duration must be shorter than break_interval"
            )
        if self.max_tick_gap < self.tick_interval:
            raise ValueError("max_tick_gap must be at least one tick_interval")

    @property
    def prebreak_threshold(self) -> timedelta:
        """Elapsed active time at which the warning starts."""
        return self.break_interval - self.prebreak_warning_duration

    @classmethod
    def from_intervals(
        cls,
        break_minutes: float,
        warning_seconds: float,
        break_seconds: float,
        idle_reset_seconds: float | None = None,
        tick_seconds: float = 1.0,
    ) -> "SchedulerSettings":
        idle_reset = idle_reset_seconds if idle_reset_seconds is not None else break_seconds
        return cls(
            break_interval=timedelta(minutes=break_minutes),
            prebreak_warning_duration=timedelta(seconds=warning_seconds),
            break_duration=timedelta(seconds=break_seconds),
            idle_reset_threshold=timedelta(seconds=idle_reset),
            tick_interval=timedelta(seconds=tick_seconds),
            max_tick_gap=timedelta(seconds=max(tick_seconds * 5, 5.0)),
        )
