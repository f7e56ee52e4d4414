from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

import pytest

from stretch_break.config import SchedulerSettings
from stretch_break.models import ZERO, SchedulerState, Transition
from stretch_break.scheduler import BreakScheduler

T0 = datetime(2025, 2, 3, 12, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, start: datetime = T0) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def settings() -> SchedulerSettings:
    return SchedulerSettings(
        break_interval=timedelta(minutes=20),
        prebreak_warning_duration=timedelta(seconds=15),
        break_duration=timedelta(seconds=20),
        idle_reset_threshold=timedelta(minutes=2),
    )


@pytest.fixture
def make_scheduler(settings: SchedulerSettings) -> Callable[..., BreakScheduler]:
    def factory(**state_fields) -> BreakScheduler:
        state_fields.setdefault("last_tick_at", T0)
        return BreakScheduler(settings, SchedulerState(**state_fields))

    return factory


@pytest.fixture
def advance() -> Callable[..., list[Transition]]:
    """Feed one-second ticks to a scheduler, continuing from its last tick."""

    def run(
        scheduler: BreakScheduler,
        seconds: int,
        idle: timedelta = ZERO,
        on_tick: Optional[Callable[[BreakScheduler], None]] = None,
    ) -> list[Transition]:
        now = scheduler.state.last_tick_at
        transitions: list[Transition] = []
        for _ in range(seconds):
            now += timedelta(seconds=1)
            transition = scheduler.on_tick(now, idle)
            if transition is not None:
                transitions.append(transition)
            if on_tick is not None:
                on_tick(scheduler)
        return transitions

    return run
