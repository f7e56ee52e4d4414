"""Break service: drives the scheduler on a single timeline.

One thread owns the scheduler. It ticks at a fixed cadence and, between ticks,
applies commands that other threads (the HTTP API, the CLI) submit through a
queue. Every change is projected into a :class:`WidgetInfo` and published to
subscribers.
"""

from __future__ import annotations

import logging
import queue
import threading
import time
from concurrent.futures import Future, TimeoutError as FutureTimeoutError
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone, tzinfo
from typing import Any, Callable, Optional

from .config import SchedulerSettings
from .errors import InvalidOperation, PersistenceUnavailable
from .models import ZERO, SchedulerState, Transition, WidgetInfo
from .persistence import StatePersistence
from .projection import project
from .scheduler import BreakScheduler

logger = logging.getLogger(__name__)

Subscriber = Callable[[WidgetInfo], None]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def never_idle() -> timedelta:
    return ZERO


@dataclass(slots=True)
class _Command:
    name: str
    action: Callable[[datetime], Optional[Transition]]
    future: Future = field(default_factory=Future)


class WidgetInfoPublisher:
    """Fan-out of widget info to any number of subscribers."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._subscribers: list[Subscriber] = []

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    def publish(self, info: WidgetInfo) -> None:
        with self._lock:
            subscribers = list(self._subscribers)
        for callback in subscribers:
            try:
                callback(info)
            except Exception:
                logger.exception("Widget info subscriber %r failed.", callback)


class BreakService:
    """Runs the break scheduler and serialises commands with its ticks.

    State is saved after every command, on every mode change and at shutdown.
    Plain counter progress is saved at most once per ``save_interval``, so a
    crash can lose up to that much counted activity.

    A command whose caller stops waiting is cancelled and never applied.
    """

    def __init__(
        self,
        settings: SchedulerSettings,
        *,
        persistence: Optional[StatePersistence] = None,
        idle_source: Callable[[], timedelta] = never_idle,
        clock: Callable[[], datetime] = utc_now,
        tz: Optional[tzinfo] = None,
    ) -> None:
        self.settings = settings
        self._persistence = persistence
        self._idle_source = idle_source
        self._clock = clock
        self._tz = tz
        self.persistence_available = persistence is not None

        now = clock()
        self.scheduler = BreakScheduler(settings, self._restore_state(now))
        self._commands: queue.Queue[Optional[_Command]] = queue.Queue()
        self._publisher = WidgetInfoPublisher()
        self._widget_lock = threading.Lock()
        self._last_idle = ZERO
        self._widget_info = self._project()
        self._last_saved_at = now
        self._dirty = False
        self._running = threading.Event()

    # Thread-safe API -------------------------------------------------------

    @property
    def widget_info(self) -> WidgetInfo:
        with self._widget_lock:
            return self._widget_info

    def is_running(self) -> bool:
        return self._running.is_set()

    def wait_until_running(self, timeout: float) -> bool:
        return self._running.wait(timeout)

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register ``callback`` for widget info updates; returns an unsubscribe function."""
        return self._publisher.subscribe(callback)

    def snooze_for(self, duration: timedelta, timeout: float = 5.0) -> WidgetInfo:
        return self._call("snooze", lambda now: self.scheduler.snooze_for(duration, now), timeout)

    def mute(self, timeout: float = 5.0) -> WidgetInfo:
        return self._call("mute", lambda now: self.scheduler.mute(), timeout)

    def mute_for(self, duration: timedelta, timeout: float = 5.0) -> WidgetInfo:
        return self._call("mute", lambda now: self.scheduler.mute_for(duration, now), timeout)

    def unmute(self, timeout: float = 5.0) -> WidgetInfo:
        return self._call("unmute", lambda now: self.scheduler.unmute(), timeout)

    def trigger_break(self, timeout: float = 5.0) -> WidgetInfo:
        return self._call("break", lambda now: self.scheduler.trigger_break_now(), timeout)

    def skip_break(self, timeout: float = 5.0) -> WidgetInfo:
        return self._call("skip-break", lambda now: self.scheduler.skip_break(), timeout)

    def postpone_break(self, duration: timedelta, timeout: float = 5.0) -> WidgetInfo:
        return self._call(
            "postpone", lambda now: self.scheduler.postpone_break(duration), timeout
        )

    def set_reading_mode(self, enabled: bool, timeout: float = 5.0) -> WidgetInfo:
        def action(now: datetime) -> None:
            self.scheduler.set_reading_mode(enabled)

        return self._call("reading-mode", action, timeout)

    def status(self) -> dict[str, Any]:
        return {
            "running": self.is_running(),
            "persistence_available": self.persistence_available,
            "database_path": str(self._persistence.db_path) if self._persistence else None,
            "break_interval_seconds": self.settings.break_interval.total_seconds(),
            "prebreak_warning_seconds": self.settings.prebreak_warning_duration.total_seconds(),
            "break_duration_seconds": self.settings.break_duration.total_seconds(),
            "idle_reset_threshold_seconds": self.settings.idle_reset_threshold.total_seconds(),
        }

    # Scheduling thread -----------------------------------------------------

    def run_forever(self) -> None:
        stop_event = threading.Event()
        try:
            self.run_until_stopped(stop_event)
        except KeyboardInterrupt:
            logger.info("Break service interrupted.")

    def run_until_stopped(self, stop_event: threading.Event) -> None:
        """Run the scheduling loop until ``stop_event`` is set, then save."""
        self._running.set()
        try:
            self._run_loop(stop_event)
        finally:
            self._running.clear()
            self._shutdown()

    def wake(self) -> None:
        """Interrupt the loop's wait, e.g. after setting its stop event."""
        self._commands.put(None)

    def tick(self) -> Optional[Transition]:
        now = self._clock()
        idle = self._idle_source()
        transition = self.scheduler.on_tick(now, idle)
        self._last_idle = idle
        if transition is not None:
            self._dirty = True
        mode_changed = transition is not None and transition.mode_changed
        if self._dirty and (
            mode_changed or now - self._last_saved_at >= self.settings.save_interval
        ):
            self._save(now)
        self._refresh_widget_info()
        return transition

    def _process_command(self, command: _Command) -> None:
        if not command.future.set_running_or_notify_cancel():
            logger.info("Dropped %s command; the caller gave up waiting.", command.name)
            return
        now = self._clock()
        try:
            transition = command.action(now)
        except InvalidOperation as exc:
            logger.info("Rejected %s command: %s", command.name, exc)
            command.future.set_exception(exc)
            return
        except Exception as exc:
            logger.exception("Command %s failed.", command.name)
            command.future.set_exception(exc)
            return
        logger.debug("Applied %s command.", command.name)
        self._dirty = True
        self._save(now)
        self._refresh_widget_info()
        command.future.set_result(transition)

    def _call(
        self,
        name: str,
        action: Callable[[datetime], Optional[Transition]],
        timeout: float,
    ) -> WidgetInfo:
        if not self.is_running():
            raise RuntimeError("Break service is not running.")
        command = _Command(name=name, action=action)
        self._commands.put(command)
        try:
            command.future.result(timeout=timeout)
        except FutureTimeoutError:
            if command.future.cancel():
                raise
            # Already being applied; report its outcome.
            command.future.result()
        return self.widget_info

    def _run_loop(self, stop_event: threading.Event) -> None:
        logger.info("Starting break service.")
        interval = self.settings.tick_interval.total_seconds()
        next_tick = time.monotonic()
        while not stop_event.is_set():
            self.tick()
            next_tick += interval
            now = time.monotonic()
            if next_tick < now:
                next_tick = now
            self._drain_commands(stop_event, next_tick)

    def _drain_commands(self, stop_event: threading.Event, deadline: float) -> None:
        while not stop_event.is_set():
            timeout = deadline - time.monotonic()
            if timeout <= 0:
                return
            try:
                command = self._commands.get(timeout=timeout)
            except queue.Empty:
                return
            if command is not None:
                self._process_command(command)

    def _shutdown(self) -> None:
        while True:
            try:
                command = self._commands.get_nowait()
            except queue.Empty:
                break
            if command is not None and command.future.set_running_or_notify_cancel():
                command.future.set_exception(RuntimeError("Break service stopped."))
        self._save(self._clock())
        logger.info("Break service stopped.")

    def _restore_state(self, now: datetime) -> SchedulerState:
        if self._persistence is None:
            return SchedulerState.fresh(now)
        try:
            state = self._persistence.load(now)
        except PersistenceUnavailable:
            logger.warning("Could not load saved state; running in memory.", exc_info=True)
            self.persistence_available = False
            return SchedulerState.fresh(now)
        if state is None:
            return SchedulerState.fresh(now)
        logger.info("Restored scheduler state (%s).", state.mode.tag)
        return state

    def _save(self, now: datetime) -> None:
        self._last_saved_at = now
        if self._persistence is None:
            return
        try:
            self._persistence.save(self.scheduler.state)
        except PersistenceUnavailable:
            if self.persistence_available:
                logger.warning("Could not save state; continuing in memory.", exc_info=True)
            self.persistence_available = False
            return
        if not self.persistence_available:
            logger.info("State persistence recovered.")
        self.persistence_available = True
        self._dirty = False

    def _project(self) -> WidgetInfo:
        return project(
            self.scheduler.state,
            self.settings,
            idle_duration=self._last_idle,
            tz=self._tz,
        )

    def _refresh_widget_info(self) -> None:
        info = self._project()
        with self._widget_lock:
            if info == self._widget_info:
                return
            self._widget_info = info
        self._publisher.publish(info)
