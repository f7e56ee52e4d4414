"""Load and save scheduler state, reconciling it across restarts."""

from __future__ import annotations

import logging
import sqlite3
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Optional

from .config import SchedulerSettings
from .db import database_connection, fetch_state_row, upsert_state_row
from .errors import PersistenceUnavailable
from .models import (
    ZERO,
    Active,
    Muted,
    OnBreak,
    PreBreak,
    PresenceMode,
    SchedulerState,
    Snoozed,
)

logger = logging.getLogger(__name__)


class StatePersistence:
    """Snapshot store for a single :class:`SchedulerState`.

    There is exactly one writer, the break service; every save is committed
    before :meth:`save` returns.
    """

    def __init__(self, db_path: Path, settings: SchedulerSettings) -> None:
        self.db_path = Path(db_path)
        self.settings = settings

    def load(self, now: datetime) -> Optional[SchedulerState]:
        """Return the reconciled stored state, or ``None`` if nothing is stored."""
        if not self.db_path.exists():
            logger.info("No saved state at %s; starting fresh.", self.db_path)
            return None
        try:
            with database_connection(self.db_path) as conn:
                row = fetch_state_row(conn)
        except sqlite3.Error as exc:
            raise PersistenceUnavailable(f"Could not read state from {self.db_path}") from exc
        if row is None:
            return None
        try:
            state = state_from_row(row)
        except (KeyError, TypeError, ValueError) as exc:
            raise PersistenceUnavailable(f"Stored state in {self.db_path} is malformed") from exc
        return reconcile(state, self.settings, now)

    def save(self, state: SchedulerState) -> None:
        try:
            with database_connection(self.db_path) as conn:
                upsert_state_row(
                    conn,
                    **state_to_row(state),
                    saved_at=datetime.now(timezone.utc).isoformat(),
                )
        except (sqlite3.Error, OSError) as exc:
            raise PersistenceUnavailable(f"Could not write state to {self.db_path}") from exc
        logger.debug("Saved scheduler state (%s).", state.mode.tag)


def reconcile(
    state: SchedulerState, settings: SchedulerSettings, now: datetime
) -> SchedulerState:
    """Adjust a restored state before the scheduler resumes from it.

    Breaks never resume mid-flight, expired overrides are dropped, and the time
    the process was not running is not charged against the countdown. Counters
    are checked against the current settings, so a longer interval can cancel a
    pending warning or overdue time.
    """
    mode = state.mode
    elapsed = min(state.elapsed_active_time, settings.break_interval)
    overdue = state.overdue_time

    if isinstance(mode, OnBreak):
        mode = Active()
        elapsed = ZERO
    elif isinstance(mode, Snoozed) and mode.until <= now:
        mode = Active()
    elif isinstance(mode, Muted) and mode.until is not None and mode.until <= now:
        mode = Active()
    elif isinstance(mode, PreBreak):
        if elapsed < settings.prebreak_threshold:
            mode = Active()
        else:
            mode = PreBreak(remaining=min(mode.remaining, settings.prebreak_warning_duration))

    if not isinstance(mode, Muted) or elapsed < settings.break_interval:
        overdue = ZERO

    return SchedulerState(
        last_tick_at=now,
        elapsed_active_time=elapsed,
        overdue_time=overdue,
        mode=mode,
        reading_mode=state.reading_mode,
    )


def state_to_row(state: SchedulerState) -> dict[str, Any]:
    mode = state.mode
    remaining = getattr(mode, "remaining", None)
    until = getattr(mode, "until", None)
    return {
        "elapsed_active_seconds": state.elapsed_active_time.total_seconds(),
        "overdue_seconds": state.overdue_time.total_seconds(),
        "mode": mode.tag,
        "mode_remaining_seconds": remaining.total_seconds() if remaining is not None else None,
        "mode_until": until.isoformat() if until is not None else None,
        "reading_mode": state.reading_mode,
        "last_tick_at": state.last_tick_at.isoformat(),
    }


def state_from_row(row: Any) -> SchedulerState:
    return SchedulerState(
        last_tick_at=_parse_timestamp(row["last_tick_at"]),
        elapsed_active_time=timedelta(seconds=float(row["elapsed_active_seconds"])),
        overdue_time=timedelta(seconds=float(row["overdue_seconds"])),
        mode=_mode_from_row(row),
        reading_mode=bool(row["reading_mode"]),
    )


def _mode_from_row(row: Any) -> PresenceMode:
    tag = row["mode"]
    if tag == Active.tag:
        return Active()
    if tag == PreBreak.tag:
        return PreBreak(remaining=timedelta(seconds=float(row["mode_remaining_seconds"])))
    if tag == OnBreak.tag:
        return OnBreak(remaining=timedelta(seconds=float(row["mode_remaining_seconds"])))
    if tag == Snoozed.tag:
        return Snoozed(until=_parse_timestamp(row["mode_until"]))
    if tag == Muted.tag:
        until = row["mode_until"]
        return Muted(until=_parse_timestamp(until) if until else None)
    raise ValueError(f"Unknown presence mode {tag!r}")


def _parse_timestamp(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
