from __future__ import annotations

from datetime import timedelta

import pytest

from stretch_break.config import SchedulerSettings
from stretch_break.db import database_connection, upsert_state_row
from stretch_break.errors import PersistenceUnavailable
from stretch_break.models import (
    ZERO,
    Active,
    Muted,
    OnBreak,
    PreBreak,
    SchedulerState,
    Snoozed,
)
from stretch_break.persistence import StatePersistence
from stretch_break.projection import project

from conftest import T0

LATER = T0 + timedelta(hours=1)


@pytest.fixture
def store(tmp_path, settings) -> StatePersistence:
    return StatePersistence(tmp_path / "state.sqlite3", settings)


def test_missing_database_is_a_fresh_start(store) -> None:
    assert store.load(T0) is None
    assert not store.db_path.exists()


def test_round_trip_preserves_widget_info(store, settings) -> None:
    state = SchedulerState.fresh(T0)
    store.save(state)

    restored = store.load(LATER)

    assert restored is not None
    assert project(restored, settings) == project(state, settings)
    assert restored.last_tick_at == LATER


def test_counters_and_flags_are_restored(store) -> None:
    store.save(
        SchedulerState(
            last_tick_at=T0,
            elapsed_active_time=timedelta(minutes=5, seconds=30),
            reading_mode=True,
        )
    )

    restored = store.load(LATER)

    assert restored.mode == Active()
    assert restored.elapsed_active_time == timedelta(minutes=5, seconds=30)
    assert restored.reading_mode is True


def test_break_in_progress_is_not_resumed(store) -> None:
    store.save(
        SchedulerState(
            last_tick_at=T0,
            elapsed_active_time=timedelta(minutes=20),
            mode=OnBreak(remaining=timedelta(seconds=40)),
        )
    )

    restored = store.load(LATER)

    assert restored.mode == Active()
    assert restored.elapsed_active_time == ZERO


def test_expired_snooze_is_dropped(store) -> None:
    store.save(SchedulerState(last_tick_at=T0, mode=Snoozed(until=T0 + timedelta(minutes=5))))
    assert store.load(LATER).mode == Active()


def test_pending_snooze_is_kept(store) -> None:
    until = T0 + timedelta(hours=2)
    store.save(SchedulerState(last_tick_at=T0, mode=Snoozed(until=until)))
    assert store.load(LATER).mode == Snoozed(until=until)


def test_indefinite_mute_keeps_overdue_time(store) -> None:
    store.save(
        SchedulerState(
            last_tick_at=T0,
            elapsed_active_time=timedelta(minutes=20),
            overdue_time=timedelta(minutes=3),
            mode=Muted(),
        )
    )

    restored = store.load(LATER)

    assert restored.mode == Muted(until=None)
    assert restored.overdue_time == timedelta(minutes=3)


def test_expired_timed_mute_is_dropped(store) -> None:
    store.save(
        SchedulerState(
            last_tick_at=T0,
            elapsed_active_time=timedelta(minutes=20),
            overdue_time=timedelta(minutes=3),
            mode=Muted(until=T0 + timedelta(minutes=10)),
        )
    )

    restored = store.load(LATER)

    assert restored.mode == Active()
    assert restored.overdue_time == ZERO


def test_prebreak_is_restored_with_remaining_warning(store) -> None:
    store.save(
        SchedulerState(
            last_tick_at=T0,
            elapsed_active_time=timedelta(minutes=19, seconds=50),
            mode=PreBreak(remaining=timedelta(seconds=10)),
        )
    )
    assert store.load(LATER).mode == PreBreak(remaining=timedelta(seconds=10))


def test_elapsed_time_is_clamped_to_current_interval(tmp_path) -> None:
    db_path = tmp_path / "state.sqlite3"
    long_interval = SchedulerSettings(break_interval=timedelta(minutes=45))
    StatePersistence(db_path, long_interval).save(
        SchedulerState(last_tick_at=T0, elapsed_active_time=timedelta(minutes=30))
    )

    short_interval = SchedulerSettings(break_interval=timedelta(minutes=20))
    restored = StatePersistence(db_path, short_interval).load(LATER)

    assert restored.elapsed_active_time == timedelta(minutes=20)


def test_warning_is_cancelled_when_interval_grows(tmp_path) -> None:
    db_path = tmp_path / "state.sqlite3"
    StatePersistence(db_path, SchedulerSettings()).save(
        SchedulerState(
            last_tick_at=T0,
            elapsed_active_time=timedelta(minutes=19, seconds=50),
            mode=PreBreak(remaining=timedelta(seconds=10)),
        )
    )

    long_interval = SchedulerSettings(break_interval=timedelta(minutes=45))
    restored = StatePersistence(db_path, long_interval).load(LATER)

    assert restored.mode == Active()
    assert restored.elapsed_active_time == timedelta(minutes=19, seconds=50)


def test_overdue_time_is_dropped_when_break_is_no_longer_due(tmp_path) -> None:
    db_path = tmp_path / "state.sqlite3"
    StatePersistence(db_path, SchedulerSettings()).save(
        SchedulerState(
            last_tick_at=T0,
            elapsed_active_time=timedelta(minutes=20),
            overdue_time=timedelta(minutes=3),
            mode=Muted(),
        )
    )

    long_interval = SchedulerSettings(break_interval=timedelta(minutes=45))
    restored = StatePersistence(db_path, long_interval).load(LATER)

    assert restored.mode == Muted()
    assert restored.elapsed_active_time == timedelta(minutes=20)
    assert restored.overdue_time == ZERO


def test_save_overwrites_previous_snapshot(store) -> None:
    store.save(SchedulerState(last_tick_at=T0, elapsed_active_time=timedelta(minutes=1)))
    store.save(SchedulerState(last_tick_at=T0, elapsed_active_time=timedelta(minutes=2)))

    with database_connection(store.db_path) as conn:
        count = conn.execute("SELECT COUNT(*) FROM scheduler_state").fetchone()[0]

    assert count == 1
    assert store.load(LATER).elapsed_active_time == timedelta(minutes=2)


def test_malformed_row_raises_persistence_unavailable(store) -> None:
    with database_connection(store.db_path) as conn:
        upsert_state_row(
            conn,
            elapsed_active_seconds=0.0,
            overdue_seconds=0.0,
            mode="sleeping",
            mode_remaining_seconds=None,
            mode_until=None,
            reading_mode=False,
            last_tick_at=T0.isoformat(),
            saved_at=T0.isoformat(),
        )

    with pytest.raises(PersistenceUnavailable):
        store.load(LATER)


def test_unwritable_location_raises_persistence_unavailable(tmp_path, settings) -> None:
    blocker = tmp_path / "not-a-directory"
    blocker.write_text("x", encoding="utf-8")
    store = StatePersistence(blocker / "state.sqlite3", settings)

    with pytest.raises(PersistenceUnavailable):
        store.save(SchedulerState.fresh(T0))
