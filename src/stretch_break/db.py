"""SQLite database layer for the scheduler state snapshot."""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional


def open_database(path: Path, *, check_same_thread: bool = True) -> sqlite3.Connection:
    """Open (and initialize) the SQLite database."""
    Path(path).parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(
        path,
        isolation_level=None,
        check_same_thread=check_same_thread,
    )
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA synchronous = FULL;")
    initialize_schema(conn)
    return conn


@contextmanager
def database_connection(
    path: Path, *, check_same_thread: bool = True
) -> Iterator[sqlite3.Connection]:
    conn = open_database(path, check_same_thread=check_same_thread)
    try:
        yield conn
    finally:
        conn.close()


def initialize_schema(conn: sqlite3.Connection) -> None:
    conn.executescript(
        """
        CREATE TABLE IF NOT EXISTS scheduler_state (
            id INTEGER PRIMARY KEY CHECK (id = 1),
            elapsed_active_seconds REAL NOT NULL,
            overdue_seconds REAL NOT NULL,
            mode TEXT NOT NULL,
            mode_remaining_seconds REAL,
            mode_until TEXT,
            reading_mode INTEGER NOT NULL DEFAULT 0,
            last_tick_at TEXT NOT NULL,
            saved_at TEXT NOT NULL
        );
        """
    )


def upsert_state_row(
    conn: sqlite3.Connection,
    *,
    elapsed_active_seconds: float,
    overdue_seconds: float,
    mode: str,
    mode_remaining_seconds: Optional[float],
    mode_until: Optional[str],
    reading_mode: bool,
    last_tick_at: str,
    saved_at: str,
) -> None:
    conn.execute(
        """
        INSERT INTO scheduler_state (
            id,
            elapsed_active_seconds,
            overdue_seconds,
            mode,
            mode_remaining_seconds,
            mode_until,
            reading_mode,
            last_tick_at,
            saved_at
        ) VALUES (1, ?, ?, ?, ?, ?, ?, ?, ?)
        ON CONFLICT(id) DO UPDATE SET
            elapsed_active_seconds = excluded.elapsed_active_seconds,
            overdue_seconds = excluded.overdue_seconds,
            mode = excluded.mode,
            mode_remaining_seconds = excluded.mode_remaining_seconds,
            mode_until = excluded.mode_until,
            reading_mode = excluded.reading_mode,
            last_tick_at = excluded.last_tick_at,
            saved_at = excluded.saved_at
        """,
        (
            elapsed_active_seconds,
            overdue_seconds,
            mode,
            mode_remaining_seconds,
            mode_until,
            1 if reading_mode else 0,
            last_tick_at,
            saved_at,
        ),
    )


def fetch_state_row(conn: sqlite3.Connection) -> Optional[sqlite3.Row]:
    return conn.execute(
        """
        SELECT
            elapsed_active_seconds,
            overdue_seconds,
            mode,
            mode_remaining_seconds,
            mode_until,
            reading_mode,
            last_tick_at
        FROM scheduler_state
        WHERE id = 1
        """
    ).fetchone()
