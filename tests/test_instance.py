from __future__ import annotations

import os

import pytest

from stretch_break.instance import AlreadyRunning, SingleInstance


def test_acquire_writes_and_release_removes_pid_file(tmp_path) -> None:
    pid_path = tmp_path / "app.pid"

    with SingleInstance(pid_path):
        assert pid_path.read_text(encoding="utf-8") == str(os.getpid())

    assert not pid_path.exists()


def test_stale_pid_file_is_ignored(tmp_path) -> None:
    pid_path = tmp_path / "app.pid"
    pid_path.write_text("999999999", encoding="utf-8")

    guard = SingleInstance(pid_path)
    assert guard.running_pid() is None
    guard.acquire()
    guard.release()


def test_garbage_pid_file_is_ignored(tmp_path) -> None:
    pid_path = tmp_path / "app.pid"
    pid_path.write_text("not a pid", encoding="utf-8")
    assert SingleInstance(pid_path).running_pid() is None


def test_live_instance_blocks_acquire(tmp_path) -> None:
    pid_path = tmp_path / "app.pid"
    pid_path.write_text(str(os.getppid()), encoding="utf-8")

    with pytest.raises(AlreadyRunning) as excinfo:
        SingleInstance(pid_path).acquire()

    assert excinfo.value.pid == os.getppid()
