"""Single-instance guard based on a PID file."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional

import psutil

logger = logging.getLogger(__name__)


class AlreadyRunning(RuntimeError):
    def __init__(self, pid: int) -> None:
        super().__init__(f"Stretch Break is already running (pid {pid}).")
        self.pid = pid


class SingleInstance:
    """Claims a PID file for the lifetime of the service process."""

    def __init__(self, pid_path: Path) -> None:
        self.pid_path = Path(pid_path)
        self._acquired = False

    def running_pid(self) -> Optional[int]:
        """PID of another live instance, if any."""
        try:
            pid = int(self.pid_path.read_text(encoding="utf-8").strip())
        except (OSError, ValueError):
            return None
        if pid == os.getpid() or not psutil.pid_exists(pid):
            return None
        try:
            if psutil.Process(pid).status() == psutil.STATUS_ZOMBIE:
                return None
        except psutil.Error:
            return None
        return pid

    def acquire(self) -> None:
        pid = self.running_pid()
        if pid is not None:
            raise AlreadyRunning(pid)
        self.pid_path.parent.mkdir(parents=True, exist_ok=True)
        self.pid_path.write_text(str(os.getpid()), encoding="utf-8")
        self._acquired = True
        logger.debug("Claimed %s.", self.pid_path)

    def release(self) -> None:
        if not self._acquired:
            return
        try:
            self.pid_path.unlink()
        except FileNotFoundError:
            pass
        self._acquired = False

    def __enter__(self) -> "SingleInstance":
        self.acquire()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.release()
