"""User idle-time sampling for Windows, macOS and X11."""

from __future__ import annotations

import ctypes
import ctypes.util
import logging
import platform
import subprocess
import threading
from datetime import timedelta
from typing import Optional, Protocol

from .models import ZERO

logger = logging.getLogger(__name__)


class IdleDetector(Protocol):
    def seconds_since_input(self) -> float: ...


class WindowsIdleDetector:
    """Detects idle time using Win32 APIs."""

    def __init__(self) -> None:
        from ctypes import wintypes

        class LASTINPUTINFO(ctypes.Structure):
            _fields_ = [("cbSize", wintypes.UINT), ("dwTime", wintypes.DWORD)]

        self._info_type = LASTINPUTINFO
        self._user32 = ctypes.windll.user32  # type: ignore[attr-defined]
        self._kernel32 = ctypes.windll.kernel32  # type: ignore[attr-defined]

    def seconds_since_input(self) -> float:
        last_input = self._info_type()
        last_input.cbSize = ctypes.sizeof(last_input)
        if not self._user32.GetLastInputInfo(ctypes.byref(last_input)):
            raise ctypes.WinError()  # type: ignore[attr-defined]
        # dwTime wraps with the 32-bit tick counter.
        elapsed = (self._kernel32.GetTickCount64() - last_input.dwTime) & 0xFFFFFFFF
        return elapsed / 1000.0


class MacIdleDetector:
    """Reads the combined session idle time from CoreGraphics."""

    _ANY_INPUT_EVENT = 0xFFFFFFFF
    _COMBINED_SESSION_STATE = 0

    def __init__(self) -> None:
        library = ctypes.util.find_library("CoreGraphics")
        if library is None:
            raise OSError("CoreGraphics framework not found")
        func = ctypes.cdll.LoadLibrary(library).CGEventSourceSecondsSinceLastEventType
        func.restype = ctypes.c_double
        func.argtypes = [ctypes.c_int32, ctypes.c_uint32]
        self._func = func

    def seconds_since_input(self) -> float:
        return float(self._func(self._COMBINED_SESSION_STATE, self._ANY_INPUT_EVENT))


class XprintidleDetector:
    """Shells out to ``xprintidle``, which reports milliseconds since input."""

    def __init__(self, timeout: float = 2.0) -> None:
        self.timeout = timeout

    def seconds_since_input(self) -> float:
        result = subprocess.run(
            ["xprintidle"],
            capture_output=True,
            text=True,
            timeout=self.timeout,
            check=True,
        )
        return int(result.stdout.strip()) / 1000.0


class NullIdleDetector:
    """Used when no platform detector is available: the user is never idle."""

    def seconds_since_input(self) -> float:
        return 0.0


def default_detector() -> IdleDetector:
    system = platform.system()
    try:
        if system == "Windows":
            return WindowsIdleDetector()
        if system == "Darwin":
            return MacIdleDetector()
        return XprintidleDetector()
    except (OSError, AttributeError):
        logger.warning("Idle detection unavailable on %s; assuming the user is active.", system)
        return NullIdleDetector()


class IdleSampler:
    """Returns the current idle duration; platform failures count as not idle."""

    def __init__(self, detector: Optional[IdleDetector] = None) -> None:
        self._detector = detector if detector is not None else default_detector()
        self._failing = False

    def sample(self) -> timedelta:
        try:
            seconds = self._detector.seconds_since_input()
        except Exception:
            if not self._failing:
                logger.warning("Failed to query idle time; assuming not idle.", exc_info=True)
            self._failing = True
            return ZERO
        if self._failing:
            logger.info("Idle time queries recovered.")
            self._failing = False
        return timedelta(seconds=max(seconds, 0.0))


class BackgroundIdleSampler:
    """Polls an :class:`IdleSampler` on its own thread and keeps the latest value.

    The scheduling loop reads :attr:`latest` instead of sampling directly, so a
    slow platform query never delays a tick or a command.
    """

    def __init__(self, sampler: IdleSampler, interval: timedelta) -> None:
        self._sampler = sampler
        self._interval = interval
        self._lock = threading.Lock()
        self._latest = ZERO
        self._thread: Optional[threading.Thread] = None
        self._stop_event: Optional[threading.Event] = None

    @property
    def latest(self) -> timedelta:
        with self._lock:
            return self._latest

    def sample_once(self) -> timedelta:
        value = self._sampler.sample()
        with self._lock:
            self._latest = value
        return value

    def start(self) -> None:
        with self._lock:
            if self._thread and self._thread.is_alive():
                return
            stop_event = threading.Event()
            thread = threading.Thread(
                target=self._run,
                args=(stop_event,),
                name="idle-sampler",
                daemon=True,
            )
            self._thread = thread
            self._stop_event = stop_event
            thread.start()
        logger.debug("Idle sampler thread started.")

    def stop(self) -> None:
        thread: Optional[threading.Thread] = None
        with self._lock:
            if not self._thread or not self._stop_event:
                return
            self._stop_event.set()
            thread = self._thread
            self._thread = None
            self._stop_event = None
        thread.join(timeout=5)
        logger.debug("Idle sampler thread stopped.")

    def _run(self, stop_event: threading.Event) -> None:
        interval = self._interval.total_seconds()
        while not stop_event.is_set():
            self.sample_once()
            stop_event.wait(interval)
