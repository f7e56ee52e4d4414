"""FastAPI application exposing the break service to local clients."""

from __future__ import annotations

import concurrent.futures
import logging
import threading
from datetime import timedelta
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from fastapi import FastAPI, HTTPException, Request
from pydantic import BaseModel, ConfigDict, Field

from .config import SchedulerSettings
from .errors import InvalidOperation
from .idle import BackgroundIdleSampler, IdleSampler
from .models import WidgetInfo
from .paths import get_db_path
from .persistence import StatePersistence
from .service import BreakService

logger = logging.getLogger(__name__)


class ServiceRunner:
    """Manage the break service (and its idle sampler) in background threads."""

    def __init__(
        self,
        service: BreakService,
        idle_sampler: Optional[BackgroundIdleSampler] = None,
    ) -> None:
        self._service = service
        self._idle_sampler = idle_sampler
        self._lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None
        self._stop_event: Optional[threading.Event] = None

    def start(self) -> None:
        with self._lock:
            if self._thread and self._thread.is_alive():
                return
            if self._idle_sampler is not None:
                self._idle_sampler.start()
            stop_event = threading.Event()
            thread = threading.Thread(
                target=self._service.run_until_stopped,
                args=(stop_event,),
                name="break-service",
                daemon=True,
            )
            self._thread = thread
            self._stop_event = stop_event
            thread.start()
        self._service.wait_until_running(timeout=5)
        logger.info("Break service background thread started.")

    def stop(self) -> None:
        thread: Optional[threading.Thread] = None
        with self._lock:
            if not self._thread or not self._thread.is_alive() or not self._stop_event:
                return
            self._stop_event.set()
            thread = self._thread
            self._thread = None
            self._stop_event = None
        self._service.wake()
        thread.join(timeout=10)
        if self._idle_sampler is not None:
            self._idle_sampler.stop()
        logger.info("Break service background thread stopped.")

    def is_running(self) -> bool:
        with self._lock:
            return bool(self._thread and self._thread.is_alive())


class SnoozePayload(BaseModel):
    minutes: float = Field(ge=0)

    model_config = ConfigDict(extra="forbid")


class MutePayload(BaseModel):
    minutes: Optional[float] = Field(default=None, gt=0)

    model_config = ConfigDict(extra="forbid")


class PostponePayload(BaseModel):
    minutes: float = Field(gt=0)

    model_config = ConfigDict(extra="forbid")


class ReadingModePayload(BaseModel):
    value: bool

    model_config = ConfigDict(extra="forbid")


def build_service(
    *,
    db_path: Optional[Path] = None,
    settings: Optional[SchedulerSettings] = None,
) -> tuple[BreakService, BackgroundIdleSampler]:
    """Wire a service to the on-disk state store and the platform idle sampler."""
    resolved_settings = settings or SchedulerSettings()
    idle_sampler = BackgroundIdleSampler(
        IdleSampler(), interval=resolved_settings.idle_sample_interval
    )
    service = BreakService(
        resolved_settings,
        persistence=StatePersistence(Path(db_path or get_db_path()), resolved_settings),
        idle_source=lambda: idle_sampler.latest,
    )
    return service, idle_sampler


def create_app(
    *,
    db_path: Optional[Path] = None,
    settings: Optional[SchedulerSettings] = None,
    service: Optional[BreakService] = None,
) -> FastAPI:
    """Instantiate the FastAPI application.

    When ``service`` is given it is run as-is, without an idle sampler; otherwise
    one is built from ``db_path`` and ``settings``.
    """
    idle_sampler: Optional[BackgroundIdleSampler] = None
    if service is None:
        service, idle_sampler = build_service(db_path=db_path, settings=settings)
    runner = ServiceRunner(service, idle_sampler)

    app = FastAPI(title="Stretch Break", version="0.3.0")
    app.state.service = service
    app.state.service_runner = runner

    @app.on_event("startup")
    async def _startup() -> None:
        runner.start()

    @app.on_event("shutdown")
    async def _shutdown() -> None:
        runner.stop()

    @app.get("/api/status")
    def status(request: Request) -> Dict[str, Any]:
        return request.app.state.service.status()

    @app.get("/api/widget-info")
    def widget_info(request: Request) -> Dict[str, Any]:
        return request.app.state.service.widget_info.to_dict()

    @app.post("/api/snooze")
    def snooze(payload: SnoozePayload, request: Request) -> Dict[str, Any]:
        svc: BreakService = request.app.state.service
        return _execute(lambda: svc.snooze_for(timedelta(minutes=payload.minutes)))

    @app.post("/api/mute")
    def mute(request: Request, payload: Optional[MutePayload] = None) -> Dict[str, Any]:
        svc: BreakService = request.app.state.service
        if payload is None or payload.minutes is None:
            return _execute(svc.mute)
        minutes = payload.minutes
        return _execute(lambda: svc.mute_for(timedelta(minutes=minutes)))

    @app.post("/api/unmute")
    def unmute(request: Request) -> Dict[str, Any]:
        return _execute(request.app.state.service.unmute)

    @app.post("/api/break")
    def trigger_break(request: Request) -> Dict[str, Any]:
        return _execute(request.app.state.service.trigger_break)

    @app.post("/api/skip-break")
    def skip_break(request: Request) -> Dict[str, Any]:
        return _execute(request.app.state.service.skip_break)

    @app.post("/api/postpone")
    def postpone(payload: PostponePayload, request: Request) -> Dict[str, Any]:
        svc: BreakService = request.app.state.service
        return _execute(lambda: svc.postpone_break(timedelta(minutes=payload.minutes)))

    @app.post("/api/reading-mode")
    def reading_mode(payload: ReadingModePayload, request: Request) -> Dict[str, Any]:
        svc: BreakService = request.app.state.service
        return _execute(lambda: svc.set_reading_mode(payload.value))

    return app


def _execute(command: Callable[[], WidgetInfo]) -> Dict[str, Any]:
    try:
        info = command()
    except InvalidOperation as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except (RuntimeError, concurrent.futures.TimeoutError) as exc:
        raise HTTPException(status_code=503, detail="Break service is not running.") from exc
    return info.to_dict()
