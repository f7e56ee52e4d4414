"""Helpers to launch the break service with its local control API."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import uvicorn

from .config import SchedulerSettings
from .instance import SingleInstance
from .paths import get_db_path, get_pid_path
from .webapp import create_app

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8766

logger = logging.getLogger(__name__)


def run_service(
    *,
    host: str = DEFAULT_HOST,
    port: int = DEFAULT_PORT,
    db_path: Optional[Path] = None,
    settings: Optional[SchedulerSettings] = None,
    log_level: str = "info",
) -> None:
    """Start the break service and serve its API until interrupted."""
    with SingleInstance(get_pid_path()):
        app = create_app(
            db_path=db_path or get_db_path(),
            settings=settings or SchedulerSettings(),
        )
        logger.info("Control API listening on http://%s:%d", host, port)
        logging.getLogger("uvicorn.error").setLevel(log_level.upper())
        uvicorn.run(app, host=host, port=port, log_level=log_level)
