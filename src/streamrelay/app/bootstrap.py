"""Bootstrap helpers for the relay Flask application."""
from __future__ import annotations

import os
from typing import Any, Mapping, Optional

from flask import Flask

from ..config import build_default_config
from ..logging_config import configure_logging
from ..utils import to_bool
from .redis import ensure_connection


def load_configuration(app: Flask, overrides: Optional[Mapping[str, Any]] = None) -> None:
    """Populate the default configuration values on the Flask app."""

    app.config.from_mapping(build_default_config())
    if overrides:
        app.config.from_mapping(dict(overrides))


def init_logging(app: Flask) -> None:
    """Configure root logging for the relay service."""

    if not to_bool(app.config.get("RELAY_CONFIGURE_LOGGING"), default=True):
        return
    log_dir = app.config.get("RELAY_SERVICE_LOG_DIR")
    configure_logging("streamrelay", log_dir=log_dir or None)


def ensure_single_worker() -> None:
    """Validate that the service is running with a single worker process.

    Each worker would own its own controller and fight over the listen port.
    """

    worker_count = 1
    raw_worker_count = (
        os.getenv("RELAY_WORKER_PROCESSES")
        or os.getenv("GUNICORN_WORKERS")
        or os.getenv("WEB_CONCURRENCY")
    )
    if raw_worker_count:
        try:
            worker_count = max(1, int(raw_worker_count))
        except ValueError:
            worker_count = 1
    if worker_count != 1:
        raise RuntimeError(
            "The relay service requires a single worker process. "
            "Set GUNICORN_WORKERS=1 (or WEB_CONCURRENCY=1) before launching. "
            f"Detected {worker_count}."
        )


def ensure_broker_connection(app: Flask) -> None:
    """Verify that the Celery broker is reachable before serving traffic."""

    if to_bool(app.config.get("CELERY_TASK_ALWAYS_EAGER")):
        return
    ensure_connection(app.config.get("CELERY_BROKER_URL"), label="Celery broker")


__all__ = [
    "ensure_broker_connection",
    "ensure_single_worker",
    "init_logging",
    "load_configuration",
]
