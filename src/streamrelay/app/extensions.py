"""Extension wiring for the relay Flask application."""
from __future__ import annotations

import atexit
import logging
from typing import Optional

from flask import Flask, Response, request

from ..celery_app import init_celery
from ..engine import RelayController, RelayStatusBroadcaster, StopStrategy
from ..relay import SettingsStore
from ..routes import api_bp

LOGGER = logging.getLogger(__name__)


def init_status_broadcaster(app: Flask) -> Optional[RelayStatusBroadcaster]:
    redis_url = app.config.get("RELAY_STATUS_REDIS_URL")
    if not redis_url:
        LOGGER.info("RELAY_STATUS_REDIS_URL not set; status broadcasting disabled")
        return None
    status_broadcaster = RelayStatusBroadcaster(
        redis_url=redis_url,
        prefix=app.config.get("RELAY_STATUS_PREFIX", "streamrelay"),
        namespace=app.config.get("RELAY_STATUS_NAMESPACE", "relay"),
        key=app.config.get("RELAY_STATUS_KEY", "status"),
        channel=app.config.get("RELAY_STATUS_CHANNEL"),
        ttl_seconds=int(app.config.get("RELAY_STATUS_TTL_SECONDS", 30) or 0),
    )
    if not status_broadcaster.available:
        LOGGER.warning("Status broadcasting unavailable: %s", status_broadcaster.last_error)
    app.extensions["relay_status_broadcaster"] = status_broadcaster
    return status_broadcaster


def init_settings_store(app: Flask) -> SettingsStore:
    store = SettingsStore(app.config["RELAY_SETTINGS_FILE"])
    app.extensions["relay_settings_store"] = store
    return store


def init_relay_controller(
    app: Flask,
    *,
    status_broadcaster: Optional[RelayStatusBroadcaster],
) -> RelayController:
    controller = app.extensions.get("relay_controller")
    if isinstance(controller, RelayController):
        return controller
    controller = RelayController(
        config_dir=app.config["RELAY_CONFIG_DIR"],
        ingest_binary=app.config.get("RELAY_INGEST_BINARY", "nginx"),
        transcoder_binary=app.config.get("RELAY_TRANSCODER_BINARY", "ffmpeg"),
        stop_strategy=StopStrategy(graceful_timeout=float(app.config.get("RELAY_STOP_GRACE_SECONDS", 5.0))),
        status_broadcaster=status_broadcaster,
        health_interval=float(app.config.get("RELAY_HEALTH_INTERVAL_SECONDS", 5.0)),
        startup_timeout=float(app.config.get("RELAY_STARTUP_TIMEOUT_SECONDS", 5.0)),
        event_log_size=int(app.config.get("RELAY_EVENT_LOG_SIZE", 200)),
    )
    app.extensions["relay_controller"] = controller
    controller.broadcast_status()
    return controller


def init_celery_app(app: Flask) -> None:
    celery_app = init_celery(app)
    # Ensure Celery tasks are registered
    from ..celery_app import tasks as _tasks  # noqa: F401

    app.extensions["celery_app"] = celery_app


def register_blueprints(app: Flask) -> None:
    app.register_blueprint(api_bp)


def register_shutdown(controller: RelayController) -> None:
    """Tear the relay down with the interpreter so no ingest server outlives it."""

    atexit.register(controller.shutdown)


def configure_cors(app: Flask, cors_origin: str | None) -> None:
    allowed_default = cors_origin or "*"

    @app.after_request
    def add_cors_headers(response: Response) -> Response:
        origin = request.headers.get("Origin")
        allowed_origin = allowed_default
        if allowed_default == "*" and origin:
            allowed_origin = origin
        response.headers["Access-Control-Allow-Origin"] = allowed_origin
        response.headers.setdefault("Access-Control-Allow-Headers", "Content-Type")
        response.headers.setdefault("Access-Control-Allow-Methods", "GET,POST,PUT,OPTIONS")
        if allowed_origin != "*":
            response.headers.setdefault("Access-Control-Allow-Credentials", "true")
        if origin:
            response.headers.add("Vary", "Origin")
        return response


__all__ = [
    "configure_cors",
    "init_celery_app",
    "init_relay_controller",
    "init_settings_store",
    "init_status_broadcaster",
    "register_blueprints",
    "register_shutdown",
]
