"""Relay application factory."""
from __future__ import annotations

from typing import Any, Mapping, Optional

from flask import Flask

from .bootstrap import (
    ensure_broker_connection,
    ensure_single_worker,
    init_logging,
    load_configuration,
)
from .extensions import (
    configure_cors,
    init_celery_app,
    init_relay_controller,
    init_settings_store,
    init_status_broadcaster,
    register_blueprints,
    register_shutdown,
)
from ..services import init_relay_services


def create_app(overrides: Optional[Mapping[str, Any]] = None) -> Flask:
    """Create and configure the relay Flask application.

    ``overrides`` is applied on top of the environment-derived defaults.
    """

    app = Flask(__name__)
    load_configuration(app, overrides)
    init_logging(app)

    ensure_broker_connection(app)
    ensure_single_worker()

    status_broadcaster = init_status_broadcaster(app)
    init_settings_store(app)
    controller = init_relay_controller(app, status_broadcaster=status_broadcaster)
    init_celery_app(app)
    init_relay_services(app)

    register_blueprints(app)

    configure_cors(app, app.config.get("RELAY_CORS_ORIGIN", "*"))
    register_shutdown(controller)

    return app


__all__ = ["create_app"]
