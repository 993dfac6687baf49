"""Root package for the stream relay service codebase."""
from __future__ import annotations

from .app import create_app
from .celery_app import celery, init_celery
from .celery_app.tasks import start_relay_task, stop_relay_task, validate_relay_task
from .engine import ProcessSupervisor, RelayController, RelayStatus, RelayStatusBroadcaster
from .relay import RelayConfig, RelayTopology, compile_topology, render_config
from .routes import api_bp

__version__ = "0.1.0"

__all__ = [
    "create_app",
    "celery",
    "init_celery",
    "start_relay_task",
    "stop_relay_task",
    "validate_relay_task",
    "api_bp",
    "ProcessSupervisor",
    "RelayConfig",
    "RelayController",
    "RelayStatus",
    "RelayStatusBroadcaster",
    "RelayTopology",
    "compile_topology",
    "render_config",
]
