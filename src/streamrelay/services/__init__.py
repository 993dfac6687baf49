"""Service helpers for the relay runtime."""
from __future__ import annotations

from .relay_session import (
    RelayRuntime,
    RelaySessionService,
    get_runtime,
    get_session_service,
    http_status_for,
    init_relay_services,
)

__all__ = [
    "RelayRuntime",
    "RelaySessionService",
    "get_runtime",
    "get_session_service",
    "http_status_for",
    "init_relay_services",
]
