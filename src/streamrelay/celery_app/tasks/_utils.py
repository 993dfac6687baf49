"""Shared helpers for Celery task modules."""
from __future__ import annotations

from typing import Any, Mapping, Optional

from ...relay import RelayConfig, RelayError
from ...services.relay_session import get_runtime, http_status_for


def build_config(app, overrides: Optional[Mapping[str, Any]]) -> RelayConfig:
    """Construct a relay config using the shared runtime services."""

    runtime = get_runtime(app)
    return runtime.build_config(overrides)


def status_payload(app) -> Mapping[str, Any]:
    """Return the latest status payload rendered for API responses."""

    runtime = get_runtime(app)
    return runtime.status_payload()


def error_result(error: RelayError) -> Mapping[str, Any]:
    """Task result for a domain error, shaped like a successful one."""

    return {
        "status": http_status_for(error),
        "payload": error.to_dict(),
    }


__all__ = ["build_config", "error_result", "status_payload"]
