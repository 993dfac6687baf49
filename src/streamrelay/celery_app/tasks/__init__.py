"""Celery task entrypoints."""
from __future__ import annotations

from .lifecycle import start_relay_task, stop_relay_task
from .validation import validate_relay_task

__all__ = [
    "start_relay_task",
    "stop_relay_task",
    "validate_relay_task",
]
