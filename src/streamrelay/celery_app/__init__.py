"""Celery integration for the relay service."""
from __future__ import annotations

from .app import celery, init_celery

__all__ = ["celery", "init_celery"]
