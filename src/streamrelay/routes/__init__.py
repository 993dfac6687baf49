"""HTTP blueprints for the relay service."""
from __future__ import annotations

from .relay import api_bp

__all__ = ["api_bp"]
