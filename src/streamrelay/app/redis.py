"""Redis utility helpers for infrastructure-level checks."""
from __future__ import annotations

import logging
from typing import Optional

import redis
from redis.exceptions import RedisError

LOGGER = logging.getLogger(__name__)


def ensure_connection(url: Optional[str], *, label: str) -> None:
    """Validate that a Redis connection can be established for the given URL."""

    candidate = (url or "").strip()
    if not candidate:
        raise RuntimeError(f"{label} URL not configured.")

    client = None
    try:
        client = redis.from_url(
            candidate,
            socket_timeout=3,
            health_check_interval=30,
        )
        client.ping()
    except (RedisError, OSError, ValueError) as exc:  # pragma: no cover - network dependent
        raise RuntimeError(f"Unable to connect to {label} at {candidate}: {exc}") from exc
    finally:
        if client is not None:
            try:
                client.close()
            except RedisError:  # pragma: no cover - network dependent
                LOGGER.debug("Failed to close %s connection", label, exc_info=True)


__all__ = ["ensure_connection"]
