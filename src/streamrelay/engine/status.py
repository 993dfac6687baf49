"""Share relay state through Redis so every process sees the same relay.

The Celery worker owns the ingest server. Web processes read the snapshot
it leaves under one key (``<prefix>:<namespace>:<key>``) and subscribers get
the same JSON on ``channel``.
"""
from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Mapping, Optional

import redis
from redis import Redis
from redis.exceptions import RedisError

from .status_snapshot import RelayStatus

LOGGER = logging.getLogger(__name__)


class RelayStatusBroadcaster:
    """Publish controller snapshots to Redis and read them back."""

    def __init__(
        self,
        *,
        redis_url: Optional[str],
        prefix: str = "streamrelay",
        namespace: str = "relay",
        key: str = "status",
        channel: Optional[str] = None,
        ttl_seconds: int = 30,
        client: Optional[Redis] = None,
    ) -> None:
        self._redis_url = (redis_url or "").strip()
        self.redis_key = ":".join(part.strip() for part in (prefix, namespace, key))
        self._channel = (channel or "").strip() or None
        self._ttl = max(0, int(ttl_seconds))
        self._client = client
        self._last_error: Optional[str] = None

    @property
    def enabled(self) -> bool:
        return bool(self._redis_url) or self._client is not None

    @property
    def available(self) -> bool:
        return self._connection() is not None

    @property
    def last_error(self) -> Optional[str]:
        return self._last_error

    def publish(
        self,
        status: RelayStatus,
        *,
        active_session: Optional[Mapping[str, Any]] = None,
        events: Iterable[Mapping[str, Any]] = (),
    ) -> None:
        """Store ``status`` (with the session handle and recent events) and announce it."""

        client = self._connection()
        if client is None:
            return
        payload = json.dumps(
            {
                "session": status.to_session(
                    origin="streamrelay",
                    updated_at=datetime.now(timezone.utc).isoformat(),
                ),
                "active_session": dict(active_session) if active_session else None,
                "events": [dict(event) for event in events],
                "metadata": {},
            },
            ensure_ascii=False,
            separators=(",", ":"),
        )
        try:
            client.set(self.redis_key, payload, ex=self._ttl or None)
            if self._channel:
                client.publish(self._channel, payload)
        except RedisError as exc:  # pragma: no cover - network dependent
            self._disconnect(f"Failed to publish relay status: {exc}")
            return
        self._last_error = None

    def fetch(self) -> Optional[Dict[str, Any]]:
        """Return the last published payload, if any."""

        client = self._connection()
        if client is None:
            return None
        try:
            raw = client.get(self.redis_key)
        except RedisError as exc:  # pragma: no cover - network dependent
            self._disconnect(f"Failed to read relay status: {exc}")
            return None
        if not raw:
            return None
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8", "replace")
        try:
            payload = json.loads(raw)
        except ValueError:
            LOGGER.warning("Ignoring malformed relay status payload under %s", self.redis_key)
            return None
        return payload if isinstance(payload, dict) else None

    def close(self) -> None:
        client, self._client = self._client, None
        if client is None:
            return
        try:
            client.close()
        except RedisError:  # pragma: no cover - network dependent
            LOGGER.debug("Failed to close Redis client", exc_info=True)

    def _connection(self) -> Optional[Redis]:
        if self._client is not None:
            return self._client
        if not self._redis_url:
            self._last_error = "Redis URL not configured"
            return None
        try:
            client = redis.from_url(self._redis_url, socket_timeout=3, health_check_interval=30)
            client.ping()
        except (RedisError, OSError) as exc:  # pragma: no cover - network dependent
            self._last_error = f"Failed to connect to Redis: {exc}"
            LOGGER.warning("Status broadcasting unavailable: %s", exc)
            return None
        self._client = client
        self._last_error = None
        return client

    def _disconnect(self, message: str) -> None:
        self._last_error = message
        LOGGER.debug(message)
        self.close()


__all__ = ["RelayStatusBroadcaster"]
