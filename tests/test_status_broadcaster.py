from __future__ import annotations

import json

from fakes import FakeRedis
from streamrelay.engine import RelayStatus, RelayStatusBroadcaster


def _status(**overrides) -> RelayStatus:
    fields = dict(
        state="running",
        running=True,
        pid=4242,
        uptime_seconds=12.345,
        attempts=1,
        max_attempts=3,
        last_exit_status=None,
        last_error=None,
        last_log_line="[12:00:00] Ingest server started (pid=4242)",
        session_id="abc123",
        publish_url="rtmp://127.0.0.1:1935/live",
        pipelines=[{"platform": "twitch"}],
    )
    fields.update(overrides)
    return RelayStatus(**fields)


def test_publish_writes_key_with_ttl_and_channel() -> None:
    client = FakeRedis()
    broadcaster = RelayStatusBroadcaster(redis_url=None, channel="relay-events", ttl_seconds=15, client=client)

    broadcaster.publish(
        _status(),
        active_session={"session_id": "abc123"},
        events=[{"message": "Relay running"}],
    )

    assert broadcaster.redis_key == "streamrelay:relay:status"
    assert client.expiry["streamrelay:relay:status"] == 15
    payload = json.loads(client.values["streamrelay:relay:status"])
    session = payload["session"]
    assert session["state"] == "running"
    assert session["pid"] == 4242
    assert session["uptime_seconds"] == 12.3
    assert session["origin"] == "streamrelay"
    assert payload["active_session"] == {"session_id": "abc123"}
    assert payload["events"] == [{"message": "Relay running"}]
    assert client.messages and client.messages[0][0] == "relay-events"


def test_zero_ttl_stores_without_expiry() -> None:
    client = FakeRedis()
    broadcaster = RelayStatusBroadcaster(redis_url=None, ttl_seconds=0, client=client)

    broadcaster.publish(_status())

    assert client.expiry["streamrelay:relay:status"] is None
    assert client.messages == []


def test_fetch_returns_published_payload() -> None:
    client = FakeRedis()
    broadcaster = RelayStatusBroadcaster(redis_url=None, prefix="ops", namespace="edge", client=client)

    assert broadcaster.fetch() is None
    broadcaster.publish(_status(state="stopped", running=False, pid=None))

    fetched = broadcaster.fetch()
    assert fetched is not None
    assert fetched["session"]["state"] == "stopped"
    assert fetched["active_session"] is None
    assert "ops:edge:status" in client.values


def test_fetch_ignores_malformed_payload() -> None:
    client = FakeRedis()
    client.values["streamrelay:relay:status"] = b"{not json"
    broadcaster = RelayStatusBroadcaster(redis_url=None, client=client)

    assert broadcaster.fetch() is None


def test_close_releases_client() -> None:
    client = FakeRedis()
    broadcaster = RelayStatusBroadcaster(redis_url=None, client=client)

    broadcaster.close()

    assert client.closed is True
    assert broadcaster.enabled is False


def test_disabled_without_url_or_client() -> None:
    broadcaster = RelayStatusBroadcaster(redis_url="")

    assert broadcaster.enabled is False
    assert broadcaster.available is False
    assert broadcaster.last_error == "Redis URL not configured"
    broadcaster.publish(_status())
    assert broadcaster.fetch() is None
