"""Helpers for manipulating relay sessions and controller state."""
from __future__ import annotations

from datetime import datetime, timezone
from http import HTTPStatus
from typing import Any, Dict, List, Mapping, Optional

from flask import Flask

from ..engine import ProcessState, RelayController, RelayStatusBroadcaster
from ..logging_config import current_log_file
from ..relay import (
    ConfigError,
    ControllerError,
    NotRunning,
    RelayConfig,
    RelayError,
    RenderError,
    SettingsStore,
    SupervisorError,
    config_from_settings,
    settings_from_config,
)
from ..relay.settings_store import flatten_settings
from ..utils import to_bool

MASKED_VALUE = "******"

_ERROR_STATUS = (
    (ConfigError, HTTPStatus.BAD_REQUEST),
    (RenderError, HTTPStatus.INTERNAL_SERVER_ERROR),
    (SupervisorError, HTTPStatus.BAD_GATEWAY),
    (ControllerError, HTTPStatus.CONFLICT),
)


def http_status_for(error: RelayError) -> HTTPStatus:
    for error_cls, status in _ERROR_STATUS:
        if isinstance(error, error_cls):
            return status
    return HTTPStatus.INTERNAL_SERVER_ERROR


class RelayRuntime:
    """Domain-facing runtime helpers shared by HTTP and Celery surfaces."""

    def __init__(self, app: Flask) -> None:
        controller = app.extensions.get("relay_controller")
        if not isinstance(controller, RelayController):
            raise RuntimeError("Relay controller not initialised on Flask app.")
        store = app.extensions.get("relay_settings_store")
        if not isinstance(store, SettingsStore):
            raise RuntimeError("Relay settings store not initialised on Flask app.")
        self._app = app
        self._controller = controller
        self._store = store

    @property
    def app(self) -> Flask:
        return self._app

    @property
    def controller(self) -> RelayController:
        return self._controller

    @property
    def store(self) -> SettingsStore:
        return self._store

    def status_payload(self) -> Mapping[str, Any]:
        status = self._controller.status()
        if self._locally_idle():
            shared = self._shared_payload()
            if shared is not None:
                return {"session": shared["session"], "metadata": shared["metadata"]}
        log_path = current_log_file()
        session = status.to_session(
            origin="streamrelay",
            log_file=str(log_path) if log_path else None,
            updated_at=datetime.now(timezone.utc).isoformat(),
        )
        return {"session": session, "metadata": {}}

    def session_payload(self) -> Dict[str, Any]:
        """The active session handle, from this process or the one running the relay."""

        try:
            return self._controller.active_session().to_dict()
        except NotRunning:
            shared = self._shared_payload() if self._locally_idle() else None
            active = shared.get("active_session") if shared else None
            if not isinstance(active, Mapping):
                raise
            return {**active, "source": "redis"}

    def events_payload(self, limit: Optional[int] = None) -> Dict[str, Any]:
        events: List[Any] = [event.to_dict() for event in self._controller.events(limit)]
        source = "local"
        if self._locally_idle():
            shared = self._shared_payload()
            if shared is not None and isinstance(shared.get("events"), list):
                events = list(shared["events"])
                if limit is not None and limit >= 0:
                    events = events[-limit:] if limit else []
                source = "redis"
        return {"events": events, "count": len(events), "source": source}

    def build_config(self, overrides: Optional[Mapping[str, Any]] = None) -> RelayConfig:
        """Persisted settings with ``overrides`` (grouped or flat keys) on top."""

        values: Dict[str, Any] = dict(self._store.load())
        if overrides:
            for key, value in flatten_settings(overrides).items():
                if value == MASKED_VALUE:
                    continue
                values[key] = value
        return config_from_settings(values)

    def settings_payload(self, *, reveal_keys: bool = False) -> Dict[str, Any]:
        settings = settings_from_config(self._store.load_config())
        if not reveal_keys:
            for key, value in settings.items():
                if key.endswith(".key") and value:
                    settings[key] = MASKED_VALUE
        return settings

    def save_settings(self, payload: Mapping[str, Any]) -> Dict[str, Any]:
        config = self.build_config(payload)
        self._store.save_config(config)
        return self.settings_payload()

    def _locally_idle(self) -> bool:
        return self._controller.session is None and self._controller.supervisor.state is ProcessState.STOPPED

    def _shared_payload(self) -> Optional[Dict[str, Any]]:
        broadcaster = self._app.extensions.get("relay_status_broadcaster")
        if not isinstance(broadcaster, RelayStatusBroadcaster) or not broadcaster.enabled:
            return None
        payload = broadcaster.fetch()
        if not payload or not isinstance(payload.get("session"), Mapping):
            return None
        metadata = payload.get("metadata")
        payload["metadata"] = {**(metadata if isinstance(metadata, Mapping) else {}), "source": "redis"}
        return payload


class RelaySessionService:
    """Application-facing utilities for manipulating the relay controller."""

    def __init__(self, runtime: RelayRuntime) -> None:
        self._runtime = runtime

    @property
    def runtime(self) -> RelayRuntime:
        return self._runtime

    @property
    def controller(self) -> RelayController:
        return self._runtime.controller

    # ------------------------------------------------------------------
    # Status helpers
    # ------------------------------------------------------------------
    def status_payload(self) -> Mapping[str, Any]:
        return self._runtime.status_payload()

    def session_payload(self) -> Dict[str, Any]:
        return self._runtime.session_payload()

    def events_payload(self, limit: Optional[int] = None) -> Dict[str, Any]:
        return self._runtime.events_payload(limit)

    # ------------------------------------------------------------------
    # Configuration helpers
    # ------------------------------------------------------------------
    def build_config(self, overrides: Optional[Mapping[str, Any]] = None) -> RelayConfig:
        return self._runtime.build_config(overrides)

    def test_payload(self, overrides: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
        topology = self.controller.test_connection(self.build_config(overrides))
        return {
            "ok": True,
            "listen_port": topology.listen_port,
            "publish_url": topology.publish_url,
            "pipelines": [pipeline.describe() for pipeline in topology.pipelines],
        }

    def preview(self, overrides: Optional[Mapping[str, Any]] = None) -> str:
        return self.controller.preview(self.build_config(overrides))

    def settings_payload(self, *, reveal_keys: Any = False) -> Dict[str, Any]:
        return self._runtime.settings_payload(reveal_keys=to_bool(reveal_keys))

    def save_settings(self, payload: Mapping[str, Any]) -> Dict[str, Any]:
        return self._runtime.save_settings(payload)


def get_runtime(app: Flask) -> RelayRuntime:
    runtime = app.extensions.get("relay_runtime")
    if isinstance(runtime, RelayRuntime):
        return runtime
    runtime = RelayRuntime(app)
    app.extensions["relay_runtime"] = runtime
    return runtime


def init_relay_services(app: Flask) -> RelaySessionService:
    service = app.extensions.get("relay_session_service")
    if isinstance(service, RelaySessionService):
        return service
    runtime = get_runtime(app)
    service = RelaySessionService(runtime)
    app.extensions["relay_session_service"] = service
    return service


def get_session_service(app: Flask) -> RelaySessionService:
    service = app.extensions.get("relay_session_service")
    if isinstance(service, RelaySessionService):
        return service
    return init_relay_services(app)


__all__ = [
    "MASKED_VALUE",
    "RelayRuntime",
    "RelaySessionService",
    "get_runtime",
    "get_session_service",
    "http_status_for",
    "init_relay_services",
]
