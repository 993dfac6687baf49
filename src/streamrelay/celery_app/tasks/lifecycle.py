"""Celery tasks for managing the relay lifecycle."""
from __future__ import annotations

from http import HTTPStatus
from typing import Any, Mapping, Optional

from celery.utils.log import get_task_logger
from flask import current_app

from .. import celery
from ...relay import RelayError
from ._utils import build_config, error_result, status_payload

LOGGER = get_task_logger(__name__)


@celery.task(bind=True, name="relay.start")
def start_relay_task(self, overrides: Optional[Mapping[str, Any]] = None) -> Mapping[str, Any]:
    """Compile, render and start the relay via Celery."""

    app = current_app
    controller = app.extensions["relay_controller"]

    LOGGER.info("[task:%s] Starting relay", self.request.id)
    try:
        session = controller.start(build_config(app, overrides or {}))
    except RelayError as exc:
        LOGGER.warning("[task:%s] Relay start failed: %s", self.request.id, exc.message)
        return error_result(exc)

    payload = dict(status_payload(app))
    payload["started"] = session.to_dict()
    LOGGER.info(
        "[task:%s] Relay session %s started (%d pipeline(s))",
        self.request.id,
        session.session_id,
        len(session.topology.pipelines),
    )
    return {
        "status": HTTPStatus.OK,
        "payload": payload,
    }


@celery.task(bind=True, name="relay.stop")
def stop_relay_task(self) -> Mapping[str, Any]:
    """Stop the active relay session via Celery."""

    app = current_app
    controller = app.extensions["relay_controller"]

    LOGGER.info("[task:%s] Stop requested", self.request.id)
    stopped = controller.stop()
    payload = dict(status_payload(app))
    payload["stopped"] = bool(stopped)

    if stopped:
        LOGGER.info("[task:%s] Relay stopped", self.request.id)
    else:
        LOGGER.info("[task:%s] Stop requested but no active session", self.request.id)

    return {
        "status": HTTPStatus.OK,
        "stopped": bool(stopped),
        "payload": payload,
    }


__all__ = ["start_relay_task", "stop_relay_task"]
