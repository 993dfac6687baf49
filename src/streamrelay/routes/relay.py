"""HTTP routes that drive the relay."""
from __future__ import annotations

from datetime import datetime, timezone
from http import HTTPStatus
from typing import Any, Mapping

from flask import Blueprint, Response, current_app, jsonify, request

from celery.exceptions import TimeoutError as CeleryTimeoutError

from ..celery_app import celery
from ..celery_app.tasks import start_relay_task, stop_relay_task, validate_relay_task
from ..relay import RelayError
from ..services.relay_session import RelaySessionService, get_session_service, http_status_for
from ..utils import to_optional_int

api_bp = Blueprint("relay_api", __name__)


def _service() -> RelaySessionService:
    return get_session_service(current_app)


def _task_timeout_seconds() -> float:
    """Return a positive timeout for Celery task sync calls."""

    raw_value = current_app.config.get("CELERY_TASK_TIMEOUT_SECONDS")
    try:
        timeout = float(raw_value)
    except (TypeError, ValueError):
        current_app.logger.warning(
            "Invalid CELERY_TASK_TIMEOUT_SECONDS=%r; falling back to 15s",
            raw_value,
        )
        timeout = 15.0
    return max(timeout, 0.1)


def _coerce_status_code(value: object, default: HTTPStatus = HTTPStatus.OK) -> int:
    if isinstance(value, HTTPStatus):
        return value.value
    if isinstance(value, int):
        return value
    try:
        return int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return default.value


def _normalize_task_result(result: Any) -> tuple[int, Any]:
    if isinstance(result, Mapping):
        status_code = _coerce_status_code(result.get("status"), HTTPStatus.OK)
        payload_section = result.get("payload")
        if isinstance(payload_section, Mapping):
            return status_code, dict(payload_section)
        if payload_section is not None:
            return status_code, payload_section
        trimmed = {key: value for key, value in result.items() if key != "status"}
        return status_code, trimmed
    return HTTPStatus.OK.value, result


def _json_body() -> Mapping[str, Any]:
    body = request.get_json(silent=True)
    return body if isinstance(body, Mapping) else {}


def _dispatch(task, *args):
    async_result = task.delay(*args)
    try:
        result = async_result.get(timeout=_task_timeout_seconds())
    except CeleryTimeoutError:
        return jsonify({"status": HTTPStatus.ACCEPTED, "task_id": async_result.id}), HTTPStatus.ACCEPTED
    status_code, payload = _normalize_task_result(result)
    return jsonify(payload), status_code


@api_bp.errorhandler(RelayError)
def relay_error_handler(error: RelayError):
    return jsonify(error.to_dict()), http_status_for(error)


@api_bp.route("/health", methods=["GET"])
def health_endpoint():
    now = datetime.now(timezone.utc)
    payload = {
        "status": "ok",
        "service": "streamrelay",
        "timestamp": now.isoformat(),
        "task_timeout_seconds": _task_timeout_seconds(),
        "queues": {
            "default": current_app.config.get("CELERY_TASK_DEFAULT_QUEUE"),
        },
    }
    return jsonify(payload), HTTPStatus.OK


@api_bp.route("/status", methods=["GET"])
def status_endpoint():
    payload = _service().status_payload()
    return jsonify(payload), HTTPStatus.OK


@api_bp.route("/events", methods=["GET"])
def events_endpoint():
    limit = to_optional_int(request.args.get("limit"))
    if limit is not None and limit < 0:
        limit = None
    return jsonify(_service().events_payload(limit)), HTTPStatus.OK


@api_bp.route("/relay/session", methods=["GET"])
def session_endpoint():
    return jsonify(_service().session_payload()), HTTPStatus.OK


@api_bp.route("/relay/start", methods=["POST"])
def start_endpoint():
    return _dispatch(start_relay_task, dict(_json_body()))


@api_bp.route("/relay/stop", methods=["POST"])
def stop_endpoint():
    return _dispatch(stop_relay_task)


@api_bp.route("/relay/test", methods=["POST"])
def test_endpoint():
    return _dispatch(validate_relay_task, dict(_json_body()))


@api_bp.route("/relay/preview", methods=["POST"])
def preview_endpoint():
    text = _service().preview(_json_body())
    return Response(text, status=HTTPStatus.OK, mimetype="text/plain")


@api_bp.route("/settings", methods=["GET"])
def settings_endpoint():
    settings = _service().settings_payload(reveal_keys=request.args.get("reveal_keys"))
    return jsonify({"settings": settings}), HTTPStatus.OK


@api_bp.route("/settings", methods=["PUT"])
def update_settings_endpoint():
    settings = _service().save_settings(_json_body())
    return jsonify({"settings": settings}), HTTPStatus.OK


@api_bp.route("/tasks/<string:task_id>", methods=["GET"])
def task_status_endpoint(task_id: str):
    async_result = celery.AsyncResult(task_id)
    payload: dict[str, Any] = {
        "task_id": task_id,
        "state": async_result.state,
        "ready": async_result.ready(),
    }

    if async_result.failed():
        error_message = str(async_result.result)
        payload["result"] = error_message
        payload["error"] = error_message
        payload["status"] = HTTPStatus.INTERNAL_SERVER_ERROR.value
        return jsonify(payload), HTTPStatus.INTERNAL_SERVER_ERROR

    if not async_result.ready():
        payload["result"] = None
        payload["status"] = HTTPStatus.ACCEPTED.value
        return jsonify(payload), HTTPStatus.ACCEPTED

    status_code, result_payload = _normalize_task_result(async_result.result)
    payload["result"] = result_payload
    payload["status"] = status_code
    return jsonify(payload), HTTPStatus.OK


__all__ = [
    "api_bp",
]
