"""Celery task that validates a relay configuration without starting it."""
from __future__ import annotations

from http import HTTPStatus
from typing import Any, Mapping, Optional

from celery.utils.log import get_task_logger
from flask import current_app

from .. import celery
from ...relay import ConfigError
from ...services.relay_session import get_session_service
from ._utils import error_result

LOGGER = get_task_logger(__name__)


@celery.task(bind=True, name="relay.test")
def validate_relay_task(self, overrides: Optional[Mapping[str, Any]] = None) -> Mapping[str, Any]:
    service = get_session_service(current_app)
    try:
        payload = service.test_payload(overrides or {})
    except ConfigError as exc:
        LOGGER.info("[task:%s] Configuration rejected: %s", self.request.id, exc.message)
        return error_result(exc)
    return {"status": HTTPStatus.OK, "payload": payload}


__all__ = ["validate_relay_task"]
