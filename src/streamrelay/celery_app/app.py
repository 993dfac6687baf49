"""Celery application factory for the relay service."""
from __future__ import annotations

from typing import Optional

from celery import Celery, Task
from flask import Flask

_bound_app: Optional[Flask] = None


class ContextTask(Task):
    """Run every task inside the bound Flask app's context."""

    abstract = True

    def __call__(self, *args, **kwargs):
        flask_app = _bound_app
        if flask_app is None:
            return super().__call__(*args, **kwargs)
        with flask_app.app_context():
            return super().__call__(*args, **kwargs)


celery = Celery("streamrelay", task_cls=ContextTask)


def init_celery(app: Flask) -> Celery:
    """Bind Celery to the Flask app and configure queues.

    The most recently initialised app is the one tasks run against.
    """

    global _bound_app

    celery.conf.update(
        broker_url=app.config["CELERY_BROKER_URL"],
        result_backend=app.config["CELERY_RESULT_BACKEND"],
        task_default_queue=app.config["CELERY_TASK_DEFAULT_QUEUE"],
        task_always_eager=bool(app.config.get("CELERY_TASK_ALWAYS_EAGER")),
        task_eager_propagates=True,
        task_serializer="json",
        result_serializer="json",
        accept_content=["json"],
        worker_hijack_root_logger=False,
        # A single worker process owns the one ingest server on this host.
        worker_concurrency=1,
    )
    _bound_app = app
    app.extensions["celery"] = celery
    return celery


__all__ = ["ContextTask", "celery", "init_celery"]
