"""Configuration helpers for the relay service."""
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

from dotenv import find_dotenv, load_dotenv

from .utils import coerce_float, coerce_int, to_bool


def _ensure_dotenv_loaded() -> None:
    dotenv_path = find_dotenv(usecwd=True)
    if dotenv_path:
        load_dotenv(dotenv_path, override=False)


_ensure_dotenv_loaded()

LOGGER = logging.getLogger(__name__)

SETTINGS_FILENAME = "streamrelay.ini"


def _env(name: str, fallback: Optional[str] = None) -> Optional[str]:
    value = os.getenv(name)
    if value is None:
        return fallback
    trimmed = value.strip()
    return trimmed or fallback


def default_config_dir() -> Path:
    return Path(_env("RELAY_CONFIG_DIR") or Path.home() / ".streamrelay").expanduser()


def default_settings_file(config_dir: Optional[Path] = None) -> Path:
    explicit = _env("RELAY_SETTINGS_FILE")
    if explicit:
        return Path(explicit).expanduser()
    return (config_dir or default_config_dir()) / SETTINGS_FILENAME


DEFAULT_REDIS_URL = (
    _env("RELAY_REDIS_URL")
    or _env("REDIS_URL")
    or _env("CELERY_BROKER_URL")
    or "redis://127.0.0.1:6379/0"
)

DEFAULT_STATUS_PREFIX = _env("RELAY_STATUS_PREFIX", "streamrelay")
DEFAULT_STATUS_NAMESPACE = _env("RELAY_STATUS_NAMESPACE", "relay")
DEFAULT_STATUS_KEY = _env("RELAY_STATUS_KEY", "status")
DEFAULT_STATUS_CHANNEL = _env("RELAY_STATUS_CHANNEL", "streamrelay:relay:status")


def build_default_config() -> Dict[str, Any]:
    """Return the base configuration mapping for the relay service.

    Values are read from the environment (and a ``.env`` file when one is
    found) each time this is called.
    """

    config_dir = default_config_dir()
    eager = to_bool(_env("CELERY_TASK_ALWAYS_EAGER"), default=False)

    cfg: Dict[str, Any] = {
        "RELAY_CONFIG_DIR": str(config_dir),
        "RELAY_SETTINGS_FILE": str(default_settings_file(config_dir)),
        "RELAY_INGEST_BINARY": _env("RELAY_INGEST_BINARY", "nginx"),
        "RELAY_TRANSCODER_BINARY": _env("RELAY_TRANSCODER_BINARY", "ffmpeg"),
        "RELAY_HEALTH_INTERVAL_SECONDS": coerce_float(_env("RELAY_HEALTH_INTERVAL_SECONDS"), 5.0),
        "RELAY_STARTUP_TIMEOUT_SECONDS": coerce_float(_env("RELAY_STARTUP_TIMEOUT_SECONDS"), 5.0),
        "RELAY_STOP_GRACE_SECONDS": coerce_float(_env("RELAY_STOP_GRACE_SECONDS"), 5.0),
        "RELAY_EVENT_LOG_SIZE": coerce_int(_env("RELAY_EVENT_LOG_SIZE"), 200),
        "RELAY_CORS_ORIGIN": _env("RELAY_CORS_ORIGIN", "*"),
        "RELAY_STATUS_REDIS_URL": _env("RELAY_STATUS_REDIS_URL"),
        "RELAY_STATUS_PREFIX": DEFAULT_STATUS_PREFIX,
        "RELAY_STATUS_NAMESPACE": DEFAULT_STATUS_NAMESPACE,
        "RELAY_STATUS_KEY": DEFAULT_STATUS_KEY,
        "RELAY_STATUS_CHANNEL": DEFAULT_STATUS_CHANNEL,
        "RELAY_STATUS_TTL_SECONDS": coerce_int(_env("RELAY_STATUS_TTL_SECONDS"), 30),
        "RELAY_SERVICE_LOG_DIR": _env("RELAY_SERVICE_LOG_DIR"),
        "RELAY_CONFIGURE_LOGGING": to_bool(_env("RELAY_CONFIGURE_LOGGING"), default=True),
        "CELERY_BROKER_URL": _env("CELERY_BROKER_URL", "memory://" if eager else DEFAULT_REDIS_URL),
        "CELERY_RESULT_BACKEND": _env("CELERY_RESULT_BACKEND", "cache+memory://" if eager else DEFAULT_REDIS_URL),
        "CELERY_TASK_DEFAULT_QUEUE": _env("CELERY_TASK_DEFAULT_QUEUE", "relay"),
        "CELERY_TASK_ALWAYS_EAGER": eager,
        "CELERY_TASK_TIMEOUT_SECONDS": coerce_float(_env("CELERY_TASK_TIMEOUT_SECONDS"), 15.0),
    }
    return cfg


__all__ = [
    "SETTINGS_FILENAME",
    "build_default_config",
    "default_config_dir",
    "default_settings_file",
]
