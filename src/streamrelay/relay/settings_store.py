"""Persisted relay settings: the flat ``group.key`` schema and its INI file.

The schema is shared with the configuration editor, which stores values as
key/value groups (``twitch.enabled``, ``quality.bitrate`` ...). Every key is
optional; missing values fall back to the defaults below.
"""
from __future__ import annotations

import configparser
import logging
import os
from pathlib import Path
from typing import Any, Callable, Dict, Mapping, MutableMapping

from ..utils import to_bool, to_optional_float, to_optional_int
from .catalog import Platform
from .config import (
    DEFAULT_BITRATE_KBPS,
    DEFAULT_CUSTOM_ARGS,
    DEFAULT_PORT,
    PlatformSettings,
    QualityPreset,
    ReconnectPolicy,
    RelayConfig,
)
from .exceptions import InvalidPreset, IOFailure

LOGGER = logging.getLogger(__name__)

DEFAULT_SETTINGS: Dict[str, Any] = {
    "twitch.enabled": False,
    "twitch.key": "",
    "youtube.enabled": False,
    "youtube.key": "",
    "kick.enabled": False,
    "kick.key": "",
    "custom.enabled": False,
    "custom.key": "",
    "custom.url": "",
    "general.port": DEFAULT_PORT,
    "quality.preset": QualityPreset.VERYFAST.label,
    "quality.bitrate": DEFAULT_BITRATE_KBPS,
    "advanced.auto_reconnect": True,
    "advanced.logging": True,
    "advanced.ffmpeg_args": DEFAULT_CUSTOM_ARGS,
    "advanced.max_reconnect_attempts": 3,
    "advanced.reconnect_delay": 5.0,
}


def flatten_settings(payload: Mapping[str, Any]) -> Dict[str, Any]:
    """Accept either flat ``group.key`` pairs or nested ``{group: {key: ...}}``.

    ``group/key`` (the editor's native separator) is accepted as well.
    """

    flat: Dict[str, Any] = {}
    for key, value in payload.items():
        if isinstance(value, Mapping):
            for inner_key, inner_value in value.items():
                flat[f"{key}.{inner_key}".lower()] = inner_value
        else:
            flat[str(key).replace("/", ".").lower()] = value
    return flat


def _number(value: Any, parse: Callable[[Any], Any], default: Any) -> Any:
    """Parse a numeric setting; unparseable input is kept for the compiler to reject."""

    if value is None or (isinstance(value, str) and not value.strip()):
        return default
    parsed = parse(value)
    if parsed is None:
        return value.strip() if isinstance(value, str) else value
    return parsed


def config_from_settings(settings: Mapping[str, Any]) -> RelayConfig:
    """Build a :class:`RelayConfig` from persisted settings, applying defaults.

    Values are coerced but not validated; validation belongs to the compiler.
    """

    values = dict(DEFAULT_SETTINGS)
    values.update(flatten_settings(settings))

    platforms = {}
    for platform in Platform:
        prefix = platform.value
        platforms[platform] = PlatformSettings(
            enabled=to_bool(values.get(f"{prefix}.enabled")),
            stream_key=str(values.get(f"{prefix}.key") or "").strip(),
            ingest_url=str(values.get(f"{prefix}.url") or "").strip() or None,
        )

    preset_value = values.get("quality.preset")
    try:
        preset: QualityPreset | str = QualityPreset.parse(preset_value)
    except InvalidPreset:
        # Left unparsed so the compiler reports it as a ConfigError.
        preset = str(preset_value)

    return RelayConfig(
        listen_port=_number(values.get("general.port"), to_optional_int, DEFAULT_PORT),
        platforms=platforms,
        preset=preset,  # type: ignore[arg-type]
        bitrate_kbps=_number(values.get("quality.bitrate"), to_optional_int, DEFAULT_BITRATE_KBPS),
        custom_args=str(values.get("advanced.ffmpeg_args") or ""),
        reconnect=ReconnectPolicy(
            auto_reconnect=to_bool(values.get("advanced.auto_reconnect"), default=True),
            max_attempts=_number(values.get("advanced.max_reconnect_attempts"), to_optional_int, 3),
            delay_seconds=_number(values.get("advanced.reconnect_delay"), to_optional_float, 5.0),
        ),
        logging=to_bool(values.get("advanced.logging"), default=True),
    )


def settings_from_config(config: RelayConfig) -> Dict[str, Any]:
    """Inverse of :func:`config_from_settings` for the persisted keys."""

    settings: Dict[str, Any] = {}
    for platform in Platform:
        entry = config.platforms.get(platform) or PlatformSettings()
        settings[f"{platform.value}.enabled"] = bool(entry.enabled)
        settings[f"{platform.value}.key"] = entry.stream_key
        if platform is Platform.CUSTOM:
            settings["custom.url"] = entry.ingest_url or ""
    preset = config.preset
    settings["general.port"] = config.listen_port
    settings["quality.preset"] = preset.label if isinstance(preset, QualityPreset) else str(preset)
    settings["quality.bitrate"] = config.bitrate_kbps
    settings["advanced.auto_reconnect"] = bool(config.reconnect.auto_reconnect)
    settings["advanced.logging"] = bool(config.logging)
    settings["advanced.ffmpeg_args"] = config.custom_args
    settings["advanced.max_reconnect_attempts"] = config.reconnect.max_attempts
    settings["advanced.reconnect_delay"] = config.reconnect.delay_seconds
    return settings


class SettingsStore:
    """INI-backed key/value storage for the persisted settings schema."""

    def __init__(self, path: Path | str) -> None:
        self._path = Path(path).expanduser()

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> Dict[str, Any]:
        """Return stored values merged over :data:`DEFAULT_SETTINGS`."""

        values = dict(DEFAULT_SETTINGS)
        if not self._path.exists():
            return values
        parser = configparser.ConfigParser(interpolation=None)
        try:
            parser.read(self._path, encoding="utf-8")
        except (OSError, configparser.Error) as exc:
            LOGGER.warning("Ignoring unreadable settings file %s: %s", self._path, exc)
            return values
        for section in parser.sections():
            for key, raw in parser.items(section):
                values[f"{section}.{key}".lower()] = raw
        return values

    def load_config(self) -> RelayConfig:
        return config_from_settings(self.load())

    def save(self, settings: Mapping[str, Any]) -> Path:
        merged: MutableMapping[str, Any] = self.load()
        merged.update(flatten_settings(settings))
        parser = configparser.ConfigParser(interpolation=None)
        for flat_key in sorted(merged):
            if "." not in flat_key:
                continue
            section, key = flat_key.split(".", 1)
            if not parser.has_section(section):
                parser.add_section(section)
            value = merged[flat_key]
            if isinstance(value, bool):
                value = "true" if value else "false"
            parser.set(section, key, "" if value is None else str(value))

        tmp_path = self._path.with_name(f".{self._path.name}.tmp")
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with tmp_path.open("w", encoding="utf-8") as handle:
                parser.write(handle)
            os.replace(tmp_path, self._path)
        except OSError as exc:
            raise IOFailure(str(self._path), exc.strerror or str(exc)) from exc
        LOGGER.info("Saved relay settings to %s", self._path)
        return self._path

    def save_config(self, config: RelayConfig) -> Path:
        return self.save(settings_from_config(config))


__all__ = [
    "DEFAULT_SETTINGS",
    "SettingsStore",
    "config_from_settings",
    "flatten_settings",
    "settings_from_config",
]
