"""Relay topology: platform catalog, configuration, compiler and renderer."""
from __future__ import annotations

from .catalog import DEFAULT_CATALOG, BitrateRule, Platform, PlatformCatalog, PlatformTarget
from .config import AudioSettings, PlatformSettings, QualityPreset, ReconnectPolicy, RelayConfig
from .exceptions import (
    AlreadyRunning,
    ConfigError,
    ControllerError,
    Crashed,
    NotRunning,
    RelayError,
    RenderError,
    SpawnFailed,
    SupervisorError,
)
from .renderer import CONFIG_FILENAME, RenderOptions, render_config, write_config
from .settings_store import SettingsStore, config_from_settings, settings_from_config
from .topology import PushPipeline, RelayTopology, compile_topology, validate_config

__all__ = [
    "AlreadyRunning",
    "AudioSettings",
    "BitrateRule",
    "CONFIG_FILENAME",
    "ConfigError",
    "ControllerError",
    "Crashed",
    "DEFAULT_CATALOG",
    "NotRunning",
    "Platform",
    "PlatformCatalog",
    "PlatformSettings",
    "PlatformTarget",
    "PushPipeline",
    "QualityPreset",
    "ReconnectPolicy",
    "RelayConfig",
    "RelayError",
    "RelayTopology",
    "RenderError",
    "RenderOptions",
    "SettingsStore",
    "SpawnFailed",
    "SupervisorError",
    "compile_topology",
    "config_from_settings",
    "render_config",
    "settings_from_config",
    "validate_config",
    "write_config",
]
