"""Configuration objects describing a requested relay session."""
from __future__ import annotations

import copy
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional

from ..utils import normalise_label
from .catalog import Platform
from .exceptions import InvalidPreset

MIN_PORT = 1024
MAX_PORT = 65535
MIN_BITRATE_KBPS = 500
MAX_BITRATE_KBPS = 50000
MIN_CHUNK_SIZE = 128
MAX_CHUNK_SIZE = 65536
MAX_STREAM_KEY_LENGTH = 256
MAX_CUSTOM_ARGS_LENGTH = 512

DEFAULT_PORT = 1935
DEFAULT_CHUNK_SIZE = 4096
DEFAULT_BITRATE_KBPS = 6000
DEFAULT_CUSTOM_ARGS = "-tune zerolatency"


class QualityPreset(str, Enum):
    """x264 speed/quality presets, fastest first."""

    ULTRAFAST = "ultrafast"
    SUPERFAST = "superfast"
    VERYFAST = "veryfast"
    FASTER = "faster"
    FAST = "fast"
    MEDIUM = "medium"
    SLOW = "slow"
    SLOWER = "slower"
    VERYSLOW = "veryslow"

    @classmethod
    def parse(cls, value: "QualityPreset | str") -> "QualityPreset":
        """Accept enum members, encoder names or display labels such as ``"Very Fast"``."""

        if isinstance(value, cls):
            return value
        try:
            return cls(normalise_label(value))
        except ValueError:
            raise InvalidPreset(value) from None

    @property
    def label(self) -> str:
        return _PRESET_LABELS[self]


_PRESET_LABELS = {
    QualityPreset.ULTRAFAST: "Ultra Fast",
    QualityPreset.SUPERFAST: "Super Fast",
    QualityPreset.VERYFAST: "Very Fast",
    QualityPreset.FASTER: "Faster",
    QualityPreset.FAST: "Fast",
    QualityPreset.MEDIUM: "Medium",
    QualityPreset.SLOW: "Slow",
    QualityPreset.SLOWER: "Slower",
    QualityPreset.VERYSLOW: "Very Slow",
}


@dataclass(frozen=True)
class AudioSettings:
    """Audio encoding parameters; fixed for every pipeline."""

    codec: str = "aac"
    bitrate_kbps: int = 160
    sample_rate: int = 44100
    channels: int = 2


@dataclass
class PlatformSettings:
    """Per-destination user settings."""

    enabled: bool = False
    stream_key: str = ""
    ingest_url: Optional[str] = None


@dataclass
class ReconnectPolicy:
    """Restart behaviour applied when the ingest server exits."""

    auto_reconnect: bool = True
    max_attempts: int = 3
    delay_seconds: float = 5.0
    backoff: str = "fixed"
    max_delay_seconds: float = 60.0

    def delay_for(self, attempt: int) -> float:
        """Return the wait before restart number ``attempt`` (1-based)."""

        base = max(0.0, float(self.delay_seconds))
        if self.backoff == "exponential":
            return min(base * (2 ** max(0, attempt - 1)), max(base, float(self.max_delay_seconds)))
        return base


@dataclass
class RelayConfig:
    """User supplied relay configuration.

    Mutable while the caller edits it; the controller takes a deep copy at
    start so later edits never leak into a running session.
    """

    listen_port: int = DEFAULT_PORT
    chunk_size: int = DEFAULT_CHUNK_SIZE
    platforms: Dict[Platform, PlatformSettings] = field(
        default_factory=lambda: {platform: PlatformSettings() for platform in Platform}
    )
    preset: QualityPreset = QualityPreset.VERYFAST
    bitrate_kbps: int = DEFAULT_BITRATE_KBPS
    audio: AudioSettings = field(default_factory=AudioSettings)
    custom_args: str = DEFAULT_CUSTOM_ARGS
    reconnect: ReconnectPolicy = field(default_factory=ReconnectPolicy)
    logging: bool = True

    def platform(self, platform: Platform | str) -> PlatformSettings:
        key = Platform.parse(platform)
        settings = self.platforms.get(key)
        if settings is None:
            settings = PlatformSettings()
            self.platforms[key] = settings
        return settings

    def enable(self, platform: Platform | str, stream_key: str, *, ingest_url: Optional[str] = None) -> "RelayConfig":
        """Enable ``platform`` with ``stream_key``; returns ``self`` for chaining."""

        settings = self.platform(platform)
        settings.enabled = True
        settings.stream_key = stream_key
        if ingest_url is not None:
            settings.ingest_url = ingest_url
        return self

    def disable(self, platform: Platform | str) -> "RelayConfig":
        self.platform(platform).enabled = False
        return self

    def enabled_platforms(self) -> list[Platform]:
        return [platform for platform in Platform if self.platforms.get(platform, PlatformSettings()).enabled]

    def snapshot(self) -> "RelayConfig":
        return copy.deepcopy(self)


__all__ = [
    "AudioSettings",
    "DEFAULT_BITRATE_KBPS",
    "DEFAULT_CHUNK_SIZE",
    "DEFAULT_CUSTOM_ARGS",
    "DEFAULT_PORT",
    "MAX_BITRATE_KBPS",
    "MAX_CHUNK_SIZE",
    "MAX_CUSTOM_ARGS_LENGTH",
    "MAX_PORT",
    "MAX_STREAM_KEY_LENGTH",
    "MIN_BITRATE_KBPS",
    "MIN_CHUNK_SIZE",
    "MIN_PORT",
    "PlatformSettings",
    "QualityPreset",
    "ReconnectPolicy",
    "RelayConfig",
]
