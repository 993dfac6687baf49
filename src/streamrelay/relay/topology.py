"""Compile a :class:`RelayConfig` into the concrete relay topology."""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional, Tuple

from ..utils import (
    application_name,
    join_stream_key,
    local_rtmp_url,
    mask_stream_key,
    to_optional_float,
    to_optional_int,
)
from .catalog import DEFAULT_CATALOG, Platform, PlatformCatalog
from .config import (
    MAX_BITRATE_KBPS,
    MAX_CHUNK_SIZE,
    MAX_CUSTOM_ARGS_LENGTH,
    MAX_PORT,
    MAX_STREAM_KEY_LENGTH,
    MIN_BITRATE_KBPS,
    MIN_CHUNK_SIZE,
    MIN_PORT,
    AudioSettings,
    PlatformSettings,
    QualityPreset,
    ReconnectPolicy,
    RelayConfig,
)
from .exceptions import (
    BitrateOutOfRange,
    ChunkSizeOutOfRange,
    InvalidCustomArgs,
    InvalidIngestUrl,
    InvalidReconnectPolicy,
    InvalidStreamKey,
    MissingIngestUrl,
    MissingStreamKey,
    NoPlatformsEnabled,
    PortOutOfRange,
    StreamKeyTooLong,
)

GOP_LENGTH = 50
FRAME_RATE = 30
VIDEO_CODEC = "libx264"
PIXEL_FORMAT = "yuv420p"
PUBLISH_APPLICATION = "live"
PUBLISH_STREAM_KEY = "live"

# Characters that would terminate or corrupt an nginx directive.
_UNSAFE_KEY = re.compile(r"[\s;{}\"'\\]|[\x00-\x1f\x7f]")
_UNSAFE_ARGS = re.compile(r"[;{}]|[\x00-\x08\x0a-\x1f\x7f]")
_UNSAFE_URL = re.compile(r"[\s;{}\"'\\]|[\x00-\x1f\x7f]")
_URL_SCHEMES = ("rtmp://", "rtmps://")


@dataclass(frozen=True)
class PushPipeline:
    """Resolved transcode-and-push parameters for one enabled platform."""

    platform: Platform
    application: str
    input_url: str
    relay_url: str
    destination_url: str
    video_bitrate_kbps: int
    preset: str
    audio: AudioSettings
    custom_args: str
    stream_key: str = ""
    video_codec: str = VIDEO_CODEC
    pixel_format: str = PIXEL_FORMAT
    gop_length: int = GOP_LENGTH
    frame_rate: int = FRAME_RATE

    @property
    def maxrate_kbps(self) -> int:
        return self.video_bitrate_kbps

    @property
    def bufsize_kbps(self) -> int:
        return self.video_bitrate_kbps

    @property
    def masked_destination(self) -> str:
        return mask_stream_key(self.destination_url, self.stream_key)

    def describe(self) -> dict:
        return {
            "platform": self.platform.value,
            "application": self.application,
            "destination": self.masked_destination,
            "video_bitrate_kbps": self.video_bitrate_kbps,
            "preset": self.preset,
        }


@dataclass(frozen=True)
class RelayTopology:
    """Immutable process topology derived from one configuration snapshot."""

    listen_port: int
    chunk_size: int
    pipelines: Tuple[PushPipeline, ...]
    reconnect: ReconnectPolicy
    logging: bool = True

    @property
    def publish_url(self) -> str:
        """Where the broadcaster publishes (stream key ``live``)."""

        return local_rtmp_url(self.listen_port, PUBLISH_APPLICATION)

    @property
    def publish_key(self) -> str:
        return PUBLISH_STREAM_KEY

    @property
    def platforms(self) -> Tuple[Platform, ...]:
        return tuple(pipeline.platform for pipeline in self.pipelines)

    def pipeline(self, platform: Platform | str) -> Optional[PushPipeline]:
        target = Platform.parse(platform)
        for pipeline in self.pipelines:
            if pipeline.platform is target:
                return pipeline
        return None


def validate_config(config: RelayConfig, catalog: PlatformCatalog = DEFAULT_CATALOG) -> None:
    """Raise the first :class:`ConfigError` found in ``config``."""

    enabled = [target for target in catalog if _settings(config, target.platform).enabled]
    if not enabled:
        raise NoPlatformsEnabled()
    for target in enabled:
        settings = _settings(config, target.platform)
        _check_stream_key(target.identifier, settings.stream_key)
        if not (settings.ingest_url or target.ingest_url):
            raise MissingIngestUrl(target.identifier)
        if settings.ingest_url:
            _check_ingest_url(target.identifier, settings.ingest_url)

    _check_range(config.listen_port, MIN_PORT, MAX_PORT, PortOutOfRange)
    _check_range(config.chunk_size, MIN_CHUNK_SIZE, MAX_CHUNK_SIZE, ChunkSizeOutOfRange)
    _check_range(config.bitrate_kbps, MIN_BITRATE_KBPS, MAX_BITRATE_KBPS, BitrateOutOfRange)
    QualityPreset.parse(config.preset)
    _check_custom_args(config.custom_args)
    _check_reconnect(config.reconnect)


def compile_topology(config: RelayConfig, catalog: PlatformCatalog = DEFAULT_CATALOG) -> RelayTopology:
    """Validate ``config`` and resolve one push pipeline per enabled platform.

    Pure and deterministic: no I/O, and the input is never mutated. Pipelines
    follow catalog order regardless of how ``config.platforms`` is ordered.
    """

    validate_config(config, catalog)
    preset = QualityPreset.parse(config.preset).value
    custom_args = " ".join(config.custom_args.split())
    port = int(config.listen_port)

    pipelines = []
    for target in catalog:
        settings = _settings(config, target.platform)
        if not settings.enabled:
            continue
        application = application_name(target.identifier)
        destination = join_stream_key(settings.ingest_url or target.ingest_url, settings.stream_key)
        pipelines.append(
            PushPipeline(
                platform=target.platform,
                application=application,
                input_url=local_rtmp_url(port, application, "$name"),
                relay_url=local_rtmp_url(port, application),
                destination_url=destination,
                video_bitrate_kbps=target.bitrate_rule.apply(int(config.bitrate_kbps)),
                preset=preset,
                audio=config.audio,
                custom_args=custom_args,
                stream_key=settings.stream_key,
            )
        )

    reconnect = config.reconnect
    return RelayTopology(
        listen_port=port,
        chunk_size=int(config.chunk_size),
        pipelines=tuple(pipelines),
        reconnect=ReconnectPolicy(
            auto_reconnect=bool(reconnect.auto_reconnect),
            max_attempts=int(reconnect.max_attempts),
            delay_seconds=float(reconnect.delay_seconds),
            backoff=reconnect.backoff,
            max_delay_seconds=float(reconnect.max_delay_seconds),
        ),
        logging=bool(config.logging),
    )


def _settings(config: RelayConfig, platform: Platform) -> PlatformSettings:
    return config.platforms.get(platform) or PlatformSettings()


def _check_range(value, minimum, maximum, error_cls) -> None:
    if isinstance(value, bool) or not isinstance(value, int) or not minimum <= value <= maximum:
        raise error_cls(value, minimum, maximum)


def _check_stream_key(platform: str, key: str) -> None:
    if not key:
        raise MissingStreamKey(platform)
    if len(key) > MAX_STREAM_KEY_LENGTH:
        raise StreamKeyTooLong(platform, len(key), MAX_STREAM_KEY_LENGTH)
    if _UNSAFE_KEY.search(key):
        raise InvalidStreamKey(platform)


def _check_ingest_url(platform: str, url: str) -> None:
    if not url.lower().startswith(_URL_SCHEMES):
        raise InvalidIngestUrl(platform, "expected an rtmp:// or rtmps:// URL")
    if _UNSAFE_URL.search(url):
        raise InvalidIngestUrl(platform, "contains whitespace, quotes or reserved characters")


def _check_custom_args(custom_args: str) -> None:
    if not isinstance(custom_args, str):
        raise InvalidCustomArgs("expected a string")
    if len(custom_args) > MAX_CUSTOM_ARGS_LENGTH:
        raise InvalidCustomArgs(f"longer than {MAX_CUSTOM_ARGS_LENGTH} characters")
    if _UNSAFE_ARGS.search(custom_args):
        raise InvalidCustomArgs("contains a newline, ';', '{' or '}'")


def _check_reconnect(policy: ReconnectPolicy) -> None:
    attempts = to_optional_int(policy.max_attempts)
    if attempts is None or attempts < 0:
        raise InvalidReconnectPolicy(f"max attempts must be a non-negative integer, got {policy.max_attempts!r}")
    delay = to_optional_float(policy.delay_seconds)
    if delay is None or not delay >= 0:
        raise InvalidReconnectPolicy(f"delay must be a non-negative number, got {policy.delay_seconds!r}")
    if policy.backoff not in {"fixed", "exponential"}:
        raise InvalidReconnectPolicy(f"unknown backoff {policy.backoff!r}")


__all__ = [
    "FRAME_RATE",
    "GOP_LENGTH",
    "PushPipeline",
    "RelayTopology",
    "compile_topology",
    "validate_config",
]
