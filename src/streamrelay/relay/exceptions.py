"""Error taxonomy for the relay core.

Every error carries a stable machine ``code`` plus the context needed to
render an actionable message (which platform, which bound, which process).
"""
from __future__ import annotations

from typing import Any, Dict, Optional


class RelayError(RuntimeError):
    """Base error for the relay package."""

    code = "relay_error"

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.message = message
        self.context: Dict[str, Any] = {key: value for key, value in context.items() if value is not None}

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"error": self.code, "message": self.message}
        payload.update(self.context)
        return payload


# ----------------------------------------------------------------------
# Configuration errors: invalid user input, raised before any process runs
# ----------------------------------------------------------------------
class ConfigError(RelayError):
    """Raised when a RelayConfig cannot be compiled into a topology."""

    code = "config_error"


class NoPlatformsEnabled(ConfigError):
    code = "no_platforms_enabled"

    def __init__(self) -> None:
        super().__init__("Enable and configure at least one streaming platform before starting.")


class MissingStreamKey(ConfigError):
    code = "missing_stream_key"

    def __init__(self, platform: str) -> None:
        super().__init__(f"Platform '{platform}' is enabled but has no stream key.", platform=platform)
        self.platform = platform


class StreamKeyTooLong(ConfigError):
    code = "stream_key_too_long"

    def __init__(self, platform: str, length: int, maximum: int) -> None:
        super().__init__(
            f"Stream key for '{platform}' is {length} characters long (maximum {maximum}).",
            platform=platform,
            length=length,
            maximum=maximum,
        )
        self.platform = platform


class InvalidStreamKey(ConfigError):
    code = "invalid_stream_key"

    def __init__(self, platform: str) -> None:
        super().__init__(
            f"Stream key for '{platform}' contains whitespace or reserved characters.",
            platform=platform,
        )
        self.platform = platform


class MissingIngestUrl(ConfigError):
    code = "missing_ingest_url"

    def __init__(self, platform: str) -> None:
        super().__init__(f"Platform '{platform}' requires an ingest URL.", platform=platform)
        self.platform = platform


class InvalidIngestUrl(ConfigError):
    code = "invalid_ingest_url"

    def __init__(self, platform: str, reason: str) -> None:
        super().__init__(f"Ingest URL for '{platform}' rejected: {reason}.", platform=platform)
        self.platform = platform


class _RangeError(ConfigError):
    field_name = "value"

    def __init__(self, value: Any, minimum: Any, maximum: Any) -> None:
        super().__init__(
            f"{self.field_name} {value} is outside the allowed range {minimum}-{maximum}.",
            value=value,
            minimum=minimum,
            maximum=maximum,
        )
        self.value = value
        self.minimum = minimum
        self.maximum = maximum


class PortOutOfRange(_RangeError):
    code = "port_out_of_range"
    field_name = "Listen port"


class BitrateOutOfRange(_RangeError):
    code = "bitrate_out_of_range"
    field_name = "Video bitrate (kbps)"


class ChunkSizeOutOfRange(_RangeError):
    code = "chunk_size_out_of_range"
    field_name = "Chunk size"


class InvalidPreset(ConfigError):
    code = "invalid_preset"

    def __init__(self, value: Any) -> None:
        super().__init__(f"Unknown quality preset {value!r}.", value=str(value))


class InvalidCustomArgs(ConfigError):
    code = "invalid_custom_args"

    def __init__(self, reason: str) -> None:
        super().__init__(f"Custom encoder arguments rejected: {reason}.")


class InvalidReconnectPolicy(ConfigError):
    code = "invalid_reconnect_policy"

    def __init__(self, reason: str) -> None:
        super().__init__(f"Reconnect policy rejected: {reason}.")


# ----------------------------------------------------------------------
# Rendering
# ----------------------------------------------------------------------
class RenderError(RelayError):
    """Raised when the rendered ingest configuration cannot be persisted."""

    code = "render_error"


class IOFailure(RenderError):
    code = "render_io_failure"

    def __init__(self, path: str, reason: str) -> None:
        super().__init__(f"Unable to write ingest configuration to {path}: {reason}", path=path)
        self.path = path


# ----------------------------------------------------------------------
# Supervision
# ----------------------------------------------------------------------
class SupervisorError(RelayError):
    """Raised by the process supervisor."""

    code = "supervisor_error"


class SpawnFailed(SupervisorError):
    """The ingest server could not be created or died inside its startup window."""

    code = "spawn_failed"

    def __init__(self, executable: str, reason: str, *, returncode: Optional[int] = None) -> None:
        super().__init__(
            f"Failed to start {executable}: {reason}",
            executable=executable,
            returncode=returncode,
        )
        self.executable = executable
        self.returncode = returncode


class Crashed(SupervisorError):
    """The ingest server exited after it had been running."""

    code = "crashed"

    def __init__(self, executable: str, returncode: Optional[int], attempts: int) -> None:
        super().__init__(
            f"{executable} exited with status {returncode} after {attempts} restart attempt(s)",
            executable=executable,
            returncode=returncode,
            attempts=attempts,
        )
        self.executable = executable
        self.returncode = returncode
        self.attempts = attempts


# ----------------------------------------------------------------------
# Controller misuse
# ----------------------------------------------------------------------
class ControllerError(RelayError):
    code = "controller_error"


class AlreadyRunning(ControllerError):
    code = "already_running"

    def __init__(self, session_id: Optional[str] = None) -> None:
        super().__init__("A relay session is already running; stop it first.", session_id=session_id)


class NotRunning(ControllerError):
    code = "not_running"

    def __init__(self) -> None:
        super().__init__("No relay session is running.")


class StartCancelled(ControllerError):
    code = "start_cancelled"

    def __init__(self, session_id: Optional[str] = None) -> None:
        super().__init__("The relay was stopped before it finished starting.", session_id=session_id)


__all__ = [
    "AlreadyRunning",
    "BitrateOutOfRange",
    "ChunkSizeOutOfRange",
    "ConfigError",
    "ControllerError",
    "Crashed",
    "IOFailure",
    "InvalidCustomArgs",
    "InvalidIngestUrl",
    "InvalidPreset",
    "InvalidReconnectPolicy",
    "InvalidStreamKey",
    "MissingIngestUrl",
    "MissingStreamKey",
    "NoPlatformsEnabled",
    "NotRunning",
    "PortOutOfRange",
    "RelayError",
    "RenderError",
    "SpawnFailed",
    "StartCancelled",
    "StreamKeyTooLong",
    "SupervisorError",
]
