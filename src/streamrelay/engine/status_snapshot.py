"""Data structures that describe the relay controller state."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, List, Mapping, Optional


@dataclass(frozen=True)
class RelayStatus:
    """Snapshot of the controller's current state."""

    state: str
    running: bool
    pid: Optional[int]
    uptime_seconds: Optional[float]
    attempts: int
    max_attempts: int
    last_exit_status: Optional[int]
    last_error: Optional[str]
    last_log_line: Optional[str]
    session_id: Optional[str] = None
    publish_url: Optional[str] = None
    config_path: Optional[str] = None
    pipelines: List[Mapping[str, Any]] = field(default_factory=list)

    def to_session(
        self,
        *,
        log_file: Optional[str] = None,
        origin: Optional[str] = None,
        updated_at: Optional[str] = None,
    ) -> dict[str, Any]:
        """Render a session dictionary for API responses."""

        pipelines: list[dict[str, Any]] = []
        for pipeline in self.pipelines:
            if isinstance(pipeline, Mapping):
                pipelines.append(dict(pipeline))

        uptime = self.uptime_seconds
        session: dict[str, Any] = {
            "state": self.state,
            "running": self.running,
            "pid": self.pid,
            "uptime_seconds": round(uptime, 1) if uptime is not None else None,
            "attempts": self.attempts,
            "max_attempts": self.max_attempts,
            "last_exit_status": self.last_exit_status,
            "last_error": self.last_error,
            "last_log_line": self.last_log_line,
            "publish_url": self.publish_url,
            "config_path": self.config_path,
            "pipelines": pipelines,
        }

        if self.session_id is not None:
            session["session_id"] = self.session_id

        if log_file is not None:
            session["log_file"] = log_file
        if origin:
            session["origin"] = origin
        if updated_at:
            session["updated_at"] = updated_at
        return session


__all__ = ["RelayStatus"]
