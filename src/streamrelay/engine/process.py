"""Process lifecycle types shared by the supervisor and controller."""
from __future__ import annotations

import logging
import shlex
import subprocess
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Optional, Sequence

LOGGER = logging.getLogger(__name__)


class ProcessState(str, Enum):
    """Lifecycle of the supervised ingest server."""

    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    EXITED = "exited"
    CRASHED = "crashed"
    RESTARTING = "restarting"
    FAILED_PERMANENTLY = "failed_permanently"

    @property
    def active(self) -> bool:
        return self in _ACTIVE_STATES


_ACTIVE_STATES = frozenset(
    {ProcessState.STARTING, ProcessState.RUNNING, ProcessState.EXITED, ProcessState.CRASHED, ProcessState.RESTARTING}
)


@dataclass(frozen=True)
class LaunchSpec:
    """Executable, arguments and environment for one ingest server process."""

    executable: str
    arguments: Sequence[str] = field(default_factory=tuple)
    working_dir: Optional[Path] = None
    log_file: Optional[Path] = None

    @classmethod
    def for_config(
        cls,
        executable: str,
        config_path: Path,
        *,
        log_file: Optional[Path] = None,
    ) -> "LaunchSpec":
        config_path = Path(config_path)
        return cls(
            executable=executable,
            arguments=("-c", str(config_path)),
            working_dir=config_path.parent,
            log_file=log_file,
        )

    @property
    def command(self) -> list[str]:
        return [self.executable, *[str(arg) for arg in self.arguments]]

    def display(self) -> str:
        return shlex.join(self.command)


@dataclass(frozen=True)
class SupervisedProcess:
    """Consistent snapshot of the supervised process."""

    state: ProcessState
    pid: Optional[int]
    attempts: int
    last_exit_status: Optional[int]
    started_at: Optional[float]
    last_error: Optional[str] = None


ProcessSpawner = Callable[[LaunchSpec], Any]


def spawn_process(spec: LaunchSpec) -> "subprocess.Popen[str]":
    """Default spawner: launch ``spec`` with output sent to its log file or discarded."""

    LOGGER.info("Starting ingest server: %s", spec.display())
    cwd = str(spec.working_dir) if spec.working_dir else None
    if spec.log_file is None:
        return subprocess.Popen(
            spec.command,
            cwd=cwd,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            text=True,
        )
    log_path = Path(spec.log_file)
    log_path.parent.mkdir(parents=True, exist_ok=True)
    with log_path.open("a", encoding="utf-8") as log_handle:
        return subprocess.Popen(
            spec.command,
            cwd=cwd,
            stdin=subprocess.DEVNULL,
            stdout=log_handle,
            stderr=subprocess.STDOUT,
            text=True,
        )


__all__ = [
    "LaunchSpec",
    "ProcessSpawner",
    "ProcessState",
    "SupervisedProcess",
    "spawn_process",
]
