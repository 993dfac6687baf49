"""Process supervision and runtime control for the relay service."""
from __future__ import annotations

from .controller import RelayController, RelaySession
from .events import RelayEvent, RelayEventLog
from .heartbeat import HeartbeatLoop
from .process import LaunchSpec, ProcessState, SupervisedProcess, spawn_process
from .status import RelayStatusBroadcaster
from .status_snapshot import RelayStatus
from .stop_strategy import StopResult, StopStrategy
from .supervisor import ProcessSupervisor

__all__ = [
    "HeartbeatLoop",
    "LaunchSpec",
    "ProcessState",
    "ProcessSupervisor",
    "RelayController",
    "RelayEvent",
    "RelayEventLog",
    "RelaySession",
    "RelayStatus",
    "RelayStatusBroadcaster",
    "StopResult",
    "StopStrategy",
    "SupervisedProcess",
    "spawn_process",
]
