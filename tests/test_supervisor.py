from __future__ import annotations

import functools
import threading
import time

import pytest

from fakes import FailingSpawner, FakeProcess, FakeSpawner
from streamrelay.engine import LaunchSpec, ProcessState, ProcessSupervisor, StopStrategy
from streamrelay.relay import ReconnectPolicy
from streamrelay.relay.exceptions import IOFailure, SpawnFailed, SupervisorError

SPEC = LaunchSpec(executable="nginx", arguments=("-c", "/tmp/nginx.conf"))


def _supervisor(spawner, *, startup_timeout: float = 0.02, events=None) -> ProcessSupervisor:
    kwargs = {}
    if events is not None:
        kwargs["on_event"] = lambda level, message: events.append(message)
    return ProcessSupervisor(
        spawner=spawner,
        stop_strategy=StopStrategy(graceful_timeout=0, terminate_timeout=0, kill_timeout=0),
        startup_timeout=startup_timeout,
        liveness_interval=0.005,
        **kwargs,
    )


def test_start_reaches_running(spawner: FakeSpawner) -> None:
    supervisor = _supervisor(spawner)

    state = supervisor.start(SPEC)

    snapshot = supervisor.snapshot()
    assert state is ProcessState.RUNNING
    assert snapshot.state is ProcessState.RUNNING
    assert snapshot.pid == spawner.last.pid
    assert snapshot.attempts == 0
    assert snapshot.started_at is not None
    assert spawner.specs == [SPEC]


def test_three_crashes_then_failed_permanently(spawner: FakeSpawner) -> None:
    events: list[str] = []
    supervisor = _supervisor(spawner, events=events)
    supervisor.start(SPEC, ReconnectPolicy(max_attempts=3, delay_seconds=0))

    for expected_attempt in (1, 2, 3):
        spawner.last.crash(1)
        assert supervisor.poll() is ProcessState.RUNNING
        assert supervisor.snapshot().attempts == expected_attempt

    spawner.last.crash(7)
    assert supervisor.poll() is ProcessState.FAILED_PERMANENTLY
    assert len(spawner.processes) == 4

    # A further poll never restarts.
    assert supervisor.poll() is ProcessState.FAILED_PERMANENTLY
    assert len(spawner.processes) == 4
    snapshot = supervisor.snapshot()
    assert snapshot.last_exit_status == 7
    assert "status 7" in snapshot.last_error
    assert any("restart 3/3" in line for line in events)
    assert any("failed permanently" in line for line in events)


def test_auto_reconnect_disabled_fails_on_first_crash(spawner: FakeSpawner) -> None:
    supervisor = _supervisor(spawner)
    supervisor.start(SPEC, ReconnectPolicy(auto_reconnect=False))

    spawner.last.crash(2)

    assert supervisor.poll() is ProcessState.FAILED_PERMANENTLY
    assert len(spawner.processes) == 1
    assert supervisor.snapshot().last_exit_status == 2


def test_clean_exit_is_restarted_too(spawner: FakeSpawner) -> None:
    supervisor = _supervisor(spawner)
    supervisor.start(SPEC, ReconnectPolicy(max_attempts=1, delay_seconds=0))

    spawner.last.crash(0)

    assert supervisor.poll() is ProcessState.RUNNING
    assert len(spawner.processes) == 2


def test_attempt_counter_resets_after_stable_run(spawner: FakeSpawner) -> None:
    supervisor = _supervisor(spawner)
    supervisor.start(SPEC, ReconnectPolicy(max_attempts=3, delay_seconds=0))
    spawner.last.crash(1)
    supervisor.poll()
    assert supervisor.snapshot().attempts == 1

    time.sleep(0.05)
    assert supervisor.poll() is ProcessState.RUNNING
    assert supervisor.snapshot().attempts == 0


def test_initial_exit_inside_startup_window_is_spawn_failure() -> None:
    spawner = FakeSpawner(functools.partial(FakeProcess, exit_on_poll=1, exit_code=1))
    supervisor = _supervisor(spawner)

    with pytest.raises(SpawnFailed) as excinfo:
        supervisor.start(SPEC)

    assert excinfo.value.returncode == 1
    assert supervisor.state is ProcessState.FAILED_PERMANENTLY
    assert supervisor.poll() is ProcessState.FAILED_PERMANENTLY
    assert len(spawner.processes) == 1


def test_missing_executable_is_spawn_failure() -> None:
    spawner = FailingSpawner(FileNotFoundError(2, "No such file or directory"))
    supervisor = _supervisor(spawner)

    with pytest.raises(SpawnFailed) as excinfo:
        supervisor.start(SPEC, ReconnectPolicy(max_attempts=5, delay_seconds=0))

    assert "No such file or directory" in excinfo.value.message
    assert excinfo.value.to_dict()["executable"] == "nginx"
    assert supervisor.state is ProcessState.FAILED_PERMANENTLY
    assert supervisor.poll() is ProcessState.FAILED_PERMANENTLY
    assert spawner.calls == 1


def test_restart_exit_inside_startup_window_counts_as_crash() -> None:
    spawner = FakeSpawner(
        FakeProcess,
        functools.partial(FakeProcess, exit_on_poll=1, exit_code=9),
    )
    supervisor = _supervisor(spawner)
    supervisor.start(SPEC, ReconnectPolicy(max_attempts=3, delay_seconds=0))

    spawner.last.crash(1)
    assert supervisor.poll() is ProcessState.CRASHED
    assert supervisor.snapshot().last_exit_status == 9

    assert supervisor.poll() is ProcessState.RUNNING
    assert supervisor.snapshot().attempts == 2
    assert len(spawner.processes) == 3


def test_prepare_runs_before_every_spawn(spawner: FakeSpawner) -> None:
    calls: list[int] = []
    supervisor = _supervisor(spawner)
    supervisor.start(SPEC, ReconnectPolicy(delay_seconds=0), prepare=lambda: calls.append(len(spawner.processes)))

    spawner.last.crash(1)
    supervisor.poll()

    assert calls == [0, 1]


def test_prepare_failure_is_terminal(spawner: FakeSpawner) -> None:
    def _prepare() -> None:
        raise IOFailure("/tmp/nginx.conf", "Read-only file system")

    supervisor = _supervisor(spawner)

    with pytest.raises(IOFailure):
        supervisor.start(SPEC, prepare=_prepare)

    assert supervisor.state is ProcessState.FAILED_PERMANENTLY
    assert spawner.processes == []


def test_start_while_active_is_rejected(spawner: FakeSpawner) -> None:
    supervisor = _supervisor(spawner)
    supervisor.start(SPEC)

    with pytest.raises(SupervisorError):
        supervisor.start(SPEC)


def test_stop_on_stopped_supervisor_is_noop(spawner: FakeSpawner) -> None:
    supervisor = _supervisor(spawner)

    assert supervisor.stop() is False
    assert supervisor.stop() is False
    assert supervisor.state is ProcessState.STOPPED


def test_stop_terminates_running_process(spawner: FakeSpawner) -> None:
    supervisor = _supervisor(spawner)
    supervisor.start(SPEC)
    process = spawner.last

    assert supervisor.stop() is True

    assert supervisor.state is ProcessState.STOPPED
    assert process.alive is False
    assert supervisor.snapshot().pid is None
    assert supervisor.stop() is False


def test_stop_after_permanent_failure_returns_to_stopped(spawner: FakeSpawner) -> None:
    supervisor = _supervisor(spawner)
    supervisor.start(SPEC, ReconnectPolicy(auto_reconnect=False))
    spawner.last.crash(1)
    supervisor.poll()

    assert supervisor.stop() is True
    assert supervisor.state is ProcessState.STOPPED

    supervisor.start(SPEC)
    assert supervisor.state is ProcessState.RUNNING


def test_stop_during_startup_window_leaves_nothing_running(spawner: FakeSpawner) -> None:
    supervisor = _supervisor(spawner, startup_timeout=30.0)
    outcome: dict[str, object] = {}

    def _start() -> None:
        outcome["state"] = supervisor.start(SPEC)

    thread = threading.Thread(target=_start)
    began = time.monotonic()
    thread.start()
    assert spawner.spawned.wait(5.0)

    assert supervisor.stop() is True
    thread.join(timeout=5.0)

    assert not thread.is_alive()
    assert time.monotonic() - began < 5.0
    assert supervisor.state is ProcessState.STOPPED
    assert all(not process.alive for process in spawner.processes)


def test_stop_interrupts_reconnect_delay(spawner: FakeSpawner) -> None:
    supervisor = _supervisor(spawner)
    supervisor.start(SPEC, ReconnectPolicy(max_attempts=3, delay_seconds=30))
    spawner.last.crash(1)

    thread = threading.Thread(target=supervisor.poll)
    thread.start()
    deadline = time.monotonic() + 5.0
    while supervisor.state is not ProcessState.RESTARTING and time.monotonic() < deadline:
        time.sleep(0.005)

    supervisor.stop()
    thread.join(timeout=5.0)

    assert not thread.is_alive()
    assert supervisor.state is ProcessState.STOPPED
    assert len(spawner.processes) == 1
