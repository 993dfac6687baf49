from __future__ import annotations

import functools
import threading
import time
from pathlib import Path

import pytest

from fakes import FakeProcess, FakeSpawner
from streamrelay.engine import ProcessState, RelayController, StopStrategy
from streamrelay.engine import controller as controller_module
from streamrelay.relay import Platform, ReconnectPolicy, RelayConfig
from streamrelay.relay.exceptions import (
    AlreadyRunning,
    IOFailure,
    MissingStreamKey,
    NotRunning,
    SpawnFailed,
    StartCancelled,
)


class RecordingBroadcaster:
    def __init__(self) -> None:
        self.published: list = []
        self.sessions: list = []
        self.events: list = []
        self.closed = False

    @property
    def enabled(self) -> bool:
        return True

    def publish(self, status, *, active_session=None, events=()) -> None:
        self.published.append(status)
        self.sessions.append(active_session)
        self.events = list(events)

    def close(self) -> None:
        self.closed = True


def _controller(config_dir: Path, spawner, **kwargs) -> RelayController:
    kwargs.setdefault("startup_timeout", 0.02)
    kwargs.setdefault("health_interval", 60)
    return RelayController(
        config_dir=config_dir,
        spawner=spawner,
        stop_strategy=StopStrategy(graceful_timeout=0, terminate_timeout=0, kill_timeout=0),
        **kwargs,
    )


def test_start_writes_config_and_runs(config_dir: Path, spawner: FakeSpawner, twitch_config: RelayConfig) -> None:
    controller = _controller(config_dir, spawner)

    session = controller.start(twitch_config)

    try:
        config_path = config_dir / "nginx.conf"
        assert session.config_path == config_path
        assert config_path.is_file()
        assert "-f flv rtmp://live.twitch.tv/app/abc;" in config_path.read_text(encoding="utf-8")
        assert spawner.last.alive
        assert spawner.specs[0].command == ["nginx", "-c", str(config_path)]
        assert controller.active_session() is session

        status = controller.status()
        assert status.state == ProcessState.RUNNING.value
        assert status.running is True
        assert status.pid == spawner.last.pid
        assert status.session_id == session.session_id
        assert status.publish_url == "rtmp://127.0.0.1:1935/live"
        assert [pipeline["platform"] for pipeline in status.pipelines] == ["twitch"]
        assert "publish to rtmp://127.0.0.1:1935/live" in status.last_log_line
    finally:
        controller.shutdown()


def test_second_start_is_rejected(config_dir: Path, spawner: FakeSpawner, twitch_config: RelayConfig) -> None:
    controller = _controller(config_dir, spawner)
    session = controller.start(twitch_config)

    try:
        with pytest.raises(AlreadyRunning) as excinfo:
            controller.start(twitch_config)
        assert excinfo.value.to_dict()["session_id"] == session.session_id
        assert len(spawner.processes) == 1
    finally:
        controller.shutdown()


def test_invalid_config_touches_nothing(config_dir: Path, spawner: FakeSpawner) -> None:
    controller = _controller(config_dir, spawner)
    config = RelayConfig().enable(Platform.TWITCH, "")

    with pytest.raises(MissingStreamKey):
        controller.start(config)

    assert not config_dir.exists()
    assert spawner.processes == []
    assert controller.session is None
    assert controller.status().state == ProcessState.STOPPED.value


def test_unwritable_config_dir_is_io_failure(tmp_path: Path, spawner: FakeSpawner, twitch_config: RelayConfig) -> None:
    blocker = tmp_path / "relay"
    blocker.write_text("not a directory", encoding="utf-8")
    controller = _controller(blocker, spawner)

    with pytest.raises(IOFailure) as excinfo:
        controller.start(twitch_config)

    assert excinfo.value.to_dict()["path"] == str(blocker / "nginx.conf")
    assert spawner.processes == []
    assert controller.session is None


def test_spawn_failure_clears_session(config_dir: Path, twitch_config: RelayConfig) -> None:
    spawner = FakeSpawner(functools.partial(FakeProcess, exit_on_poll=1, exit_code=1))
    controller = _controller(config_dir, spawner)

    with pytest.raises(SpawnFailed):
        controller.start(twitch_config)

    assert controller.session is None
    assert controller.status().state == ProcessState.FAILED_PERMANENTLY.value

    # The failed session does not block a fresh start.
    controller.start(twitch_config)
    try:
        assert controller.status().running is True
    finally:
        controller.shutdown()


def test_stop_is_idempotent(config_dir: Path, spawner: FakeSpawner, twitch_config: RelayConfig) -> None:
    controller = _controller(config_dir, spawner)
    assert controller.stop() is False

    controller.start(twitch_config)
    process = spawner.last

    assert controller.stop() is True
    assert controller.stop() is False
    assert not process.alive
    assert controller.session is None
    assert controller.status().state == ProcessState.STOPPED.value
    assert controller.status().last_log_line.endswith("Relay stopped")


def test_active_session_requires_running_relay(config_dir: Path, spawner: FakeSpawner) -> None:
    controller = _controller(config_dir, spawner)

    with pytest.raises(NotRunning):
        controller.active_session()


def test_health_check_restarts_crashed_process(config_dir: Path, spawner: FakeSpawner) -> None:
    config = RelayConfig(reconnect=ReconnectPolicy(max_attempts=2, delay_seconds=0)).enable(Platform.KICK, "k")
    controller = _controller(config_dir, spawner)
    controller.start(config)

    try:
        spawner.last.crash(1)
        controller._health_check()

        status = controller.status()
        assert status.state == ProcessState.RUNNING.value
        assert status.attempts == 1
        assert status.max_attempts == 2
        assert len(spawner.processes) == 2
        messages = [event.message for event in controller.events()]
        assert any("attempting restart 1/2" in message for message in messages)
    finally:
        controller.shutdown()


def test_health_check_gives_up_after_budget(config_dir: Path, spawner: FakeSpawner) -> None:
    config = RelayConfig(reconnect=ReconnectPolicy(auto_reconnect=False)).enable(Platform.TWITCH, "abc")
    controller = _controller(config_dir, spawner)
    controller.start(config)

    spawner.last.crash(3)
    controller._health_check()

    status = controller.status()
    assert status.state == ProcessState.FAILED_PERMANENTLY.value
    assert status.running is False
    assert status.last_exit_status == 3
    assert len(spawner.processes) == 1
    assert controller.stop() is True


def test_uptime_uses_wall_clock(config_dir: Path, spawner: FakeSpawner, twitch_config: RelayConfig) -> None:
    now = {"value": 0.0}
    controller = _controller(config_dir, spawner, wall_clock=lambda: now["value"])
    controller.start(twitch_config)

    try:
        now["value"] = controller.supervisor.snapshot().started_at + 42.5
        assert controller.status().uptime_seconds == pytest.approx(42.5)
    finally:
        controller.shutdown()

    assert controller.status().uptime_seconds is None


def test_test_connection_spawns_nothing(config_dir: Path, spawner: FakeSpawner, twitch_config: RelayConfig) -> None:
    controller = _controller(config_dir, spawner)

    topology = controller.test_connection(twitch_config)

    assert topology.platforms == (Platform.TWITCH,)
    assert spawner.processes == []
    assert not config_dir.exists()
    assert controller.events()[-1].message == "Configuration valid for twitch"


def test_preview_matches_written_config(config_dir: Path, spawner: FakeSpawner, twitch_config: RelayConfig) -> None:
    controller = _controller(config_dir, spawner)

    text = controller.preview(twitch_config)
    controller.start(twitch_config)

    try:
        assert (config_dir / "nginx.conf").read_text(encoding="utf-8") == text
    finally:
        controller.shutdown()


def test_status_is_broadcast_on_lifecycle_changes(
    config_dir: Path, spawner: FakeSpawner, twitch_config: RelayConfig
) -> None:
    broadcaster = RecordingBroadcaster()
    controller = _controller(config_dir, spawner, status_broadcaster=broadcaster)

    controller.start(twitch_config)
    assert broadcaster.published[-1].state == ProcessState.RUNNING.value
    assert broadcaster.sessions[-1]["publish_url"] == "rtmp://127.0.0.1:1935/live"
    assert any(event["message"].startswith("Relay running") for event in broadcaster.events)

    controller.shutdown()
    assert broadcaster.published[-1].state == ProcessState.STOPPED.value
    assert broadcaster.sessions[-1] is None
    assert broadcaster.closed is True


def test_concurrent_starts_spawn_one_process(config_dir: Path, twitch_config: RelayConfig) -> None:
    spawner = FakeSpawner()
    controller = _controller(config_dir, spawner, startup_timeout=0.1)
    outcomes: list[str] = []
    barrier = threading.Barrier(2)

    def _start() -> None:
        barrier.wait()
        try:
            controller.start(twitch_config)
            outcomes.append("started")
        except AlreadyRunning:
            outcomes.append("rejected")

    threads = [threading.Thread(target=_start) for _ in range(2)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=5.0)

    try:
        assert sorted(outcomes) == ["rejected", "started"]
        assert len(spawner.processes) == 1
    finally:
        controller.shutdown()


def test_second_start_with_bad_config_reports_already_running(
    config_dir: Path, spawner: FakeSpawner, twitch_config: RelayConfig
) -> None:
    controller = _controller(config_dir, spawner)
    controller.start(twitch_config)

    try:
        with pytest.raises(AlreadyRunning):
            controller.start(RelayConfig())
    finally:
        controller.shutdown()


def test_stop_while_config_is_being_written_cancels_start(
    config_dir: Path, spawner: FakeSpawner, twitch_config: RelayConfig, monkeypatch: pytest.MonkeyPatch
) -> None:
    entered = threading.Event()
    release = threading.Event()
    real_write_config = controller_module.write_config

    def _slow_write_config(*args, **kwargs):
        entered.set()
        assert release.wait(5.0)
        return real_write_config(*args, **kwargs)

    monkeypatch.setattr(controller_module, "write_config", _slow_write_config)
    controller = _controller(config_dir, spawner)
    outcome: dict[str, object] = {}

    def _start() -> None:
        try:
            outcome["session"] = controller.start(twitch_config)
        except StartCancelled as exc:
            outcome["error"] = exc

    thread = threading.Thread(target=_start)
    thread.start()
    assert entered.wait(5.0)

    stopper = threading.Thread(target=lambda: outcome.setdefault("stopped", controller.stop()))
    stopper.start()
    time.sleep(0.05)
    # stop() is still waiting for the blocked start to back out.
    assert stopper.is_alive()
    release.set()
    stopper.join(timeout=5.0)
    thread.join(timeout=5.0)

    assert not stopper.is_alive() and not thread.is_alive()
    assert outcome["stopped"] is True
    assert isinstance(outcome.get("error"), StartCancelled)
    assert spawner.processes == []
    assert controller.session is None
    assert controller.supervisor.state is ProcessState.STOPPED


def test_stop_during_startup_window_leaves_nothing_running(config_dir: Path, twitch_config: RelayConfig) -> None:
    spawner = FakeSpawner()
    controller = _controller(config_dir, spawner, startup_timeout=30.0)
    outcome: dict[str, object] = {}

    def _start() -> None:
        try:
            outcome["session"] = controller.start(twitch_config)
        except StartCancelled as exc:
            outcome["error"] = exc

    thread = threading.Thread(target=_start)
    thread.start()
    assert spawner.spawned.wait(5.0)

    assert controller.stop() is True
    thread.join(timeout=5.0)

    assert not thread.is_alive()
    assert isinstance(outcome.get("error"), StartCancelled)
    assert controller.supervisor.state is ProcessState.STOPPED
    assert all(not process.alive for process in spawner.processes)
    assert controller.session is None
