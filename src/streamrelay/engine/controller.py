"""Runtime controller that powers the relay service."""
from __future__ import annotations

import logging
import threading
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, List, Optional

from ..relay.catalog import DEFAULT_CATALOG, PlatformCatalog
from ..relay.config import RelayConfig
from ..relay.exceptions import AlreadyRunning, NotRunning, RelayError, StartCancelled
from ..relay.renderer import CONFIG_FILENAME, RenderOptions, render_config, write_config
from ..relay.topology import RelayTopology, compile_topology
from .events import RelayEvent, RelayEventLog
from .heartbeat import HeartbeatLoop
from .process import LaunchSpec, ProcessSpawner, ProcessState, spawn_process
from .status import RelayStatusBroadcaster
from .status_snapshot import RelayStatus
from .stop_strategy import StopStrategy
from .supervisor import DEFAULT_STARTUP_TIMEOUT, ProcessSupervisor

LOGGER = logging.getLogger(__name__)

INGEST_LOG_NAME = "ingest.log"


@dataclass(frozen=True)
class RelaySession:
    """Handle for one started relay session."""

    session_id: str
    topology: RelayTopology
    config_path: Path
    started_at: datetime

    def to_dict(self) -> dict:
        return {
            "session_id": self.session_id,
            "config_path": str(self.config_path),
            "started_at": self.started_at.isoformat(timespec="seconds"),
            "listen_port": self.topology.listen_port,
            "publish_url": self.topology.publish_url,
            "pipelines": [pipeline.describe() for pipeline in self.topology.pipelines],
        }


class RelayController:
    """Coordinate compiling, rendering and supervising one relay session."""

    def __init__(
        self,
        *,
        config_dir: Path | str,
        catalog: PlatformCatalog = DEFAULT_CATALOG,
        ingest_binary: str = "nginx",
        transcoder_binary: str = "ffmpeg",
        spawner: ProcessSpawner = spawn_process,
        stop_strategy: Optional[StopStrategy] = None,
        status_broadcaster: Optional[RelayStatusBroadcaster] = None,
        health_interval: float = 5.0,
        startup_timeout: float = DEFAULT_STARTUP_TIMEOUT,
        event_log_size: int = 200,
        wall_clock: Callable[[], float] = time.time,
    ) -> None:
        self._lock = threading.Lock()
        self._start_lock = threading.Lock()
        self._config_dir = Path(config_dir).expanduser()
        self._catalog = catalog
        self._ingest_binary = ingest_binary
        self._render_options = RenderOptions(transcoder_binary=transcoder_binary, work_dir=self._config_dir)
        self._events = RelayEventLog(event_log_size)
        self._supervisor = ProcessSupervisor(
            spawner=spawner,
            stop_strategy=stop_strategy,
            startup_timeout=startup_timeout,
            on_event=self._on_supervisor_event,
        )
        self._status_broadcaster = status_broadcaster
        self._heartbeat = HeartbeatLoop(health_interval, self._health_check)
        self._wall_clock = wall_clock
        self._session: Optional[RelaySession] = None
        # Bumped by every stop(); an in-flight start() that sees it change backs out.
        self._generation = 0

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------
    @property
    def config_dir(self) -> Path:
        return self._config_dir

    @property
    def config_path(self) -> Path:
        return self._config_dir / CONFIG_FILENAME

    @property
    def catalog(self) -> PlatformCatalog:
        return self._catalog

    @property
    def supervisor(self) -> ProcessSupervisor:
        return self._supervisor

    @property
    def session(self) -> Optional[RelaySession]:
        with self._lock:
            return self._session

    def active_session(self) -> RelaySession:
        """Return the current session or raise :class:`NotRunning`."""

        session = self.session
        if session is None:
            raise NotRunning()
        return session

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------
    def start(self, config: RelayConfig) -> RelaySession:
        """Validate ``config``, render it and start the ingest server.

        Raises :class:`AlreadyRunning` when a session is active,
        :class:`ConfigError` before anything is touched,
        :class:`RenderError` when the config file cannot be written,
        :class:`SpawnFailed` when the server does not come up and
        :class:`StartCancelled` when :meth:`stop` lands mid-start.
        """

        if not self._start_lock.acquire(blocking=False):
            raise AlreadyRunning()
        try:
            with self._lock:
                current = self._session
                generation = self._generation
            if current is not None and self._supervisor.state.active:
                raise AlreadyRunning(current.session_id)

            topology = compile_topology(config.snapshot(), self._catalog)
            config_path = self.config_path
            write_config(topology, config_path, self._render_options)

            log_file = self._config_dir / "logs" / INGEST_LOG_NAME if topology.logging else None
            spec = LaunchSpec.for_config(self._ingest_binary, config_path, log_file=log_file)
            session = RelaySession(
                session_id=uuid.uuid4().hex,
                topology=topology,
                config_path=config_path,
                started_at=datetime.now(timezone.utc),
            )
            with self._lock:
                cancelled = self._generation != generation
                if not cancelled:
                    self._session = session
            if cancelled:
                LOGGER.info("Relay session %s was stopped before spawning", session.session_id)
                raise StartCancelled(session.session_id)

            names = ", ".join(pipeline.platform.value for pipeline in topology.pipelines)
            self._events.record(f"Starting relay on port {topology.listen_port} for {names}")
            LOGGER.info("Relay session %s starting (config=%s)", session.session_id, config_path)

            def _refresh_config() -> None:
                write_config(topology, config_path, self._render_options)

            try:
                self._supervisor.start(spec, topology.reconnect, prepare=_refresh_config)
            except RelayError:
                with self._lock:
                    if self._session is session:
                        self._session = None
                self._broadcast_status()
                raise

            with self._lock:
                cancelled = self._generation != generation
                if not cancelled:
                    self._heartbeat.start()
                    self._events.record(
                        f"Relay running: publish to {topology.publish_url} with stream key {topology.publish_key}"
                    )
            if cancelled:
                LOGGER.info("Relay session %s was stopped during startup", session.session_id)
                self._supervisor.stop()
                self._broadcast_status()
                raise StartCancelled(session.session_id)
            self._broadcast_status()
            return session
        finally:
            self._start_lock.release()

    def stop(self) -> bool:
        """Stop the active session. Idempotent; returns ``False`` if idle.

        A :meth:`start` in flight is cancelled and waited for, so nothing is
        left running once this returns.
        """

        with self._lock:
            self._generation += 1
            session = self._session
            self._session = None
        stopped = self._supervisor.stop()
        pending = not self._start_lock.acquire(blocking=False)
        if pending:
            LOGGER.info("Waiting for an in-flight relay start to back out")
            self._start_lock.acquire()
        try:
            stopped = self._supervisor.stop() or stopped
        finally:
            self._start_lock.release()
        self._heartbeat.stop()
        if session is not None:
            LOGGER.info("Relay session %s stopped", session.session_id)
        if session is None and not stopped and not pending:
            LOGGER.debug("No active relay session to stop")
            return False
        self._events.record("Relay stopped")
        self._broadcast_status()
        return True

    def status(self) -> RelayStatus:
        """Return an immutable snapshot of controller state."""

        with self._lock:
            session = self._session
            process = self._supervisor.snapshot()
        topology = session.topology if session else None
        uptime = None
        if process.state is ProcessState.RUNNING and process.started_at is not None:
            uptime = max(0.0, self._wall_clock() - process.started_at)
        return RelayStatus(
            state=process.state.value,
            running=process.state.active,
            pid=process.pid,
            uptime_seconds=uptime,
            attempts=process.attempts,
            max_attempts=topology.reconnect.max_attempts if topology else 0,
            last_exit_status=process.last_exit_status,
            last_error=process.last_error,
            last_log_line=self._events.last_line(),
            session_id=session.session_id if session else None,
            publish_url=topology.publish_url if topology else None,
            config_path=str(session.config_path) if session else None,
            pipelines=[pipeline.describe() for pipeline in topology.pipelines] if topology else [],
        )

    def test_connection(self, config: RelayConfig) -> RelayTopology:
        """Compile ``config`` without spawning anything.

        Returns the topology or raises the first :class:`ConfigError`.
        """

        topology = compile_topology(config.snapshot(), self._catalog)
        names = ", ".join(pipeline.platform.value for pipeline in topology.pipelines)
        self._events.record(f"Configuration valid for {names}")
        return topology

    def preview(self, config: RelayConfig) -> str:
        """Return the configuration text ``config`` would render to."""

        topology = compile_topology(config.snapshot(), self._catalog)
        return render_config(topology, self._render_options)

    def events(self, limit: Optional[int] = None) -> List[RelayEvent]:
        return self._events.events(limit)

    def shutdown(self) -> None:
        """Stop everything owned by the controller."""

        self.stop()
        self._heartbeat.stop()
        broadcaster = self._status_broadcaster
        if broadcaster is not None:
            broadcaster.close()

    def broadcast_status(self) -> None:
        """Force an immediate status broadcast if configured."""

        self._broadcast_status()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _health_check(self) -> None:
        state = self._supervisor.poll()
        if state in (ProcessState.FAILED_PERMANENTLY, ProcessState.STOPPED):
            self._heartbeat.stop()
        self._broadcast_status()

    def _on_supervisor_event(self, level: int, message: str) -> None:
        self._events.record(message, level=level)
        self._broadcast_status()

    def _broadcast_status(self) -> None:
        broadcaster = self._status_broadcaster
        if broadcaster is None or not broadcaster.enabled:
            return
        session = self.session
        broadcaster.publish(
            self.status(),
            active_session=session.to_dict() if session else None,
            events=[event.to_dict() for event in self._events.events()],
        )


__all__ = ["INGEST_LOG_NAME", "RelayController", "RelaySession"]
