"""State machine that owns the lifecycle of the ingest server process.

States follow ``Stopped -> Starting -> Running -> (Exited|Crashed) ->
Restarting -> Starting ...``. ``stop()`` reaches ``Stopped`` from any state,
and ``FailedPermanently`` is terminal until the next explicit ``start()``.

Two locks are involved. ``_lock`` guards the fields and is only ever held
briefly; ``_launch_lock`` serialises spawning so ``stop()`` can wait for an
in-flight launch to bail out before it returns. Lock order is always
``_launch_lock`` then ``_lock``.
"""
from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Optional

from ..relay.config import ReconnectPolicy
from ..relay.exceptions import Crashed, RelayError, SpawnFailed, SupervisorError
from .process import LaunchSpec, ProcessSpawner, ProcessState, SupervisedProcess, spawn_process
from .stop_strategy import StopStrategy

LOGGER = logging.getLogger(__name__)

EventSink = Callable[[int, str], None]

DEFAULT_STARTUP_TIMEOUT = 5.0


def _log_event(level: int, message: str) -> None:
    LOGGER.log(level, message)


class ProcessSupervisor:
    """Spawn, watch and restart one external process."""

    def __init__(
        self,
        *,
        spawner: ProcessSpawner = spawn_process,
        stop_strategy: Optional[StopStrategy] = None,
        startup_timeout: float = DEFAULT_STARTUP_TIMEOUT,
        liveness_interval: float = 0.1,
        on_event: EventSink = _log_event,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._spawner = spawner
        self._stopper = stop_strategy or StopStrategy()
        self._startup_timeout = max(0.0, float(startup_timeout))
        self._liveness_interval = max(0.005, float(liveness_interval))
        self._emit = on_event
        self._clock = clock

        self._lock = threading.Lock()
        self._launch_lock = threading.Lock()
        self._cancel = threading.Event()

        self._state = ProcessState.STOPPED
        self._process = None
        self._spec: Optional[LaunchSpec] = None
        self._prepare: Optional[Callable[[], None]] = None
        self._policy = ReconnectPolicy()
        self._attempts = 0
        self._last_exit: Optional[int] = None
        self._last_error: Optional[str] = None
        self._started_at: Optional[float] = None
        self._started_mono: Optional[float] = None

    # ------------------------------------------------------------------
    # Read-only accessors
    # ------------------------------------------------------------------
    @property
    def state(self) -> ProcessState:
        with self._lock:
            return self._state

    @property
    def startup_timeout(self) -> float:
        return self._startup_timeout

    def snapshot(self) -> SupervisedProcess:
        with self._lock:
            return SupervisedProcess(
                state=self._state,
                pid=getattr(self._process, "pid", None),
                attempts=self._attempts,
                last_exit_status=self._last_exit,
                started_at=self._started_at,
                last_error=self._last_error,
            )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def start(
        self,
        spec: LaunchSpec,
        policy: Optional[ReconnectPolicy] = None,
        *,
        prepare: Optional[Callable[[], None]] = None,
    ) -> ProcessState:
        """Spawn ``spec`` and wait out the startup window.

        ``prepare`` runs before every spawn (initial and restarts) and is
        where the caller refreshes the rendered config. Raises
        :class:`SpawnFailed` when the process cannot be created or exits
        inside the startup window; the supervisor is then
        ``FailedPermanently``.
        """

        with self._lock:
            if self._state in (ProcessState.STARTING, ProcessState.RUNNING, ProcessState.RESTARTING):
                raise SupervisorError(f"Supervisor already active ({self._state.value})")
            self._spec = spec
            self._prepare = prepare
            self._policy = policy or ReconnectPolicy()
            self._attempts = 0
            self._last_exit = None
            self._last_error = None
            self._state = ProcessState.STARTING
            self._cancel.clear()
        return self._launch(initial=True)

    def poll(self) -> ProcessState:
        """Check liveness and apply the restart policy.

        Never blocks longer than the reconnect delay plus one startup window,
        and both waits are cut short by :meth:`stop`.
        """

        with self._lock:
            state = self._state
            if state in (ProcessState.STOPPED, ProcessState.FAILED_PERMANENTLY, ProcessState.STARTING, ProcessState.RESTARTING):
                return state
            if state is ProcessState.RUNNING:
                returncode = self._process.poll() if self._process is not None else -1
                if returncode is None:
                    self._note_stable()
                    return state
                self._process = None
                self._last_exit = returncode
                self._state = ProcessState.EXITED if returncode == 0 else ProcessState.CRASHED
                exited_message = f"Ingest server exited unexpectedly with status {returncode}"
            else:
                exited_message = None

            policy = self._policy
            returncode = self._last_exit
            if not policy.auto_reconnect or self._attempts >= policy.max_attempts:
                error = Crashed(self._executable(), returncode, self._attempts)
                self._state = ProcessState.FAILED_PERMANENTLY
                self._last_error = error.message
                attempts = self._attempts
                exhausted = policy.auto_reconnect
            else:
                error = None
                self._attempts += 1
                attempts = self._attempts
                self._state = ProcessState.RESTARTING

        if exited_message:
            self._emit(logging.WARNING, exited_message)
        if error is not None:
            if exhausted:
                reason = f"after {attempts} restart attempt(s)"
            else:
                reason = "and auto-reconnect is disabled"
            self._emit(logging.ERROR, f"Relay failed permanently {reason} (last exit status {returncode})")
            return ProcessState.FAILED_PERMANENTLY

        delay = policy.delay_for(attempts)
        self._emit(
            logging.WARNING,
            f"Relay process died, attempting restart {attempts}/{policy.max_attempts} in {delay:g}s",
        )
        if self._cancel.wait(delay):
            return self.state
        try:
            return self._launch(initial=False)
        except RelayError:
            return self.state

    def stop(self) -> bool:
        """Stop the process and land in ``Stopped``.

        Idempotent: returns ``False`` when there was nothing to stop. Once it
        returns no process spawned by this supervisor is left running.
        """

        with self._lock:
            if self._state is ProcessState.STOPPED and self._process is None:
                return False
            self._cancel.set()

        with self._launch_lock:
            with self._lock:
                process = self._process
                self._process = None
            result = self._stopper.shutdown(process) if process is not None else None
            with self._lock:
                self._state = ProcessState.STOPPED
                self._started_mono = None
                if result is not None:
                    self._last_exit = result.returncode
        self._emit(logging.INFO, "Ingest server stopped")
        return True

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _launch(self, *, initial: bool) -> ProcessState:
        with self._launch_lock:
            with self._lock:
                if self._cancel.is_set():
                    return self._state
                self._state = ProcessState.STARTING
                spec = self._spec
                prepare = self._prepare
            if spec is None:
                raise SupervisorError("No launch specification configured")

            try:
                if prepare is not None:
                    prepare()
                process = self._spawner(spec)
            except RelayError as exc:
                self._fail(exc.message)
                raise
            except OSError as exc:
                error = SpawnFailed(spec.executable, exc.strerror or str(exc))
                self._fail(error.message)
                raise error from exc

            orphan = None
            with self._lock:
                if self._cancel.is_set():
                    orphan = process
                else:
                    self._process = process
                    self._started_at = time.time()
                    self._started_mono = self._clock()
            if orphan is not None:
                self._stopper.shutdown(orphan)
                return ProcessState.STOPPED

            verb = "started" if initial else "restarted"
            self._emit(logging.INFO, f"Ingest server {verb} (pid={getattr(process, 'pid', None)})")
            returncode = self._await_startup(process)

            with self._lock:
                if self._cancel.is_set():
                    return self._state
                if returncode is None:
                    self._state = ProcessState.RUNNING
                    return self._state
                self._process = None
                self._last_exit = returncode
                if initial:
                    error = SpawnFailed(
                        spec.executable,
                        f"exited with status {returncode} during startup",
                        returncode=returncode,
                    )
                    self._state = ProcessState.FAILED_PERMANENTLY
                    self._last_error = error.message
                else:
                    error = None
                    self._state = ProcessState.CRASHED

        if error is not None:
            self._emit(logging.ERROR, error.message)
            raise error
        self._emit(logging.WARNING, f"Ingest server exited with status {returncode} during startup")
        return ProcessState.CRASHED

    def _await_startup(self, process) -> Optional[int]:
        """Return the exit code if ``process`` dies inside the startup window."""

        deadline = self._clock() + self._startup_timeout
        while True:
            returncode = process.poll()
            if returncode is not None:
                return returncode
            remaining = deadline - self._clock()
            if remaining <= 0:
                return None
            if self._cancel.wait(min(self._liveness_interval, remaining)):
                return None

    def _note_stable(self) -> None:
        # Caller holds ``_lock``.
        if self._attempts and self._started_mono is not None:
            if self._clock() - self._started_mono >= self._startup_timeout:
                LOGGER.info("Ingest server stable again; resetting restart counter (%d)", self._attempts)
                self._attempts = 0

    def _fail(self, message: str) -> None:
        with self._lock:
            self._state = ProcessState.FAILED_PERMANENTLY
            self._last_error = message
            self._process = None
        self._emit(logging.ERROR, message)

    def _executable(self) -> str:
        return self._spec.executable if self._spec else "process"


__all__ = ["DEFAULT_STARTUP_TIMEOUT", "ProcessSupervisor"]
