"""Signal orchestration used to stop the ingest server."""
from __future__ import annotations

import logging
import signal
from dataclasses import dataclass
from subprocess import TimeoutExpired
from typing import Optional

LOGGER = logging.getLogger(__name__)

# nginx treats SIGQUIT as "graceful shutdown"; fall back to SIGTERM elsewhere.
GRACEFUL_SIGNAL = getattr(signal, "SIGQUIT", signal.SIGTERM)


@dataclass(frozen=True)
class StopResult:
    """Outcome of attempting to stop the ingest server."""

    returncode: Optional[int]
    forced: bool


class StopStrategy:
    """Coordinate graceful shutdown, escalating to terminate and kill."""

    def __init__(
        self,
        *,
        graceful_timeout: float = 5.0,
        terminate_timeout: float = 2.0,
        kill_timeout: float = 2.0,
        graceful_signal: int = GRACEFUL_SIGNAL,
    ) -> None:
        self._graceful_timeout = max(0.0, graceful_timeout)
        self._terminate_timeout = max(0.0, terminate_timeout)
        self._kill_timeout = max(0.0, kill_timeout)
        self._graceful_signal = graceful_signal

    def shutdown(self, process) -> StopResult:
        """Stop ``process`` (a ``Popen``-like handle); every wait is bounded."""

        if process.poll() is not None:
            return StopResult(returncode=process.returncode, forced=False)

        try:
            LOGGER.info("Requesting graceful shutdown of ingest server (pid=%s)", process.pid)
            process.send_signal(self._graceful_signal)
        except (OSError, ValueError) as exc:  # pragma: no cover - system dependent
            LOGGER.warning("Failed to signal ingest server process: %s", exc)

        returncode = self._wait_for_exit(process, self._graceful_timeout)
        if returncode is not None:
            LOGGER.info("Ingest server exited with %s", returncode)
            return StopResult(returncode=returncode, forced=False)

        LOGGER.warning("Ingest server still running after graceful signal; sending SIGTERM")
        try:
            process.terminate()
        except OSError as exc:  # pragma: no cover - system dependent
            LOGGER.warning("Failed to terminate ingest server process: %s", exc)
        returncode = self._wait_for_exit(process, self._terminate_timeout)

        if returncode is None:
            LOGGER.error("Ingest server ignored SIGTERM; sending SIGKILL")
            try:
                process.kill()
            except OSError as exc:  # pragma: no cover - system dependent
                LOGGER.exception("Failed to kill ingest server process: %s", exc)
            returncode = self._wait_for_exit(process, self._kill_timeout)
            if returncode is None:
                LOGGER.error("Ingest server process still running after SIGKILL attempt")
                returncode = process.returncode

        if returncode is not None:
            LOGGER.info("Ingest server exited with %s", returncode)
        else:
            LOGGER.warning("Ingest server exit code unknown after stop sequence")
        return StopResult(returncode=returncode, forced=True)

    def _wait_for_exit(self, process, timeout: float) -> Optional[int]:
        try:
            return process.wait(timeout=timeout)
        except TimeoutExpired:
            return None


__all__ = ["GRACEFUL_SIGNAL", "StopResult", "StopStrategy"]
