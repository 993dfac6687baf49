"""Fixed-interval background loop used for relay health checks."""
from __future__ import annotations

import logging
import threading
from typing import Callable, Optional


LOGGER = logging.getLogger(__name__)


class HeartbeatLoop:
    """Run a background thread that invokes a callback at a fixed interval."""

    def __init__(
        self,
        interval_seconds: float,
        callback: Callable[[], None],
        *,
        name: str = "relay-health-check",
    ) -> None:
        self._interval = max(0.01, float(interval_seconds))
        self._callback = callback
        self._name = name
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def interval(self) -> float:
        return self._interval

    def start(self) -> None:
        thread = self._thread
        if thread and thread.is_alive():
            return

        stop_event = threading.Event()

        def _worker() -> None:
            while not stop_event.wait(self._interval):
                try:
                    self._callback()
                except Exception:
                    LOGGER.exception("Heartbeat callback %s raised", self._name)

        self._stop_event = stop_event
        thread = threading.Thread(target=_worker, name=self._name, daemon=True)
        self._thread = thread
        thread.start()

    def stop(self, timeout: float = 2.0) -> None:
        thread = self._thread
        self._stop_event.set()
        self._thread = None
        if thread is None or thread is threading.current_thread():
            return
        if thread.is_alive():
            thread.join(timeout=timeout)

    def running(self) -> bool:
        thread = self._thread
        return bool(thread and thread.is_alive())


__all__ = ["HeartbeatLoop"]
