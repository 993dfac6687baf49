"""Bounded, timestamped log of relay lifecycle events."""
from __future__ import annotations

import logging
import threading
from collections import deque
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Deque, Dict, List, Optional

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class RelayEvent:
    timestamp: datetime
    level: str
    message: str

    @property
    def line(self) -> str:
        return f"[{self.timestamp:%H:%M:%S}] {self.message}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(timespec="seconds"),
            "level": self.level,
            "message": self.message,
            "line": self.line,
        }


class RelayEventLog:
    """Thread-safe ring buffer of human-readable lifecycle lines.

    Every recorded event is also forwarded to the module logger so the
    service log file carries the same history.
    """

    def __init__(self, maxlen: int = 200, *, clock: Callable[[], datetime] = datetime.now) -> None:
        self._events: Deque[RelayEvent] = deque(maxlen=max(1, int(maxlen)))
        self._lock = threading.Lock()
        self._clock = clock

    def record(self, message: str, *, level: int = logging.INFO) -> RelayEvent:
        event = RelayEvent(timestamp=self._clock(), level=logging.getLevelName(level), message=message)
        with self._lock:
            self._events.append(event)
        LOGGER.log(level, message)
        return event

    def last_line(self) -> Optional[str]:
        with self._lock:
            return self._events[-1].line if self._events else None

    def events(self, limit: Optional[int] = None) -> List[RelayEvent]:
        with self._lock:
            items = list(self._events)
        if limit is not None and limit >= 0:
            items = items[-limit:] if limit else []
        return items


__all__ = ["RelayEvent", "RelayEventLog"]
