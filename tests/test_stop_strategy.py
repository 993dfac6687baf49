from __future__ import annotations

import signal
import subprocess
import sys

import pytest

from fakes import FakeProcess
from streamrelay.engine import StopStrategy
from streamrelay.engine.stop_strategy import GRACEFUL_SIGNAL

pytestmark = pytest.mark.skipif(sys.platform == "win32", reason="POSIX signals required")

_STUBBORN_CHILD = (
    "import signal, sys, time\n"
    "signal.signal(signal.SIGTERM, signal.SIG_IGN)\n"
    "if hasattr(signal, 'SIGQUIT'):\n"
    "    signal.signal(signal.SIGQUIT, signal.SIG_IGN)\n"
    "print('ready', flush=True)\n"
    "time.sleep(60)\n"
)


def test_graceful_signal_stops_cooperative_process() -> None:
    process = subprocess.Popen(["sleep", "60"])  # noqa: S603, S607 - testing signal handling
    try:
        result = StopStrategy(graceful_timeout=5.0).shutdown(process)
    finally:
        if process.poll() is None:
            process.kill()

    assert result.forced is False
    assert result.returncode == -int(GRACEFUL_SIGNAL)
    assert process.poll() is not None


def test_escalates_to_kill_when_signals_ignored() -> None:
    process = subprocess.Popen(  # noqa: S603 - testing signal handling
        [sys.executable, "-c", _STUBBORN_CHILD],
        stdout=subprocess.PIPE,
        text=True,
    )
    try:
        assert process.stdout.readline().strip() == "ready"
        result = StopStrategy(graceful_timeout=0.2, terminate_timeout=0.2, kill_timeout=5.0).shutdown(process)
    finally:
        if process.poll() is None:
            process.kill()
        process.stdout.close()

    assert result.forced is True
    assert result.returncode == -int(signal.SIGKILL)


def test_already_exited_process_is_left_alone() -> None:
    process = FakeProcess()
    process.crash(3)

    result = StopStrategy().shutdown(process)

    assert result.returncode == 3
    assert result.forced is False
    assert process.signals == []


def test_fake_process_sequence() -> None:
    process = FakeProcess(ignore_signals=True)

    result = StopStrategy(graceful_timeout=0, terminate_timeout=0, kill_timeout=0).shutdown(process)

    assert process.signals == [GRACEFUL_SIGNAL, signal.SIGTERM, signal.SIGKILL]
    assert result.forced is True
    assert result.returncode == -int(signal.SIGKILL)
