from __future__ import annotations

from pathlib import Path

import pytest

from fakes import FakeSpawner
from streamrelay.relay import Platform, RelayConfig


@pytest.fixture
def spawner() -> FakeSpawner:
    return FakeSpawner()


@pytest.fixture
def twitch_config() -> RelayConfig:
    return RelayConfig(listen_port=1935, bitrate_kbps=6000).enable(Platform.TWITCH, "abc")


@pytest.fixture
def config_dir(tmp_path: Path) -> Path:
    return tmp_path / "relay"
