from __future__ import annotations

from pathlib import Path

import pytest
from fakes import FakeRedis

from trackcounter.config import CounterConfig


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def config(tmp_path: Path) -> CounterConfig:
    return CounterConfig(
        http_host="127.0.0.1",
        http_port=0,
        dump_file=str(tmp_path / "trackdata.txt"),
        shutdown_timeout=1.0,
        reconnect_interval=0.01,
    )
