from __future__ import annotations

import pytest

from trackcounter.__main__ import _parse_args, build_config, main


def test_flags_override_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("TRACKCOUNTER_HTTP_PORT", raising=False)
    args = _parse_args(["-l", "9000", "-r", "6380", "-d", "dump.jsonl", "--shutdown-timeout", "3.5"])
    config = build_config(args)
    assert config.http_port == 9000
    assert config.redis_port == 6380
    assert config.dump_file == "dump.jsonl"
    assert config.shutdown_timeout == 3.5


def test_env_used_when_flag_missing(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("TRACKCOUNTER_REDIS_PORT", "6390")
    config = build_config(_parse_args([]))
    assert config.redis_port == 6390
    assert config.http_port == 8000


def test_invalid_port_exits_with_error(capsys: pytest.CaptureFixture[str]) -> None:
    assert main(["-l", "70000"]) == 1
    assert "not a valid HTTP port" in capsys.readouterr().err
