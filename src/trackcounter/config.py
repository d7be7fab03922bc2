"""Service configuration for trackcounter."""

from __future__ import annotations

import dataclasses
import os
from typing import Any

from trackcounter._constants import (
    COUNTER_KEY,
    DEFAULT_DUMP_FILE,
    DEFAULT_HTTP_HOST,
    DEFAULT_HTTP_PORT,
    DEFAULT_RECONNECT_INTERVAL,
    DEFAULT_REDIS_HOST,
    DEFAULT_REDIS_PORT,
    DEFAULT_SHUTDOWN_TIMEOUT,
)
from trackcounter.exceptions import ConfigError


def _valid_port(value: int, *, allow_zero: bool = False) -> bool:
    lower = 0 if allow_zero else 1
    return lower <= value <= 65535


@dataclasses.dataclass(frozen=True)
class CounterConfig:
    """Service configuration.

    Parameters
    ----------
    http_host : str
        Interface the HTTP listener binds to.
    http_port : int
        HTTP listening port. ``0`` binds an ephemeral port.
    redis_host : str
        Host of the Redis server holding the counter.
    redis_port : int
        Port of the Redis server.
    dump_file : str
        File that receives one JSON line per ``/track`` request.
    counter_key : str
        Store key of the aggregate counter.
    shutdown_timeout : float
        Seconds graceful shutdown may take before the process exits
        with an error code.
    reconnect_interval : float
        Seconds between store connection attempts while the store is
        unreachable.
    """

    http_host: str = DEFAULT_HTTP_HOST
    http_port: int = DEFAULT_HTTP_PORT
    redis_host: str = DEFAULT_REDIS_HOST
    redis_port: int = DEFAULT_REDIS_PORT
    dump_file: str = DEFAULT_DUMP_FILE
    counter_key: str = COUNTER_KEY
    shutdown_timeout: float = DEFAULT_SHUTDOWN_TIMEOUT
    reconnect_interval: float = DEFAULT_RECONNECT_INTERVAL

    def __post_init__(self) -> None:
        if not _valid_port(self.http_port, allow_zero=True):
            raise ConfigError(f"{self.http_port} is not a valid HTTP port number")
        if not _valid_port(self.redis_port):
            raise ConfigError(f"{self.redis_port} is not a valid Redis port number")
        if not self.counter_key:
            raise ConfigError("counter_key must be non-empty")
        if not self.dump_file:
            raise ConfigError("dump_file must be non-empty")
        if self.shutdown_timeout <= 0:
            raise ConfigError(f"shutdown_timeout must be positive, got {self.shutdown_timeout}")
        if self.reconnect_interval <= 0:
            raise ConfigError(f"reconnect_interval must be positive, got {self.reconnect_interval}")

    @classmethod
    def from_env(cls, **overrides: Any) -> CounterConfig:
        """Create configuration from environment variables.

        Reads the optional ``TRACKCOUNTER_*`` variables. Explicit keyword
        arguments override environment values; ``None`` overrides are
        ignored so argparse defaults can be passed straight through.

        Raises
        ------
        ConfigError
            If a numeric variable cannot be parsed or a value is out of range.
        """
        env = os.environ

        _ENV_STR_MAP = {
            "TRACKCOUNTER_HTTP_HOST": "http_host",
            "TRACKCOUNTER_REDIS_HOST": "redis_host",
            "TRACKCOUNTER_DUMP_FILE": "dump_file",
            "TRACKCOUNTER_COUNTER_KEY": "counter_key",
        }
        _ENV_NUM_MAP: dict[str, tuple[str, type]] = {
            "TRACKCOUNTER_HTTP_PORT": ("http_port", int),
            "TRACKCOUNTER_REDIS_PORT": ("redis_port", int),
            "TRACKCOUNTER_SHUTDOWN_TIMEOUT": ("shutdown_timeout", float),
            "TRACKCOUNTER_RECONNECT_INTERVAL": ("reconnect_interval", float),
        }

        config_kwargs: dict[str, Any] = {}
        for env_key, field_name in _ENV_STR_MAP.items():
            val = env.get(env_key)
            if val is not None:
                config_kwargs[field_name] = val

        for env_key, (field_name, kind) in _ENV_NUM_MAP.items():
            val = env.get(env_key)
            if val is None:
                continue
            try:
                config_kwargs[field_name] = kind(val)
            except ValueError as exc:
                raise ConfigError(f"{env_key}={val!r} is not a valid {kind.__name__}") from exc

        config_kwargs.update({k: v for k, v in overrides.items() if v is not None})

        return cls(**config_kwargs)
