"""Redis-backed store client for the aggregate counter.

Owns:
- the connection to Redis and its connectivity state
- the unbounded connect/reconnect loop
- fire-and-forget increments (tracked so shutdown can drain them)
"""

from __future__ import annotations

import asyncio
import errno
import logging
from collections.abc import Callable
from enum import StrEnum

from redis.asyncio import Redis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError

from trackcounter.config import CounterConfig
from trackcounter.exceptions import StoreError

_logger = logging.getLogger(__name__)


class ConnectivityState(StrEnum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


def is_connection_refused(exc: BaseException) -> bool:
    """Whether *exc* (or anything in its cause chain) is a refused connection."""
    seen: set[int] = set()
    current: BaseException | None = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        if isinstance(current, ConnectionRefusedError):
            return True
        if isinstance(current, OSError) and current.errno == errno.ECONNREFUSED:
            return True
        current = current.__cause__ or current.__context__
    # redis-py flattens some socket errors into the message only
    return "connection refused" in str(exc).lower()


class StoreClient:
    """Async client for the counter kept in Redis.

    Usage::

        store = StoreClient(config, on_ready=lambda: print("ready"))
        await store.connect()
        store.increment("count", 5)
        value = await store.get("count")
        await store.close()

    ``connect`` keeps retrying for as long as Redis refuses connections;
    ``on_ready`` fires once, on the first successful connection only.
    """

    def __init__(
        self,
        config: CounterConfig,
        *,
        client: Redis | None = None,
        on_ready: Callable[[], None] | None = None,
    ) -> None:
        self._config = config
        self._redis = client
        self._on_ready = on_ready
        self._state = ConnectivityState.DISCONNECTED
        self._connected = asyncio.Event()
        self._connect_task: asyncio.Task[None] | None = None
        self._pending: set[asyncio.Task[None]] = set()
        self._closed = False

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------

    @property
    def state(self) -> ConnectivityState:
        return self._state

    @property
    def pending_increments(self) -> int:
        return len(self._pending)

    async def connect(self) -> None:
        """Connect to Redis, waiting as long as it takes."""
        if self._closed:
            raise StoreError("Store client is closed", operation="connect")
        if self._redis is None:
            self._redis = Redis(
                host=self._config.redis_host,
                port=self._config.redis_port,
                decode_responses=True,
            )
        self._ensure_connect_loop(self._redis)
        await self._connected.wait()

    def _ensure_connect_loop(self, redis: Redis) -> None:
        if self._connect_task is not None and not self._connect_task.done():
            return
        self._connected.clear()
        self._state = ConnectivityState.CONNECTING
        self._connect_task = asyncio.create_task(self._connect_loop(redis))

    async def _connect_loop(self, redis: Redis) -> None:
        port = self._config.redis_port
        while not self._closed:
            try:
                await redis.ping()
            except (RedisError, OSError) as exc:
                if is_connection_refused(exc):
                    _logger.warning(
                        "Redis server on port %s not answering, will retry in %.1f seconds...",
                        port,
                        self._config.reconnect_interval,
                    )
                else:
                    _logger.warning("Redis error: %s: %s", type(exc).__name__, exc)
                await asyncio.sleep(self._config.reconnect_interval)
                continue

            self._state = ConnectivityState.CONNECTED
            self._connected.set()
            _logger.info("Connected to Redis on %s:%s", self._config.redis_host, port)
            on_ready = self._on_ready
            self._on_ready = None
            if on_ready is not None:
                on_ready()
            return

    def _note_failure(self, exc: BaseException) -> None:
        """Drop back to reconnecting when an operation reveals a lost connection."""
        redis = self._redis
        if redis is None or self._closed or not isinstance(exc, (RedisConnectionError, OSError)):
            return
        if self._state is ConnectivityState.CONNECTED:
            _logger.warning("Lost connection to Redis: %s", exc)
            self._state = ConnectivityState.DISCONNECTED
            self._ensure_connect_loop(redis)

    async def close(self) -> None:
        """Drain pending increments and close the connection. Idempotent."""
        self._closed = True
        task = self._connect_task
        self._connect_task = None
        if task is not None and not task.done():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)

        if self._pending:
            _logger.debug("Waiting for %d pending increments", len(self._pending))
            await asyncio.gather(*self._pending, return_exceptions=True)

        redis = self._redis
        self._redis = None
        self._state = ConnectivityState.DISCONNECTED
        self._connected.clear()
        if redis is None:
            return
        try:
            await redis.aclose()
        except (RedisError, OSError) as exc:
            raise StoreError(f"Closing Redis connection failed: {exc}", operation="close") from exc
        _logger.info("Redis connection closed")

    # ------------------------------------------------------------------
    # Counter operations
    # ------------------------------------------------------------------

    def _require_client(self, operation: str, key: str) -> Redis:
        if self._redis is None or self._closed:
            raise StoreError("Store client not connected", operation=operation, key=key)
        return self._redis

    async def get(self, key: str) -> int:
        """Read *key* from the store; a missing key reads as ``0``.

        Raises :class:`StoreError` if the store is unreachable or the
        stored value is not an integer.
        """
        redis = self._require_client("get", key)
        try:
            value = await redis.get(key)
        except (RedisError, OSError) as exc:
            self._note_failure(exc)
            raise StoreError(f"GET {key} failed: {exc}", operation="get", key=key) from exc
        if value is None:
            return 0
        try:
            return int(value)
        except ValueError as exc:
            raise StoreError(f"GET {key} returned non-integer {value!r}", operation="get", key=key) from exc

    def increment(self, key: str, delta: int) -> None:
        """Schedule ``INCRBY key delta`` without waiting for it.

        Failures are logged and never reach the caller.
        """
        if isinstance(delta, bool) or not isinstance(delta, int) or delta < 0:
            raise ValueError(f"delta must be a non-negative integer, got {delta!r}")
        if self._redis is None or self._closed:
            _logger.warning("Dropping increment of %s by %d: store client not connected", key, delta)
            return
        task = asyncio.create_task(self._incrby(self._redis, key, delta))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _incrby(self, redis: Redis, key: str, delta: int) -> None:
        try:
            await redis.incrby(key, delta)
        except (RedisError, OSError) as exc:
            self._note_failure(exc)
            _logger.warning("Dropped increment of %s by %d: %s", key, delta, exc)

    async def reset(self, key: str) -> None:
        """Set *key* to zero. Raises :class:`StoreError` on failure."""
        redis = self._require_client("reset", key)
        try:
            await redis.set(key, 0)
        except (RedisError, OSError) as exc:
            self._note_failure(exc)
            raise StoreError(f"SET {key} 0 failed: {exc}", operation="reset", key=key) from exc
        _logger.debug("Counter %s reset to 0", key)
