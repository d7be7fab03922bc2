"""Startup and shutdown sequencing for the counter service."""

from __future__ import annotations

import asyncio
import logging
import os
import signal
from collections.abc import Awaitable, Callable, Mapping
from enum import StrEnum
from typing import Any

from trackcounter._constants import EXIT_ERROR, EXIT_SUCCESS, SHUTDOWN_SIGNALS
from trackcounter.audit import AuditSink
from trackcounter.config import CounterConfig
from trackcounter.exceptions import LifecycleError, StartupError
from trackcounter.handler import TrackListener
from trackcounter.store import StoreClient

_logger = logging.getLogger(__name__)


class LifecycleState(StrEnum):
    IDLE = "idle"
    INITIALIZING = "initializing"
    RUNNING = "running"
    SHUTTING_DOWN = "shutting_down"
    TERMINATED = "terminated"


class StoreBackend:
    """Binds the listener's backend operations to Redis and the audit file."""

    def __init__(self, store: StoreClient, sink: AuditSink, key: str) -> None:
        self._store = store
        self._sink = sink
        self._key = key

    async def get_count(self) -> int:
        return await self._store.get(self._key)

    def incr_count(self, value: int) -> None:
        self._store.increment(self._key, value)

    def dump_query_params(self, params: Mapping[str, Any]) -> None:
        self._sink.append(params)


class CounterService:
    """Owns the store client, the audit sink and the listener.

    Usage::

        service = CounterService(CounterConfig.from_env())
        exit_code = await service.run()

    ``start`` opens the audit file, connects to Redis (waiting for it if
    needed), resets the counter and starts listening, in that order.
    ``shutdown`` stops the listener, closes Redis, then closes the audit
    file, all within ``config.shutdown_timeout`` seconds.
    When that deadline passes, ``run`` hands the exit code to ``force_exit``
    (``os._exit`` by default) instead of waiting for the close steps.
    """

    def __init__(
        self,
        config: CounterConfig,
        *,
        store: StoreClient | None = None,
        sink: AuditSink | None = None,
        listener: TrackListener | None = None,
        force_exit: Callable[[int], object] = os._exit,
    ) -> None:
        self._config = config
        self._store = store or StoreClient(config, on_ready=self._on_store_ready)
        self._sink = sink or AuditSink(config.dump_file)
        self._backend = StoreBackend(self._store, self._sink, config.counter_key)
        self._listener = listener or TrackListener(
            self._backend,
            host=config.http_host,
            port=config.http_port,
        )
        self._state = LifecycleState.IDLE
        self._exit_code: int | None = None
        self._shutdown_task: asyncio.Task[int] | None = None
        self._force_exit = force_exit
        self._overdue_teardown: asyncio.Task[None] | None = None

    @property
    def state(self) -> LifecycleState:
        return self._state

    @property
    def listener(self) -> TrackListener:
        return self._listener

    @property
    def backend(self) -> StoreBackend:
        return self._backend

    @property
    def exit_code(self) -> int | None:
        """Exit code decided by startup failure or shutdown, if any."""
        return self._exit_code

    def _on_store_ready(self) -> None:
        _logger.info("Store ready")

    # ------------------------------------------------------------------
    # Startup
    # ------------------------------------------------------------------

    async def _open_sink(self) -> None:
        self._sink.open()

    async def _reset_counter(self) -> None:
        await self._store.reset(self._config.counter_key)

    async def start(self) -> None:
        """Run the startup sequence; raises :class:`StartupError` on the first failing step."""
        if self._state is not LifecycleState.IDLE:
            raise LifecycleError(f"Cannot start service in state {self._state}")
        self._state = LifecycleState.INITIALIZING

        steps: list[tuple[str, Callable[[], Awaitable[None]]]] = [
            ("open_sink", self._open_sink),
            ("connect_store", self._store.connect),
            ("reset_counter", self._reset_counter),
            ("start_listener", self._listener.start),
        ]
        for name, step in steps:
            _logger.debug("Startup step %s", name)
            try:
                await step()
            except Exception as exc:
                _logger.error("Startup step %s failed: %s", name, exc)
                await self._release_after_failed_start()
                raise StartupError(f"Startup step {name} failed: {exc}", step=name) from exc

        self._state = LifecycleState.RUNNING
        _logger.info("Service running")

    async def _release_after_failed_start(self) -> None:
        try:
            await self._teardown_within_deadline()
        except Exception:
            _logger.warning("Cleanup after failed startup did not complete", exc_info=True)
        self._state = LifecycleState.TERMINATED
        self._exit_code = EXIT_ERROR

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------

    async def _teardown(self) -> None:
        await self._listener.stop()
        await self._store.close()
        # A file close can block; keep it off the loop so the deadline still fires.
        await asyncio.get_running_loop().run_in_executor(None, self._sink.close)

    async def _teardown_within_deadline(self) -> None:
        """Run the close steps for at most ``shutdown_timeout`` seconds.

        On expiry the close task is cancelled but not awaited: a step that
        ignores cancellation must not hold the caller past the deadline.
        Raises :class:`TimeoutError` on expiry, or whatever a close step raised.
        """
        task = asyncio.create_task(self._teardown())
        done, _ = await asyncio.wait({task}, timeout=self._config.shutdown_timeout)
        if task not in done:
            task.cancel()
            self._overdue_teardown = task
            raise TimeoutError
        task.result()

    async def shutdown(self) -> int:
        """Tear everything down and return the process exit code.

        Concurrent or repeated calls share the first call's outcome.
        """
        if self._shutdown_task is None:
            self._shutdown_task = asyncio.create_task(self._shutdown())
        return await asyncio.shield(self._shutdown_task)

    async def _shutdown(self) -> int:
        if self._state is LifecycleState.TERMINATED:
            return self._exit_code if self._exit_code is not None else EXIT_SUCCESS
        if self._state is LifecycleState.IDLE:
            self._state = LifecycleState.TERMINATED
            self._exit_code = EXIT_SUCCESS
            return self._exit_code

        _logger.info("Service shutting down...")
        self._state = LifecycleState.SHUTTING_DOWN
        timeout = self._config.shutdown_timeout
        try:
            await self._teardown_within_deadline()
        except TimeoutError:
            _logger.error("Graceful shutdown did not finish within %.1f seconds, exiting now", timeout)
            code = EXIT_ERROR
        except Exception as exc:
            _logger.warning("Error in cleanup: %s", exc)
            code = EXIT_ERROR
        else:
            code = EXIT_SUCCESS

        self._state = LifecycleState.TERMINATED
        self._exit_code = code
        return code

    # ------------------------------------------------------------------
    # Process entry
    # ------------------------------------------------------------------

    async def run(self) -> int:
        """Start, serve until SIGINT/SIGHUP/SIGTERM, shut down; return the exit code."""
        loop = asyncio.get_running_loop()
        stop = asyncio.Event()

        installed: list[signal.Signals] = []
        for name in SHUTDOWN_SIGNALS:
            sig = getattr(signal, name, None)
            if sig is None:
                continue
            try:
                loop.add_signal_handler(sig, self._on_signal, sig, stop)
            except (NotImplementedError, RuntimeError):
                continue
            installed.append(sig)

        try:
            start_task = asyncio.create_task(self.start())
            stop_task = asyncio.create_task(stop.wait())
            done, _ = await asyncio.wait({start_task, stop_task}, return_when=asyncio.FIRST_COMPLETED)

            if start_task in done:
                try:
                    start_task.result()
                except StartupError as exc:
                    _logger.error("Error launching service: %s", exc)
                    stop_task.cancel()
                    self._exit_if_overdue(EXIT_ERROR)
                    return EXIT_ERROR
                await stop_task
            else:
                _logger.info("Shutdown requested during startup")
                start_task.cancel()
                await asyncio.gather(start_task, return_exceptions=True)

            code = await self.shutdown()
            self._exit_if_overdue(code)
            return code
        finally:
            for sig in installed:
                loop.remove_signal_handler(sig)

    def _exit_if_overdue(self, code: int) -> None:
        # asyncio.run would otherwise wait for the abandoned close task.
        if self._overdue_teardown is not None and not self._overdue_teardown.done():
            self._force_exit(code)

    def _on_signal(self, sig: signal.Signals, stop: asyncio.Event) -> None:
        _logger.info("Received %s", sig.name)
        stop.set()
