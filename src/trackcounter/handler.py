"""HTTP listener serving ``POST /track`` and ``GET /count``.

Wire contract:
- ``POST /track``: audit the query parameters, increment the counter when
  ``count`` is a valid positive number, always answer ``200`` with an
  empty body without waiting for the store.
- ``GET /count``: answer the stored counter as ``text/plain``, or ``500``
  with a fixed body when the store cannot be read.
- anything else: ``404``.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Mapping
from typing import Any, Protocol

from aiohttp import web

from trackcounter._constants import COUNT_ERROR_BODY
from trackcounter.exceptions import AuditSinkError, ListenerError, StoreError
from trackcounter.models import TrackRequest

_logger = logging.getLogger(__name__)

_Handler = Callable[[web.Request], Awaitable[web.StreamResponse]]


class CounterBackend(Protocol):
    """Operations the listener needs from the store and the audit file.

    Keeping this structural makes it easy to pass in-memory doubles in
    tests while production wires in the Redis client and the audit sink.
    """

    async def get_count(self) -> int:
        ...

    def incr_count(self, value: int) -> None:
        ...

    def dump_query_params(self, params: Mapping[str, Any]) -> None:
        ...


@web.middleware
async def not_found_for_wrong_method(request: web.Request, handler: _Handler) -> web.StreamResponse:
    """Answer ``404`` rather than ``405`` when a known path gets the wrong method."""
    try:
        return await handler(request)
    except web.HTTPMethodNotAllowed:
        raise web.HTTPNotFound() from None


class RequestHandler:
    """Route handlers bound to a :class:`CounterBackend`."""

    def __init__(self, backend: CounterBackend) -> None:
        self._backend = backend

    async def track(self, request: web.Request) -> web.Response:
        track = TrackRequest.from_query(request.query.items())
        try:
            self._backend.dump_query_params(track.audit_record())
        except AuditSinkError as exc:
            _logger.error("Error dumping /track parameters: %s", exc)

        increment = track.increment
        if increment is not None:
            self._backend.incr_count(increment)
        else:
            _logger.debug("Ignoring count %r", track.params.get("count"))
        return web.Response(status=200)

    async def count(self, request: web.Request) -> web.Response:
        try:
            value = await self._backend.get_count()
        except StoreError as exc:
            _logger.error("Error retrieving counter from store: %s", exc)
            return web.Response(status=500, text=COUNT_ERROR_BODY)
        return web.Response(status=200, text=str(value))

    def build_app(self) -> web.Application:
        app = web.Application(middlewares=[not_found_for_wrong_method])
        app.router.add_post("/track", self.track)
        app.router.add_get("/count", self.count, allow_head=False)
        return app


class TrackListener:
    """A single HTTP listener; starting it twice is an error."""

    def __init__(self, backend: CounterBackend, *, host: str, port: int) -> None:
        self._app = RequestHandler(backend).build_app()
        self._host = host
        self._port = port
        self._runner: web.AppRunner | None = None
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    @property
    def app(self) -> web.Application:
        return self._app

    @property
    def port(self) -> int:
        """Bound port once listening, the configured one otherwise."""
        runner = self._runner
        if runner is not None and runner.addresses:
            return int(runner.addresses[0][1])
        return self._port

    async def start(self) -> None:
        if self._running:
            raise ListenerError("Listener already running")
        self._running = True
        runner = web.AppRunner(self._app, access_log=None)
        try:
            await runner.setup()
            site = web.TCPSite(runner, self._host, self._port)
            await site.start()
        except OSError as exc:
            self._running = False
            await runner.cleanup()
            raise ListenerError(f"Cannot listen on {self._host}:{self._port}: {exc}") from exc
        self._runner = runner
        _logger.info("HTTP server listening on port %s", self.port)

    async def stop(self) -> None:
        """Stop accepting connections and release the socket. Idempotent."""
        self._running = False
        runner = self._runner
        self._runner = None
        if runner is None:
            return
        await runner.cleanup()
        _logger.info("HTTP server stopped")
