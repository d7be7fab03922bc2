from __future__ import annotations

import asyncio
import random
from collections.abc import AsyncIterator, Mapping
from typing import Any

import pytest
import pytest_asyncio
from aiohttp import test_utils

from trackcounter.exceptions import ListenerError, StoreError
from trackcounter.handler import RequestHandler, TrackListener


class _MemoryBackend:
    """Stands in for Redis and the dump file."""

    def __init__(self) -> None:
        self.count = 0
        self.dump_data: list[dict[str, Any]] = []
        self.fail_reads = False

    async def get_count(self) -> int:
        if self.fail_reads:
            raise StoreError("Store unreachable", operation="get", key="count")
        return self.count

    def incr_count(self, value: int) -> None:
        assert isinstance(value, int)
        self.count += value

    def dump_query_params(self, params: Mapping[str, Any]) -> None:
        self.dump_data.append(dict(params))


@pytest.fixture
def backend() -> _MemoryBackend:
    return _MemoryBackend()


@pytest_asyncio.fixture
async def client(backend: _MemoryBackend) -> AsyncIterator[test_utils.TestClient]:
    app = RequestHandler(backend).build_app()
    async with test_utils.TestClient(test_utils.TestServer(app)) as test_client:
        yield test_client


async def _track(client: test_utils.TestClient, query: str) -> None:
    resp = await client.post(f"/track?{query}")
    assert resp.status == 200
    assert await resp.text() == ""


async def _expect_count(client: test_utils.TestClient, expected: int) -> None:
    resp = await client.get("/count")
    assert resp.status == 200
    assert resp.content_type == "text/plain"
    assert await resp.text() == str(expected)


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("method", "path"),
    [
        ("POST", "/count"),
        ("GET", "/track"),
        ("GET", "/random/path"),
        ("POST", "/random/path"),
        ("POST", "/"),
        ("GET", "/"),
        ("PUT", "/track"),
        ("DELETE", "/count"),
    ],
)
async def test_unknown_routes_return_404(client: test_utils.TestClient, method: str, path: str) -> None:
    resp = await client.request(method, path)
    assert resp.status == 404


@pytest.mark.asyncio
async def test_processes_track_request(client: test_utils.TestClient, backend: _MemoryBackend) -> None:
    await _track(client, "count=15&foo=bar")
    await _expect_count(client, 15)
    assert backend.dump_data == [{"count": "15", "foo": "bar"}]


@pytest.mark.asyncio
async def test_ignores_non_numeric_counts(client: test_utils.TestClient) -> None:
    await _track(client, "count=12dropTableStudents")
    await _expect_count(client, 0)


@pytest.mark.asyncio
async def test_rounds_down_float_counts(client: test_utils.TestClient) -> None:
    await _track(client, "count=1.9")
    await _expect_count(client, 1)


@pytest.mark.asyncio
async def test_ignores_negative_counts(client: test_utils.TestClient) -> None:
    await _track(client, "count=-1")
    await _expect_count(client, 0)


@pytest.mark.asyncio
async def test_ignores_zero_and_missing_counts(client: test_utils.TestClient, backend: _MemoryBackend) -> None:
    await _track(client, "count=0")
    await _track(client, "count=")
    await _track(client, "name=nothing")
    await _expect_count(client, 0)
    assert len(backend.dump_data) == 3


@pytest.mark.asyncio
async def test_repeated_count_is_ignored_but_audited(client: test_utils.TestClient, backend: _MemoryBackend) -> None:
    await _track(client, "count=1&count=2")
    await _expect_count(client, 0)
    assert backend.dump_data == [{"count": ["1", "2"]}]


@pytest.mark.asyncio
async def test_counts_accumulate(client: test_utils.TestClient) -> None:
    await _track(client, "count=15&foo=bar")
    await _track(client, "count=2.5")
    await _expect_count(client, 17)


@pytest.mark.asyncio
async def test_appends_query_params_into_dump(client: test_utils.TestClient, backend: _MemoryBackend) -> None:
    first = {"count": "1", "name": "first", "foo": "bar"}
    second = {"name": "second"}
    for params in (first, second):
        resp = await client.post("/track", params=params)
        assert resp.status == 200
    assert backend.dump_data == [first, second]


@pytest.mark.asyncio
async def test_count_store_failure_returns_500(client: test_utils.TestClient, backend: _MemoryBackend) -> None:
    backend.fail_reads = True
    resp = await client.get("/count")
    assert resp.status == 500
    assert await resp.text() == "Oops... Try again later!"

    await _track(client, "count=3")
    assert backend.count == 3


@pytest.mark.asyncio
async def test_handles_concurrency(client: test_utils.TestClient, backend: _MemoryBackend) -> None:
    counts = [random.randrange(0, 1000) for _ in range(20)]
    await asyncio.gather(*(_track(client, f"count={c}") for c in counts))

    assert backend.count == sum(counts)
    assert len(backend.dump_data) == len(counts)
    assert sorted(int(rec["count"]) for rec in backend.dump_data) == sorted(counts)


@pytest.mark.asyncio
async def test_listener_rejects_second_start(backend: _MemoryBackend) -> None:
    listener = TrackListener(backend, host="127.0.0.1", port=0)
    await listener.start()
    try:
        assert listener.running
        assert listener.port != 0
        with pytest.raises(ListenerError):
            await listener.start()
    finally:
        await listener.stop()
    assert not listener.running
    await listener.stop()


@pytest.mark.asyncio
async def test_listener_bind_failure_raises(backend: _MemoryBackend) -> None:
    first = TrackListener(backend, host="127.0.0.1", port=0)
    await first.start()
    try:
        second = TrackListener(backend, host="127.0.0.1", port=first.port)
        with pytest.raises(ListenerError):
            await second.start()
        assert not second.running
    finally:
        await first.stop()
