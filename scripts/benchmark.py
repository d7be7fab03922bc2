#!/usr/bin/env python3
"""Load generator for a running trackcounter service.

Keeps a bounded number of ``POST /track?count=1&foo=bar`` requests in
flight, issues one ``GET /count`` per second and prints throughput every
100 ms.

Usage
-----
Start the service, then run::

    python scripts/benchmark.py --url http://localhost:8000 --duration 30

Options::

    --url URL            Service base URL (default http://localhost:8000)
    --in-flight N        Maximum unresolved /track requests (default 100)
    --duration SECONDS   Stop after this many seconds (0 = until Ctrl+C)
"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import dataclasses
import sys
import time

import aiohttp


@dataclasses.dataclass
class BenchStats:
    started_at: float = dataclasses.field(default_factory=time.monotonic)
    sent: int = 0
    received: int = 0
    failed: int = 0

    @property
    def in_flight(self) -> int:
        return self.sent - self.received - self.failed

    def line(self) -> str:
        elapsed = max(time.monotonic() - self.started_at, 1e-9)
        rate = int(self.received / elapsed)
        return f"{rate} req/s {self.in_flight} processing {self.failed} rejected {self.received} total"


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Benchmark a trackcounter service.")
    parser.add_argument("--url", default="http://localhost:8000", help="Service base URL.")
    parser.add_argument("--in-flight", type=int, default=100, help="Maximum unresolved /track requests.")
    parser.add_argument(
        "--duration",
        type=float,
        default=0,
        help="Maximum runtime in seconds (0 = run until Ctrl+C).",
    )
    return parser.parse_args()


async def _request(session: aiohttp.ClientSession, method: str, url: str, stats: BenchStats) -> None:
    stats.sent += 1
    try:
        async with session.request(method, url) as resp:
            await resp.read()
            if resp.status == 200:
                stats.received += 1
            else:
                stats.failed += 1
    except aiohttp.ClientError:
        stats.failed += 1


async def _track_loop(session: aiohttp.ClientSession, base_url: str, limit: int, stats: BenchStats) -> None:
    url = f"{base_url}/track?count=1&foo=bar"
    tasks: set[asyncio.Task[None]] = set()
    while True:
        while stats.in_flight < limit:
            task = asyncio.create_task(_request(session, "POST", url, stats))
            tasks.add(task)
            task.add_done_callback(tasks.discard)
        await asyncio.sleep(0.01)


async def _count_loop(session: aiohttp.ClientSession, base_url: str, stats: BenchStats) -> None:
    while True:
        await _request(session, "GET", f"{base_url}/count", stats)
        await asyncio.sleep(1.0)


async def _report_loop(stats: BenchStats) -> None:
    while True:
        await asyncio.sleep(0.1)
        print(stats.line())


async def _run(args: argparse.Namespace) -> int:
    stats = BenchStats()
    base_url = args.url.rstrip("/")
    connector = aiohttp.TCPConnector(limit=args.in_flight)
    async with aiohttp.ClientSession(connector=connector) as session:
        loops = [
            asyncio.create_task(_track_loop(session, base_url, args.in_flight, stats)),
            asyncio.create_task(_count_loop(session, base_url, stats)),
            asyncio.create_task(_report_loop(stats)),
        ]
        try:
            if args.duration > 0:
                await asyncio.sleep(args.duration)
            else:
                await asyncio.Event().wait()
        finally:
            for task in loops:
                task.cancel()
            await asyncio.gather(*loops, return_exceptions=True)
    print(stats.line())
    return 0 if stats.failed == 0 else 1


def main() -> int:
    args = _parse_args()
    with contextlib.suppress(KeyboardInterrupt):
        return asyncio.run(_run(args))
    return 130


if __name__ == "__main__":
    sys.exit(main())
