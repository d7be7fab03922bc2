"""Command-line entry point: ``python -m trackcounter`` or ``trackcounter``."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from collections.abc import Sequence

from trackcounter._constants import EXIT_ERROR
from trackcounter.config import CounterConfig
from trackcounter.exceptions import ConfigError
from trackcounter.lifecycle import CounterService


def _parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="trackcounter",
        description="Count /track requests in Redis and dump their parameters to a file.",
    )
    parser.add_argument(
        "-l",
        "--listen-on",
        type=int,
        default=None,
        help="HTTP server port (default 8000).",
    )
    parser.add_argument(
        "--listen-host",
        default=None,
        help="HTTP server interface (default 0.0.0.0).",
    )
    parser.add_argument(
        "-r",
        "--redis-port",
        type=int,
        default=None,
        help="Redis server port (default 6379).",
    )
    parser.add_argument(
        "--redis-host",
        default=None,
        help="Redis server host (default localhost).",
    )
    parser.add_argument(
        "-d",
        "--dump-file",
        default=None,
        help="File into which /track request parameters are dumped (default trackdata.txt).",
    )
    parser.add_argument(
        "--shutdown-timeout",
        type=float,
        default=None,
        help="Seconds to wait for graceful shutdown before exiting with an error (default 2).",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable debug logs.",
    )
    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> CounterConfig:
    return CounterConfig.from_env(
        http_port=args.listen_on,
        http_host=args.listen_host,
        redis_port=args.redis_port,
        redis_host=args.redis_host,
        dump_file=args.dump_file,
        shutdown_timeout=args.shutdown_timeout,
    )


def main(argv: Sequence[str] | None = None) -> int:
    args = _parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        config = build_config(args)
    except ConfigError as exc:
        print(f"trackcounter: {exc}", file=sys.stderr)
        return EXIT_ERROR

    return asyncio.run(CounterService(config).run())


if __name__ == "__main__":
    sys.exit(main())
