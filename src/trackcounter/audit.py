"""Append-only JSON-lines sink for ``/track`` parameters."""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from pathlib import Path
from typing import IO, Any

from trackcounter.exceptions import AuditSinkError

_logger = logging.getLogger(__name__)


def serialize_record(record: Mapping[str, Any]) -> str:
    """Render *record* as one compact JSON line, newline included."""
    return json.dumps(dict(record), ensure_ascii=False, separators=(",", ":")) + "\n"


class AuditSink:
    """Writes one JSON object per line to a file opened in append mode.

    Every :meth:`append` is a single blocking ``write`` + ``flush`` with no
    await in between, so on a single event loop concurrent requests can
    never interleave partial lines and records keep arrival order.
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._fh: IO[str] | None = None
        self._records_written = 0

    @property
    def path(self) -> Path:
        return self._path

    @property
    def is_open(self) -> bool:
        return self._fh is not None

    @property
    def records_written(self) -> int:
        return self._records_written

    def open(self) -> None:
        if self._fh is not None:
            return
        try:
            self._fh = self._path.open("a", encoding="utf-8")
        except OSError as exc:
            raise AuditSinkError(f"Cannot open audit file {self._path}: {exc}") from exc
        _logger.debug("Audit file %s opened", self._path)

    def append(self, record: Mapping[str, Any]) -> None:
        fh = self._fh
        if fh is None:
            raise AuditSinkError("Audit sink is not open")
        line = serialize_record(record)
        try:
            fh.write(line)
            fh.flush()
        except OSError as exc:
            raise AuditSinkError(f"Cannot write audit record to {self._path}: {exc}") from exc
        self._records_written += 1

    def close(self) -> None:
        fh = self._fh
        self._fh = None
        if fh is None:
            return
        try:
            fh.flush()
            fh.close()
        except OSError as exc:
            raise AuditSinkError(f"Cannot close audit file {self._path}: {exc}") from exc
        _logger.info("Audit file %s closed after %d records", self._path, self._records_written)
