from __future__ import annotations

import json
from pathlib import Path

import pytest

from trackcounter.audit import AuditSink, serialize_record
from trackcounter.exceptions import AuditSinkError


def _read_records(path: Path) -> list[dict[str, object]]:
    return [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines()]


def test_serialize_record_is_one_compact_line() -> None:
    line = serialize_record({"count": "1", "name": "first"})
    assert line == '{"count":"1","name":"first"}\n'


def test_append_writes_records_in_order(tmp_path: Path) -> None:
    path = tmp_path / "dump.txt"
    sink = AuditSink(path)
    sink.open()
    sink.append({"count": "1", "name": "first", "foo": "bar"})
    sink.append({"name": "second"})
    sink.close()

    assert _read_records(path) == [{"count": "1", "name": "first", "foo": "bar"}, {"name": "second"}]
    assert sink.records_written == 2


def test_open_appends_to_existing_file(tmp_path: Path) -> None:
    path = tmp_path / "dump.txt"
    path.write_text('{"old":"1"}\n', encoding="utf-8")
    sink = AuditSink(path)
    sink.open()
    sink.append({"new": "2"})
    sink.close()

    assert _read_records(path) == [{"old": "1"}, {"new": "2"}]


def test_records_are_visible_before_close(tmp_path: Path) -> None:
    path = tmp_path / "dump.txt"
    sink = AuditSink(path)
    sink.open()
    sink.append({"name": "üñí"})
    assert _read_records(path) == [{"name": "üñí"}]
    sink.close()


def test_close_is_idempotent_and_safe_when_never_opened(tmp_path: Path) -> None:
    sink = AuditSink(tmp_path / "dump.txt")
    sink.close()
    sink.open()
    sink.close()
    sink.close()
    assert not sink.is_open


def test_append_requires_open_sink(tmp_path: Path) -> None:
    sink = AuditSink(tmp_path / "dump.txt")
    with pytest.raises(AuditSinkError):
        sink.append({"a": "b"})


def test_open_failure_raises_audit_error(tmp_path: Path) -> None:
    sink = AuditSink(tmp_path / "missing-dir" / "dump.txt")
    with pytest.raises(AuditSinkError):
        sink.open()
