"""Tests for the streaming CSV exporter."""

from __future__ import annotations

import csv
import queue
import threading
from pathlib import Path

import pytest

from repocensus.errors import ExportError
from repocensus.exporter import CSV_HEADER, END_OF_STREAM, StreamingExporter
from repocensus.models import ExportRecord


def _rows(path: Path) -> list[list[str]]:
    with path.open(newline="", encoding="utf-8") as handle:
        return list(csv.reader(handle))


def test_open_writes_header_immediately(tmp_path: Path) -> None:
    output = tmp_path / "result.csv"

    with StreamingExporter(output):
        assert _rows(output) == [CSV_HEADER]


def test_open_replaces_existing_file(tmp_path: Path, caplog) -> None:
    caplog.set_level("WARNING", logger="repocensus")
    output = tmp_path / "result.csv"
    output.write_text("stale\ncontent\n", encoding="utf-8")

    with StreamingExporter(output):
        pass

    assert _rows(output) == [CSV_HEADER]
    assert any("will be deleted" in record.getMessage() for record in caplog.records)


def test_each_row_is_flushed_as_written(tmp_path: Path) -> None:
    output = tmp_path / "result.csv"
    exporter = StreamingExporter(output)
    exporter.open()
    try:
        exporter.write(ExportRecord(url="https://github.com/a/b", license="MIT"))
        rows = _rows(output)
    finally:
        exporter.close()

    assert len(rows) == 2
    assert rows[1][0] == "https://github.com/a/b"
    assert rows[1][-1] == "MIT"


def test_consume_writes_in_arrival_order(tmp_path: Path) -> None:
    output = tmp_path / "result.csv"
    channel: queue.Queue = queue.Queue()
    for url in ("c", "a", "b"):
        channel.put(ExportRecord(url=url))
    channel.put(END_OF_STREAM)

    with StreamingExporter(output, poll_interval=0.01) as exporter:
        outcome = exporter.consume(channel, expected=3)

    assert (outcome.written, outcome.expected, outcome.cancelled) == (3, 3, False)
    assert [row[0] for row in _rows(output)[1:]] == ["c", "a", "b"]


def test_consume_stops_when_cancelled(tmp_path: Path) -> None:
    output = tmp_path / "result.csv"
    channel: queue.Queue = queue.Queue()
    channel.put(ExportRecord(url="first"))
    cancel = threading.Event()

    with StreamingExporter(output, poll_interval=0.01) as exporter:
        original = exporter.write

        def write_then_cancel(record: ExportRecord) -> None:
            original(record)
            cancel.set()

        exporter.write = write_then_cancel  # type: ignore[method-assign]
        channel.put(ExportRecord(url="second"))
        outcome = exporter.consume(channel, expected=5, cancel=cancel)

    assert outcome.cancelled
    assert (outcome.written, outcome.expected) == (1, 5)
    assert [row[0] for row in _rows(output)[1:]] == ["first"]


def test_write_before_open_fails(tmp_path: Path) -> None:
    with pytest.raises(ExportError):
        StreamingExporter(tmp_path / "out.csv").write(ExportRecord(url="u"))


def test_open_fails_when_output_is_a_directory(tmp_path: Path) -> None:
    target = tmp_path / "out.csv"
    target.mkdir()

    with pytest.raises(ExportError):
        StreamingExporter(target).open()
