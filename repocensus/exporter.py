"""Incremental CSV export of repository records."""

from __future__ import annotations

import csv
import queue
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import IO, Any, List, Optional

from .errors import ExportError
from .logging import get_logger
from .models import ExportRecord

CSV_HEADER: List[str] = [
    "URL",
    "SIVA_FILENAMES",
    "FILE_COUNT",
    "LANGS",
    "LANGS_BYTE_COUNT",
    "LANGS_LINES_COUNT",
    "LANGS_FILES_COUNT",
    "COMMITS_COUNT",
    "BRANCHES_COUNT",
    "FORK_COUNT",
    "EMPTY_LINES_COUNT",
    "CODE_LINES_COUNT",
    "COMMENT_LINES_COUNT",
    "LICENSE",
]

# Marks the end of the record stream on the fan-in queue.
END_OF_STREAM = None


@dataclass(frozen=True)
class ExportOutcome:
    """How many rows were written, out of how many were expected."""

    written: int
    expected: int
    cancelled: bool = False


class StreamingExporter:
    """Writes records to a CSV file one row at a time, flushing after each row."""

    def __init__(self, path: Path, *, poll_interval: float = 0.1) -> None:
        self.path = Path(path)
        self.poll_interval = poll_interval
        self.written = 0
        self._handle: Optional[IO[str]] = None
        self._writer: Any = None
        self.logger = get_logger("exporter")

    def open(self) -> None:
        """Create the output file, replacing any existing one, and write the header."""
        if self.path.exists():
            self.logger.warning("File %s exists, it will be deleted", self.path)
            try:
                self.path.unlink()
            except OSError as exc:
                raise ExportError(f"unable to remove file {self.path}: {exc}") from exc
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self._handle = self.path.open("w", newline="", encoding="utf-8")
            self._writer = csv.writer(self._handle)
            self._writer.writerow(CSV_HEADER)
            self._handle.flush()
        except OSError as exc:
            self.close()
            raise ExportError(f"unable to create output file {self.path}: {exc}") from exc

    def write(self, record: ExportRecord) -> None:
        if self._handle is None:
            raise ExportError("exporter is not open")
        try:
            self._writer.writerow(record.to_row())
            self._handle.flush()
        except OSError as exc:
            raise ExportError(f"unable to write csv record for {record.url}: {exc}") from exc
        self.written += 1

    def consume(
        self,
        channel: "queue.Queue[Optional[ExportRecord]]",
        *,
        expected: int,
        cancel: threading.Event | None = None,
    ) -> ExportOutcome:
        """Write records from ``channel`` in arrival order until END_OF_STREAM.

        Returns early, keeping the rows already written, once ``cancel`` is set.
        """
        while True:
            if cancel is not None and cancel.is_set():
                self.logger.warning(
                    "Export cancelled after writing %d of %d records", self.written, expected
                )
                return ExportOutcome(written=self.written, expected=expected, cancelled=True)
            try:
                record = channel.get(timeout=self.poll_interval)
            except queue.Empty:
                continue
            if record is END_OF_STREAM:
                return ExportOutcome(written=self.written, expected=expected)
            self.write(record)
            self.logger.debug("Wrote record %s (%d/%d)", record.url, self.written, expected)

    def close(self) -> None:
        handle, self._handle = self._handle, None
        self._writer = None
        if handle is not None:
            handle.close()

    def __enter__(self) -> "StreamingExporter":
        self.open()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


__all__ = ["CSV_HEADER", "END_OF_STREAM", "ExportOutcome", "StreamingExporter"]
