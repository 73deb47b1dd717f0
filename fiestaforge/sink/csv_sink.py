from __future__ import annotations

import csv
import queue
import sys
import threading
from collections import Counter
from pathlib import Path
from typing import TextIO

from fiestaforge.classify import ExitType

from .types import HEADER, ResultRow, SinkClosed, SinkError

_STOP = object()


class ResultSink:
    """CSV destination shared by all workers.

    Workers only ever put rows on a channel. One collector thread owns the
    stream and writes them, so rows are never interleaved. With ``ordered``
    the rows are held back and written sorted by enumeration index when the
    sink is finalized.
    """

    def __init__(self, stream: TextIO, *, ordered: bool = False, close_stream: bool = False):
        self._stream = stream
        self._writer = csv.writer(stream, lineterminator="\n")
        self._ordered = ordered
        self._close_stream = close_stream
        self._channel: queue.Queue[object] = queue.Queue()
        self._buffer: list[ResultRow] = []
        self._lock = threading.Lock()
        self._closed = False
        self._error: Exception | None = None
        self.counts: Counter[ExitType] = Counter()

        self._writer.writerow(HEADER)
        self._stream.flush()

        self._collector = threading.Thread(target=self._collect, name="result-sink", daemon=True)
        self._collector.start()

    @classmethod
    def open(cls, destination: str | Path, *, ordered: bool = False) -> ResultSink:
        if str(destination) == "-":
            return cls(sys.stdout, ordered=ordered)

        path = Path(destination).expanduser()
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            stream = path.open("w", encoding="utf-8", newline="")
        except OSError as exc:
            raise SinkError(f"Cannot open {path}: {exc.strerror or exc}") from exc
        return cls(stream, ordered=ordered, close_stream=True)

    @property
    def total(self) -> int:
        return sum(self.counts.values())

    def push(self, row: ResultRow) -> None:
        with self._lock:
            if self._closed:
                raise SinkClosed()
            self._channel.put(row)

    def finalize(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._channel.put(_STOP)

        self._collector.join()

        try:
            if self._error is None and self._ordered:
                for row in sorted(self._buffer, key=lambda r: r.index):
                    self._writer.writerow(row.as_record())
            self._stream.flush()
        finally:
            if self._close_stream:
                self._stream.close()

        if self._error is not None:
            raise SinkError(f"Failed writing results: {self._error}") from self._error

    def _collect(self) -> None:
        while True:
            row = self._channel.get()
            if row is _STOP:
                return
            if self._error is not None:
                continue

            if not isinstance(row, ResultRow):
                continue
            try:
                if self._ordered:
                    self._buffer.append(row)
                else:
                    self._writer.writerow(row.as_record())
                    self._stream.flush()
            except (OSError, csv.Error) as exc:
                self._error = exc
                continue

            self.counts[row.exit_type] += 1

    def __enter__(self) -> ResultSink:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.finalize()
