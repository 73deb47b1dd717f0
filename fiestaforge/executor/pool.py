from __future__ import annotations

import logging
import threading
from typing import Callable, Iterable, Iterator, Protocol

from fiestaforge.config.types import default_workers
from fiestaforge.corpus import Job
from fiestaforge.sink import ResultRow

from .types import RunCancelled

logger = logging.getLogger(__name__)


class RowSink(Protocol):
    def push(self, row: ResultRow) -> None: ...


class JobQueue:
    """Dequeue-on-demand view over the lazy job sequence."""

    def __init__(self, jobs: Iterable[Job]):
        self._jobs: Iterator[Job] = iter(jobs)
        self._lock = threading.Lock()
        self._cancelled = False
        self.dequeued = 0

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def pop(self) -> Job | None:
        with self._lock:
            if self._cancelled:
                return None
            job = next(self._jobs, None)
            if job is not None:
                self.dequeued += 1
            return job

    def cancel(self) -> None:
        with self._lock:
            self._cancelled = True


class Worker:
    def __init__(
        self,
        name: str,
        queue: JobQueue,
        sink: RowSink,
        analyze: Callable[[Job], ResultRow],
        on_fatal: Callable[[BaseException], None],
    ):
        self.name = name
        self.queue = queue
        self.sink = sink
        self.analyze = analyze
        self.on_fatal = on_fatal

    def run(self) -> None:
        while True:
            try:
                job = self.queue.pop()
                if job is None:
                    return
                row = self.analyze(job)
                self.sink.push(row)
            except RunCancelled:
                return
            except Exception as exc:
                self.on_fatal(exc)
                return


class WorkerPool:
    def __init__(self, workers: int | None = None):
        self.workers = default_workers() if workers is None else workers
        if self.workers < 1:
            raise ValueError("worker count must be at least 1")
        self._fatal: BaseException | None = None
        self._lock = threading.Lock()

    def run(
        self,
        queue: JobQueue,
        sink: RowSink,
        analyze: Callable[[Job], ResultRow],
        *,
        on_abort: Callable[[], None] | None = None,
    ) -> None:
        """Process every queued job, returning once all workers are done.

        The first fatal worker error cancels the queue; jobs already running
        are allowed to finish before the error is re-raised here.
        """
        self._fatal = None

        def on_fatal(exc: BaseException) -> None:
            with self._lock:
                if self._fatal is None:
                    self._fatal = exc
                    logger.error("Aborting run: %s", exc)
            queue.cancel()

        threads = []
        for i in range(self.workers):
            worker = Worker(f"worker-{i}", queue, sink, analyze, on_fatal)
            thread = threading.Thread(target=worker.run, name=worker.name)
            thread.start()
            threads.append(thread)

        try:
            for thread in threads:
                thread.join()
        except KeyboardInterrupt:
            queue.cancel()
            if on_abort is not None:
                on_abort()
            for thread in threads:
                thread.join()
            raise

        if self._fatal is not None:
            raise self._fatal
