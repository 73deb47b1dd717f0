from __future__ import annotations

import contextlib
import logging
import os
import signal
import subprocess
import threading
import time
from typing import Iterator

from fiestaforge.classify import ExecutionOutcome, ExitStatus
from fiestaforge.corpus import Invocation

from .types import RunCancelled, SpawnError

logger = logging.getLogger(__name__)

# How long to keep reading pipes after a timeout kill
DRAIN_GRACE_S = 5.0


class ProcessSupervisor:
    """Runs one analysis tool process per invocation under a wall-clock timeout.

    Each child gets its own session, so a timeout kill takes out the whole
    process group and not just the direct child. ``timeout`` of 0 disables
    the limit.
    """

    def __init__(self, timeout: float = 0.0):
        if timeout < 0:
            raise ValueError("timeout can't be negative")
        self.timeout = timeout
        self._live: set[subprocess.Popen[str]] = set()
        self._lock = threading.Lock()
        self._aborted = False

    def run(self, invocation: Invocation) -> ExecutionOutcome:
        start = time.monotonic()

        with self._child(invocation) as proc:
            try:
                stdout, stderr = proc.communicate(invocation.stdin, timeout=self.timeout or None)
            except subprocess.TimeoutExpired:
                _kill_group(proc)
                stdout, stderr = _drain(proc)
                if self._aborted:
                    raise RunCancelled()
                logger.info("pid %d timed out after %.1fs", proc.pid, self.timeout)
                return ExecutionOutcome(
                    stdout, stderr, ExitStatus.TIMED_OUT, elapsed=self.timeout
                )

        elapsed = time.monotonic() - start
        if self._aborted:
            raise RunCancelled()

        code = proc.returncode
        if code < 0:
            logger.info("pid %d terminated by signal %d", proc.pid, -code)
            return ExecutionOutcome(
                stdout, stderr, ExitStatus.SIGNALED, elapsed=elapsed, signal=-code
            )

        return ExecutionOutcome(stdout, stderr, ExitStatus.NORMAL, elapsed=elapsed, code=code)

    def abort(self) -> None:
        """Kill every live child; running and later ``run`` calls raise RunCancelled."""
        with self._lock:
            self._aborted = True
            live = list(self._live)

        for proc in live:
            _kill_group(proc)

    @contextlib.contextmanager
    def _child(self, invocation: Invocation) -> Iterator[subprocess.Popen[str]]:
        if self._aborted:
            raise RunCancelled()

        try:
            proc = subprocess.Popen(
                list(invocation.argv),
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                cwd=invocation.cwd,
                env=dict(invocation.env) if invocation.env is not None else None,
                text=True,
                encoding="utf-8",
                errors="replace",
                start_new_session=True,
            )
        except OSError as exc:
            raise SpawnError(invocation.argv[0], exc) from exc

        logger.debug("spawned pid %d: %s", proc.pid, " ".join(invocation.argv))
        with self._lock:
            self._live.add(proc)
            aborted = self._aborted
        if aborted:
            _kill_group(proc)

        try:
            # Popen.__exit__ closes every pipe and reaps the child
            with proc:
                try:
                    yield proc
                finally:
                    _kill_group(proc)
        finally:
            with self._lock:
                self._live.discard(proc)


def _kill_group(proc: subprocess.Popen[str]) -> None:
    # Once reaped the pid may be reused, so only signal live children
    if proc.returncode is not None:
        return

    if hasattr(os, "killpg"):
        with contextlib.suppress(ProcessLookupError, PermissionError):
            os.killpg(proc.pid, signal.SIGKILL)

    if proc.poll() is None:
        with contextlib.suppress(OSError):
            proc.kill()


def _drain(proc: subprocess.Popen[str]) -> tuple[str, str]:
    try:
        stdout, stderr = proc.communicate(timeout=DRAIN_GRACE_S)
    except subprocess.TimeoutExpired:
        # a descendant outside the group still holds the pipes
        return "", ""
    return stdout or "", stderr or ""
