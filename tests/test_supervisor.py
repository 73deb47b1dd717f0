from __future__ import annotations

import os
import subprocess
import sys
import threading
import time
from pathlib import Path

import pytest

from fiestaforge.classify import ExitStatus
from fiestaforge.corpus import Invocation
from fiestaforge.executor import ProcessSupervisor, RunCancelled, SpawnError

posix_only = pytest.mark.skipif(
    sys.platform == "win32", reason="needs POSIX signals and process groups"
)


def _py(code: str, stdin: str = "", env: dict[str, str] | None = None) -> Invocation:
    return Invocation(
        argv=(sys.executable, "-c", code),
        stdin=stdin,
        env={**os.environ, **(env or {})},
    )


def _alive(pid: int) -> bool:
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    return True


def test_normal_exit_captures_output_and_code() -> None:
    sup = ProcessSupervisor(timeout=10)

    outcome = sup.run(
        _py(
            "import sys; data = sys.stdin.read(); print(data.upper()); "
            "print('warn', file=sys.stderr); raise SystemExit(3)",
            stdin="hello",
        )
    )

    assert outcome.status is ExitStatus.NORMAL
    assert outcome.code == 3
    assert outcome.stdout.strip() == "HELLO"
    assert outcome.stderr.strip() == "warn"
    assert 0 <= outcome.elapsed < 10


def test_large_stdin_payload_is_delivered() -> None:
    payload = "x" * 2_000_000
    sup = ProcessSupervisor(timeout=30)

    outcome = sup.run(_py("import sys; print(len(sys.stdin.read()))", stdin=payload))

    assert outcome.code == 0
    assert outcome.stdout.strip() == str(len(payload))


def test_child_ignoring_stdin_does_not_break_the_run() -> None:
    sup = ProcessSupervisor(timeout=10)

    outcome = sup.run(_py("print('done')", stdin="y" * 1_000_000))

    assert outcome.status is ExitStatus.NORMAL
    assert outcome.stdout.strip() == "done"


def test_undecodable_output_is_replaced() -> None:
    sup = ProcessSupervisor(timeout=10)

    outcome = sup.run(_py("import sys; sys.stdout.buffer.write(b'ok \\xff\\xfe')"))

    assert outcome.code == 0
    assert outcome.stdout.startswith("ok ")
    assert "�" in outcome.stdout


def test_timeout_kills_and_reports_timeout_duration() -> None:
    sup = ProcessSupervisor(timeout=0.5)

    start = time.monotonic()
    outcome = sup.run(_py("import time; print('started', flush=True); time.sleep(30)"))
    wall = time.monotonic() - start

    assert outcome.status is ExitStatus.TIMED_OUT
    assert outcome.elapsed == 0.5
    assert outcome.code is None
    assert wall < 10
    assert "started" in outcome.stdout


def test_zero_timeout_disables_limit() -> None:
    sup = ProcessSupervisor(timeout=0)

    outcome = sup.run(_py("import time; time.sleep(0.3); print('finished')"))

    assert outcome.status is ExitStatus.NORMAL
    assert outcome.stdout.strip() == "finished"


def test_negative_timeout_rejected() -> None:
    with pytest.raises(ValueError):
        ProcessSupervisor(timeout=-1)


@posix_only
def test_signal_is_reported_with_partial_output() -> None:
    sup = ProcessSupervisor(timeout=10)

    outcome = sup.run(
        _py(
            "import os, signal, sys; print('partial', flush=True); "
            "os.kill(os.getpid(), signal.SIGKILL)"
        )
    )

    assert outcome.status is ExitStatus.SIGNALED
    assert outcome.signal == 9
    assert outcome.code is None
    assert outcome.stdout.strip() == "partial"


@posix_only
def test_timeout_kills_descendants(tmp_path: Path) -> None:
    pid_file = tmp_path / "grandchild.pid"
    code = (
        "import subprocess, sys, time\n"
        "child = subprocess.Popen([sys.executable, '-c', 'import time; time.sleep(60)'])\n"
        f"open(r'{pid_file}', 'w').write(str(child.pid))\n"
        "time.sleep(60)\n"
    )
    sup = ProcessSupervisor(timeout=1.5)

    outcome = sup.run(_py(code))

    assert outcome.status is ExitStatus.TIMED_OUT
    grandchild = int(pid_file.read_text(encoding="utf-8"))
    deadline = time.monotonic() + 5
    while _alive(grandchild) and time.monotonic() < deadline:
        time.sleep(0.05)
    assert not _alive(grandchild)


def test_missing_binary_raises_spawn_error(tmp_path: Path) -> None:
    sup = ProcessSupervisor(timeout=5)
    missing = str(tmp_path / "no-such-analyzer")

    with pytest.raises(SpawnError) as info:
        sup.run(Invocation(argv=(missing, "--stdin"), stdin=""))

    assert info.value.program == missing


def test_missing_working_dir_raises_spawn_error(tmp_path: Path) -> None:
    sup = ProcessSupervisor(timeout=5)
    invocation = Invocation(
        argv=(sys.executable, "-c", "pass"), stdin="", cwd=str(tmp_path / "gone")
    )

    with pytest.raises(SpawnError):
        sup.run(invocation)


def test_abort_cancels_running_and_future_runs() -> None:
    sup = ProcessSupervisor(timeout=0)
    errors: list[BaseException] = []

    def target() -> None:
        try:
            sup.run(_py("import time; time.sleep(30)"))
        except RunCancelled as exc:
            errors.append(exc)

    thread = threading.Thread(target=target)
    thread.start()
    time.sleep(0.5)
    sup.abort()
    thread.join(timeout=10)

    assert not thread.is_alive()
    assert len(errors) == 1
    with pytest.raises(RunCancelled):
        sup.run(_py("pass"))


# -------------------------
# Child cleanup
# -------------------------


class _RecordingPopen(subprocess.Popen):
    spawned: list[subprocess.Popen] = []
    fail_communicate = False

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        _RecordingPopen.spawned.append(self)

    def communicate(self, input=None, timeout=None):
        if _RecordingPopen.fail_communicate:
            raise RuntimeError("reader blew up")
        return super().communicate(input, timeout)


@pytest.fixture
def recording_popen(monkeypatch: pytest.MonkeyPatch) -> type[_RecordingPopen]:
    monkeypatch.setattr(subprocess, "Popen", _RecordingPopen)
    monkeypatch.setattr(_RecordingPopen, "spawned", [])
    monkeypatch.setattr(_RecordingPopen, "fail_communicate", False)
    return _RecordingPopen


def _assert_released(sup: ProcessSupervisor, proc: subprocess.Popen) -> None:
    assert sup._live == set()
    assert proc.returncode is not None
    assert proc.stdin.closed
    assert proc.stdout.closed
    assert proc.stderr.closed
    with pytest.raises(ChildProcessError):
        os.waitpid(proc.pid, os.WNOHANG)


@posix_only
def test_normal_exit_releases_child(recording_popen) -> None:
    sup = ProcessSupervisor(timeout=10)

    sup.run(_py("print('done')"))

    (proc,) = recording_popen.spawned
    _assert_released(sup, proc)


@posix_only
def test_timeout_releases_child(recording_popen) -> None:
    sup = ProcessSupervisor(timeout=0.5)

    outcome = sup.run(_py("import time; time.sleep(30)"))

    assert outcome.status is ExitStatus.TIMED_OUT
    (proc,) = recording_popen.spawned
    _assert_released(sup, proc)


@posix_only
def test_error_after_spawn_releases_child(recording_popen) -> None:
    recording_popen.fail_communicate = True
    sup = ProcessSupervisor(timeout=10)

    with pytest.raises(RuntimeError):
        sup.run(_py("import time; time.sleep(30)"))

    (proc,) = recording_popen.spawned
    _assert_released(sup, proc)
