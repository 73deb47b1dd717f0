from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, auto


class ExitType(str, Enum):
    SUCCESS = "success"
    TIMEOUT = "timeout"
    TOOL_ERROR = "error"
    PROCESS_PANIC = "thread-panic"
    NON_INTERPRETED = "non-interpreted"


class ExitStatus(Enum):
    NORMAL = auto()
    SIGNALED = auto()
    TIMED_OUT = auto()


@dataclass(frozen=True)
class ExecutionOutcome:
    stdout: str
    stderr: str
    status: ExitStatus
    elapsed: float
    code: int | None = None
    signal: int | None = None
    resolution_error: str | None = None

    @property
    def text(self) -> str:
        return f"{self.stdout}\n{self.stderr}"


@dataclass(frozen=True)
class Classification:
    exit_type: ExitType
    rule: str
    detail: str | None = None
