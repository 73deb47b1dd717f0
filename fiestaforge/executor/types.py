from dataclasses import dataclass, field

from fiestaforge.classify import ExitType


@dataclass(frozen=True)
class RunSummary:
    total: int
    counts: dict[ExitType, int] = field(default_factory=dict)
    duration_s: float = 0.0
    output: str = "-"

    def count(self, exit_type: ExitType) -> int:
        return self.counts.get(exit_type, 0)


class ExecutorError(Exception):
    def __init__(self, *args: object) -> None:
        super().__init__(*args)


class SpawnError(ExecutorError):
    def __init__(self, program: str, cause: OSError):
        super().__init__(f"Cannot start analysis tool '{program}': {cause.strerror or cause}")
        self.program = program


class RunCancelled(ExecutorError):
    def __init__(self) -> None:
        super().__init__("Run cancelled")
