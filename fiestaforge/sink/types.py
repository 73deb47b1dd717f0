from dataclasses import dataclass

from fiestaforge.classify import ExitType
from fiestaforge.corpus import SourceType

HEADER = ("bytecode_hash", "exit_type", "elapsed_seconds", "source_type")


@dataclass(frozen=True)
class ResultRow:
    bytecode_hash: str
    exit_type: ExitType
    elapsed: float
    source_type: SourceType
    index: int = 0
    rule: str = ""

    def as_record(self) -> tuple[str, str, str, str]:
        return (
            self.bytecode_hash,
            self.exit_type.value,
            f"{self.elapsed:.3f}",
            self.source_type.value,
        )


class SinkError(Exception):
    def __init__(self, *args: object) -> None:
        super().__init__(*args)


class SinkClosed(SinkError):
    def __init__(self) -> None:
        super().__init__("Result sink is already finalized")
