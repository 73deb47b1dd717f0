from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path


class SourceType(str, Enum):
    SINGLE_FILE = "single-file"
    MULTI_FILE = "multi-file"
    STANDARD_JSON = "solc-standard-json"


@dataclass(frozen=True)
class SourceFile:
    name: str
    text: str


@dataclass(frozen=True)
class Remapping:
    prefix: str
    target: str
    context: str = ""

    @classmethod
    def parse(cls, line: str) -> Remapping:
        """Parse solc's ``[context:]prefix=target`` form."""
        head, sep, target = line.strip().partition("=")
        if not sep or not head or not target:
            raise ValueError(f"Invalid remapping: {line!r}")

        context, colon, prefix = head.rpartition(":")
        if not colon:
            context, prefix = "", head
        if not prefix:
            raise ValueError(f"Invalid remapping: {line!r}")

        return cls(prefix=prefix, target=target, context=context)

    def render(self) -> str:
        if self.context:
            return f"{self.context}:{self.prefix}={self.target}"
        return f"{self.prefix}={self.target}"


@dataclass(frozen=True)
class Job:
    index: int
    bytecode_hash: str
    contract_name: str
    compiler_version: str
    root: Path
    source_type: SourceType
    sources: tuple[SourceFile, ...] = ()
    descriptor: str | None = None
    entry: str | None = None
    remappings: tuple[Remapping, ...] = ()


class CorpusError(Exception):
    def __init__(self, *args: object) -> None:
        super().__init__(*args)


class CorpusUnreadable(CorpusError):
    def __init__(self, root: Path | str, reason: str):
        super().__init__(f"Corpus unreadable at {root}: {reason}")
        self.root = root
