import os
from dataclasses import dataclass, field


def default_workers() -> int:
    return os.cpu_count() or 1


@dataclass
class ToolConfig:
    command: list[str]
    env: dict[str, str]
    working_dir: str | None


@dataclass
class RunConfig:
    jobs: int = 0
    skip: int = 0
    timeout: float = 60.0
    workers: int = field(default_factory=default_workers)
    output: str = "-"
    ordered: bool = False


@dataclass
class CorpusConfig:
    compiler_prefix: str = "v0.8."


@dataclass
class RulesConfig:
    panic: list[str] = field(default_factory=list)
    non_interpreted: list[str] = field(default_factory=list)
    error: list[str] = field(default_factory=list)


@dataclass
class HarnessConfig:
    tool: ToolConfig | None = None
    run: RunConfig = field(default_factory=RunConfig)
    corpus: CorpusConfig = field(default_factory=CorpusConfig)
    rules: RulesConfig = field(default_factory=RulesConfig)

    def require_tool(self) -> ToolConfig:
        if self.tool is None:
            raise ConfigError("No analysis tool configured ('tool.command')")

        return self.tool


class ConfigError(Exception):
    def __init__(self, *args: object) -> None:
        super().__init__(*args)


class UnsupportedConfigFormatError(ConfigError):
    def __init__(self, *args: object) -> None:
        super().__init__(*args)
