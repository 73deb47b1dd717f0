from .loader import load_config, load_default_config, parse_command
from .types import (
    ConfigError,
    CorpusConfig,
    HarnessConfig,
    RulesConfig,
    RunConfig,
    ToolConfig,
    UnsupportedConfigFormatError,
)

__all__ = [
    "load_config",
    "load_default_config",
    "parse_command",
    "HarnessConfig",
    "ToolConfig",
    "RunConfig",
    "CorpusConfig",
    "RulesConfig",
    "ConfigError",
    "UnsupportedConfigFormatError",
]
