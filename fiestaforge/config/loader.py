import json
import re
import shlex
import tomllib
from pathlib import Path
from typing import Any, Mapping

import yaml

from .types import (
    ConfigError,
    CorpusConfig,
    HarnessConfig,
    RulesConfig,
    RunConfig,
    ToolConfig,
    UnsupportedConfigFormatError,
)

DEFAULT_CONFIG_NAME = "fiestaforge.yml"


def load_config(path: str | Path) -> HarnessConfig:
    pure_path = Path(path).expanduser().resolve()

    if not pure_path.exists():
        raise ConfigError(f"Config file not found: {pure_path}")

    if not pure_path.is_file():
        raise ConfigError(f"Config path is not a file: {pure_path}")

    fmt = _detect_format(pure_path)
    raw_file = _parse_file(pure_path, fmt)
    return _build_harness_config(raw_file)


def load_default_config(cwd: str | Path | None = None) -> HarnessConfig:
    candidate = Path(cwd or ".") / DEFAULT_CONFIG_NAME
    if candidate.is_file():
        return load_config(candidate)
    return HarnessConfig()


def _detect_format(path: Path) -> str:
    fmt = path.suffix
    match fmt:
        case ".yaml" | ".yml":
            return "yaml"
        case ".toml":
            return "toml"
        case ".json":
            return "json"
        case _:
            raise UnsupportedConfigFormatError(
                f"Non supported file extension: {fmt}\n Expected format: .yml/.yaml, .toml, .json"
            )


def _parse_file(path: Path, fmt: str) -> Mapping[str, Any]:
    match fmt:
        case "yaml":
            return _parse_yaml(path)
        case "toml":
            return _parse_toml(path)
        case "json":
            return _parse_json(path)
        case _:
            raise AssertionError("Unreachable")


def _parse_yaml(path: Path) -> Mapping[str, Any]:
    try:
        raw_file = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise ConfigError(f"{path}: invalid YAML") from exc

    return _expect_mapping(path, "YAML", raw_file)


def _parse_toml(path: Path) -> Mapping[str, Any]:
    try:
        raw_file = tomllib.loads(path.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"{path}: invalid TOML") from exc

    return _expect_mapping(path, "TOML", raw_file)


def _parse_json(path: Path) -> Mapping[str, Any]:
    try:
        raw_file = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ConfigError(f"{path}: invalid JSON") from exc

    return _expect_mapping(path, "JSON", raw_file)


def _expect_mapping(path: Path, fmt: str, raw_file: Any) -> Mapping[str, Any]:
    if not isinstance(raw_file, Mapping):
        raise ConfigError(
            f"{path}: {fmt} parsed succesfully but top-level value is not an object: {type(raw_file)}"
        )

    return raw_file


def _build_harness_config(raw: Mapping[str, Any]) -> HarnessConfig:
    sections = {"tool", "run", "corpus", "rules"}

    for key in raw.keys():
        if key not in sections:
            raise ConfigError(f"Can't process top-level field: {key}")

    config = HarnessConfig()

    if "tool" in raw:
        config.tool = _build_tool_config(_section(raw, "tool"))
    if "run" in raw:
        config.run = _build_run_config(_section(raw, "run"))
    if "corpus" in raw:
        config.corpus = _build_corpus_config(_section(raw, "corpus"))
    if "rules" in raw:
        config.rules = _build_rules_config(_section(raw, "rules"))

    return config


def _section(raw: Mapping[str, Any], name: str) -> Mapping[str, Any]:
    value = raw[name]
    if not isinstance(value, Mapping):
        raise ConfigError(f"'{name}' must be a mapping, got {type(value)}")
    return value


def _check_keys(section: str, fields: Mapping[str, Any], keys: set[str]) -> None:
    for field in fields.keys():
        if field not in keys:
            raise ConfigError(f"{section}: Can't process: {field}")


def parse_command(value: Any, *, where: str = "tool") -> list[str]:
    if isinstance(value, str):
        try:
            command = shlex.split(value)
        except ValueError as exc:
            raise ConfigError(f"{where}: The command can't be split: {exc}") from exc
    elif isinstance(value, list):
        command = []
        for item in value:
            if not isinstance(item, str):
                raise ConfigError(f"{where}: {item} should be a string in the command list")
            command.append(item)
    else:
        raise ConfigError(f"{where}: The command should be a string or a list")

    if len(command) < 1 or len(command[0].strip()) < 1:
        raise ConfigError(f"{where}: Command missing")

    return command


def _build_tool_config(fields: Mapping[str, Any]) -> ToolConfig:
    _check_keys("tool", fields, {"command", "env", "working_dir"})
    env = {}
    working_dir = None

    if not "command" in fields:
        raise ConfigError("tool: missing 'command'")

    command = parse_command(fields["command"])

    if "env" in fields:
        if not isinstance(fields["env"], Mapping):
            raise ConfigError("tool: Env should be a mapping")

        for key, item in fields["env"].items():
            if not isinstance(key, str):
                raise ConfigError(f"tool: {key} should be a string")

            if len(key.strip()) < 1:
                raise ConfigError("tool: A key can't be empty")

            if not isinstance(item, str):
                raise ConfigError(f"tool: {item} should be a string")

            env[key.strip()] = item

    if "working_dir" in fields and fields["working_dir"] is not None:
        if not isinstance(fields["working_dir"], str):
            raise ConfigError("tool: The working_dir should be a string")

        if len(fields["working_dir"].strip()) < 1:
            raise ConfigError("tool: Please provide a string or remove this field")

        working_dir = fields["working_dir"].strip()

    return ToolConfig(command, env, working_dir)


def _non_negative_int(section: str, name: str, value: Any) -> int:
    # bool is an int subclass, reject it explicitly
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigError(f"{section}: '{name}' should be an integer, got {type(value)}")
    if value < 0:
        raise ConfigError(f"{section}: '{name}' can't be negative")
    return value


def _build_run_config(fields: Mapping[str, Any]) -> RunConfig:
    _check_keys("run", fields, {"jobs", "skip", "timeout", "workers", "output", "ordered"})
    run = RunConfig()

    if "jobs" in fields:
        run.jobs = _non_negative_int("run", "jobs", fields["jobs"])

    if "skip" in fields:
        run.skip = _non_negative_int("run", "skip", fields["skip"])

    if "timeout" in fields:
        timeout = fields["timeout"]
        if isinstance(timeout, bool) or not isinstance(timeout, (int, float)):
            raise ConfigError(f"run: 'timeout' should be a number, got {type(timeout)}")
        if timeout < 0:
            raise ConfigError("run: 'timeout' can't be negative")
        run.timeout = float(timeout)

    if "workers" in fields:
        run.workers = _non_negative_int("run", "workers", fields["workers"])
        if run.workers < 1:
            raise ConfigError("run: 'workers' must be at least 1")

    if "output" in fields:
        if not isinstance(fields["output"], str) or len(fields["output"].strip()) < 1:
            raise ConfigError("run: 'output' should be a path or '-'")
        run.output = fields["output"].strip()

    if "ordered" in fields:
        if not isinstance(fields["ordered"], bool):
            raise ConfigError("run: 'ordered' should be a boolean")
        run.ordered = fields["ordered"]

    return run


def _build_corpus_config(fields: Mapping[str, Any]) -> CorpusConfig:
    _check_keys("corpus", fields, {"compiler_prefix"})
    corpus = CorpusConfig()

    if "compiler_prefix" in fields:
        if not isinstance(fields["compiler_prefix"], str):
            raise ConfigError("corpus: 'compiler_prefix' should be a string")
        corpus.compiler_prefix = fields["compiler_prefix"].strip()

    return corpus


def _build_rules_config(fields: Mapping[str, Any]) -> RulesConfig:
    _check_keys("rules", fields, {"panic", "non_interpreted", "error"})
    rules = RulesConfig()

    for name in ("panic", "non_interpreted", "error"):
        if name not in fields:
            continue

        patterns = fields[name]
        if not isinstance(patterns, list):
            raise ConfigError(f"rules: '{name}' should be a list of patterns")

        for pattern in patterns:
            if not isinstance(pattern, str) or len(pattern) < 1:
                raise ConfigError(f"rules: {pattern!r} should be a non-empty string")
            try:
                re.compile(pattern)
            except re.error as exc:
                raise ConfigError(f"rules: invalid pattern {pattern!r}: {exc}") from exc

        setattr(rules, name, list(patterns))

    return rules
