from __future__ import annotations

import argparse
import dataclasses
import logging
import sys

from fiestaforge.classify import DEFAULT_RULES, ExitType, RuleSet
from fiestaforge.config import (
    ConfigError,
    HarnessConfig,
    ToolConfig,
    load_config,
    load_default_config,
    parse_command,
)
from fiestaforge.corpus import CorpusError, enumerate_jobs
from fiestaforge.executor import Executor, ExecutorError, RunSummary, SpawnError
from fiestaforge.sink import SinkError

from .args import build_parser


def run_cli(argv: list[str] | None = None) -> int:
    parser = build_parser()
    try:
        args = parser.parse_args(argv)
        _configure_logging(args.verbose)

        match args.command:
            case "run":
                return cmd_run(args)
            case "list":
                return cmd_list(args)
            case "rules":
                return cmd_rules(args)
            case _:
                return 2

    except (ConfigError, CorpusError, ExecutorError, SinkError) as exc:
        print(f"{_stage(exc)}: {exc}", file=sys.stderr)
        return 2

    except KeyboardInterrupt:
        return 130


def main() -> None:
    sys.exit(run_cli())


def cmd_run(args: argparse.Namespace) -> int:
    config = _with_overrides(_load(args), args)
    executor = Executor(config)
    summary = executor.run(args.corpus)
    _print_summary(summary)
    return 0


def cmd_list(args: argparse.Namespace) -> int:
    config = _with_overrides(_load(args), args)
    jobs = enumerate_jobs(
        args.corpus,
        count=config.run.jobs,
        skip=config.run.skip,
        compiler_prefix=config.corpus.compiler_prefix,
    )
    for job in jobs:
        print(f"{job.bytecode_hash} {job.source_type.value} {job.contract_name}".rstrip())
    return 0


def cmd_rules(args: argparse.Namespace) -> int:
    rules = _rules(_load(args))
    print(f"rules v{rules.version}")
    for group, group_rules in rules.groups():
        for rule in group_rules:
            print(f"{group} {rule.name} {rule.pattern.pattern}")
    return 0


def _load(args: argparse.Namespace) -> HarnessConfig:
    if args.config is None:
        return load_default_config()
    return load_config(args.config)


def _rules(config: HarnessConfig) -> RuleSet:
    return DEFAULT_RULES.extended(
        panic=config.rules.panic,
        non_interpreted=config.rules.non_interpreted,
        error=config.rules.error,
    )


def _with_overrides(config: HarnessConfig, args: argparse.Namespace) -> HarnessConfig:
    run = config.run
    changes = {}

    if args.count is not None:
        if args.count < 0:
            raise ConfigError("--count can't be negative")
        changes["jobs"] = args.count

    if args.skip is not None:
        if args.skip < 0:
            raise ConfigError("--skip can't be negative")
        changes["skip"] = args.skip

    if getattr(args, "timeout", None) is not None:
        if args.timeout < 0:
            raise ConfigError("--timeout can't be negative")
        changes["timeout"] = args.timeout

    if getattr(args, "workers", None) is not None:
        if args.workers < 1:
            raise ConfigError("--workers must be at least 1")
        changes["workers"] = args.workers

    if getattr(args, "output", None) is not None:
        changes["output"] = args.output

    if getattr(args, "ordered", None) is not None:
        changes["ordered"] = args.ordered

    config = dataclasses.replace(config, run=dataclasses.replace(run, **changes))

    if getattr(args, "tool", None) is not None:
        command = parse_command(args.tool, where="--tool")
        base = config.tool or ToolConfig(command, {}, None)
        config = dataclasses.replace(config, tool=dataclasses.replace(base, command=command))

    return config


def _configure_logging(verbose: int) -> None:
    level = logging.WARNING
    if verbose == 1:
        level = logging.INFO
    elif verbose > 1:
        level = logging.DEBUG

    logging.basicConfig(
        stream=sys.stderr,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logging.getLogger("fiestaforge").setLevel(level)


def _stage(exc: Exception) -> str:
    match exc:
        case ConfigError():
            return "config"
        case CorpusError():
            return "corpus"
        case SpawnError():
            return "spawn"
        case SinkError():
            return "output"
        case _:
            return "run"


def _print_summary(summary: RunSummary) -> None:
    # keep stdout clean when it carries the CSV rows
    stream = sys.stderr if summary.output == "-" else sys.stdout
    for exit_type in ExitType:
        print(f"{exit_type.value:<16} {summary.count(exit_type)}", file=stream)
    print(
        f"Analyzed {summary.total} contracts in {summary.duration_s:.1f}s, "
        f"{summary.count(ExitType.SUCCESS)} succeeded",
        file=stream,
    )
