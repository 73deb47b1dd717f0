from __future__ import annotations

import argparse


def _add_selection(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "corpus",
        help="Path to the corpus root (the directory holding organized_contracts)",
    )
    parser.add_argument(
        "-n",
        "--count",
        type=int,
        default=None,
        help="Number of contracts to analyze, 0 for all",
    )
    parser.add_argument(
        "-s",
        "--skip",
        type=int,
        default=None,
        help="Number of contracts to skip before starting",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="fiestaforge")

    parser.add_argument(
        "--config",
        default=None,
        help="Path to config file (default: ./fiestaforge.yml when present)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Log per-job outcomes (-v) or matched rules (-vv) to stderr",
    )

    subparsers = parser.add_subparsers(
        dest="command",
        required=True,
    )

    # run
    run = subparsers.add_parser("run", help="Analyze the corpus")
    _add_selection(run)
    run.add_argument(
        "-t",
        "--timeout",
        type=float,
        default=None,
        help="Per-contract timeout in seconds, 0 disables it",
    )
    run.add_argument(
        "-j",
        "--workers",
        type=int,
        default=None,
        help="Number of concurrent analyses (default: number of cores)",
    )
    run.add_argument(
        "-o",
        "--output",
        default=None,
        help="Where to write the results CSV, '-' for stdout",
    )
    run.add_argument(
        "--ordered",
        action="store_true",
        default=None,
        help="Write rows in corpus order instead of completion order",
    )
    run.add_argument(
        "--tool",
        default=None,
        help="Analysis tool command, overrides 'tool.command'",
    )

    # list
    listing = subparsers.add_parser("list", help="List the jobs a run would process")
    _add_selection(listing)

    # rules
    subparsers.add_parser("rules", help="Show the outcome classification rules")

    return parser
