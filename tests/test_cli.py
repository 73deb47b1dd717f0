from __future__ import annotations

import json
import shlex
from pathlib import Path

import pytest

from fiestaforge.cli import run_cli

A = "a1" * 32
B = "b2" * 32


def _write_json_config(path: Path, config: dict) -> Path:
    path.write_text(json.dumps(config), encoding="utf-8")
    return path


def _populate(corpus) -> None:
    corpus.add(A, files={"main.sol": "contract Token {}"})
    corpus.add(B, contract="Vault", files={"Vault.sol": "// @error\ncontract Vault {}", "I.sol": ""})


def test_run_writes_results_and_summary(
    corpus, fake_tool, tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    _populate(corpus)
    cfg = _write_json_config(
        tmp_path / "fiestaforge.json",
        {"tool": {"command": fake_tool}, "run": {"timeout": 20, "workers": 2}},
    )
    out = tmp_path / "results.csv"

    code = run_cli(["--config", str(cfg), "run", str(corpus.root), "-o", str(out)])
    captured = capsys.readouterr()

    assert code == 0
    lines = out.read_text(encoding="utf-8").splitlines()
    assert lines[0] == "bytecode_hash,exit_type,elapsed_seconds,source_type"
    assert sorted(line.split(",")[0] for line in lines[1:]) == [A, B]
    assert "Analyzed 2 contracts" in captured.out
    assert "1 succeeded" in captured.out


def test_run_to_stdout_keeps_summary_on_stderr(
    corpus, fake_tool, capsys: pytest.CaptureFixture[str]
) -> None:
    _populate(corpus)

    code = run_cli(
        ["run", str(corpus.root), "--tool", shlex.join(fake_tool), "-j", "1", "--ordered"]
    )
    captured = capsys.readouterr()

    assert code == 0
    rows = captured.out.splitlines()
    assert rows[0].startswith("bytecode_hash")
    assert [row.split(",")[:2] for row in rows[1:]] == [[A, "success"], [B, "error"]]
    assert "Analyzed 2 contracts" in captured.err


def test_count_flag_limits_run(
    corpus, fake_tool, capsys: pytest.CaptureFixture[str]
) -> None:
    _populate(corpus)

    code = run_cli(["run", str(corpus.root), "--tool", shlex.join(fake_tool), "-n", "1"])
    rows = capsys.readouterr().out.splitlines()

    assert code == 0
    assert len(rows) == 2
    assert rows[1].startswith(A)


def test_list_prints_jobs(corpus, capsys: pytest.CaptureFixture[str]) -> None:
    _populate(corpus)

    code = run_cli(["list", str(corpus.root)])
    out = capsys.readouterr().out.splitlines()

    assert code == 0
    assert out == [f"{A} single-file Token", f"{B} multi-file Vault"]


def test_list_honours_skip(corpus, capsys: pytest.CaptureFixture[str]) -> None:
    _populate(corpus)

    code = run_cli(["list", str(corpus.root), "-s", "1"])
    out = capsys.readouterr().out.splitlines()

    assert code == 0
    assert out == [f"{B} multi-file Vault"]


def test_rules_prints_table(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    cfg = _write_json_config(tmp_path / "cfg.json", {"rules": {"panic": ["SIGILL"]}})

    code = run_cli(["--config", str(cfg), "rules"])
    out = capsys.readouterr().out.splitlines()

    assert code == 0
    assert out[0] == "rules v1+custom"
    assert "panic rust-panic thread '[^']*' panicked at" in out
    assert "panic custom-panic-1 SIGILL" in out


def test_run_without_tool_returns_2(corpus, capsys: pytest.CaptureFixture[str]) -> None:
    _populate(corpus)

    code = run_cli(["run", str(corpus.root)])
    captured = capsys.readouterr()

    assert code == 2
    assert captured.err.startswith("config:")


def test_missing_corpus_returns_2(
    tmp_path: Path, fake_tool, capsys: pytest.CaptureFixture[str]
) -> None:
    code = run_cli(["run", str(tmp_path / "nope"), "--tool", shlex.join(fake_tool)])
    captured = capsys.readouterr()

    assert code == 2
    assert captured.err.startswith("corpus:")


def test_missing_tool_binary_returns_2(
    corpus, tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    _populate(corpus)
    missing = tmp_path / "no-analyzer"

    code = run_cli(["run", str(corpus.root), "--tool", str(missing), "-o", str(tmp_path / "r.csv")])
    captured = capsys.readouterr()

    assert code == 2
    assert captured.err.startswith("spawn:")


def test_invalid_config_path_returns_2(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    missing = tmp_path / "missing.json"

    code = run_cli(["--config", str(missing), "rules"])
    captured = capsys.readouterr()

    assert code == 2
    assert captured.err != ""


@pytest.mark.parametrize("flag", [["-j", "0"], ["-t", "-1"], ["-n", "-3"]])
def test_invalid_overrides_return_2(
    corpus, fake_tool, capsys: pytest.CaptureFixture[str], flag: list[str]
) -> None:
    code = run_cli(["run", str(corpus.root), "--tool", shlex.join(fake_tool), *flag])
    captured = capsys.readouterr()

    assert code == 2
    assert captured.err.startswith("config:")
