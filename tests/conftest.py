from __future__ import annotations

import json
import sys
from pathlib import Path

import pytest

# Stand-in for the analysis tool. Behaviour is picked by the first
# "@directive" found in the request's sources, e.g. "// @sleep:5".
FAKE_TOOL = r'''
import json
import os
import re
import signal
import subprocess
import sys
import time

request = json.loads(sys.stdin.read())
text = "\n".join(request["sources"].values()) + json.dumps(request["standard_json"])
match = re.search(
    r"@(sleep|crash|panic|noparse|error|exit|echo|grandchild)(?::(\d+(?:\.\d+)?))?", text
)
action, arg = (match.group(1), match.group(2)) if match else ("ok", None)

if action == "sleep":
    time.sleep(float(arg))
    print("analysis ok")
elif action == "crash":
    sys.stdout.write("partial output\n")
    sys.stdout.flush()
    os.kill(os.getpid(), signal.SIGKILL)
elif action == "panic":
    print("thread 'main' panicked at 'index out of bounds', src/context.rs:10:5", file=sys.stderr)
    sys.exit(101)
elif action == "noparse":
    print("Could not parse contract source")
    sys.exit(1)
elif action == "error":
    print("analyzing...\nError: unresolved function call\nError: second failure")
    sys.exit(1)
elif action == "exit":
    sys.exit(int(arg))
elif action == "echo":
    print(json.dumps({
        "argv": sys.argv[1:],
        "entry": request["entry"],
        "remappings": request["remappings"],
        "standard_json": request["standard_json"],
    }))
elif action == "grandchild":
    child = subprocess.Popen([sys.executable, "-c", "import time; time.sleep(60)"])
    with open(os.environ["FAKE_PID_FILE"], "w") as handle:
        handle.write(str(child.pid))
    time.sleep(60)
else:
    print("analysis ok")
'''


class CorpusBuilder:
    def __init__(self, root: Path):
        self.root = root
        self.contracts = root / "organized_contracts"
        self.contracts.mkdir(parents=True)

    def add(
        self,
        bytecode_hash: str,
        *,
        files: dict[str, str] | None = None,
        descriptor: object | None = None,
        contract: str = "Token",
        compiler: str = "v0.8.19+commit.7dd6d404",
        remappings: list[str] | None = None,
        dirname: str | None = None,
    ) -> Path:
        entry = self.contracts / bytecode_hash[:2] / (dirname or bytecode_hash)
        entry.mkdir(parents=True)
        metadata = {
            "ContractName": contract,
            "CompilerVersion": compiler,
            "Runs": 200,
            "OptimizationUsed": True,
            "BytecodeHash": bytecode_hash,
        }
        (entry / "metadata.json").write_text(json.dumps(metadata), encoding="utf-8")

        for name, text in (files or {}).items():
            path = entry / name
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(text, encoding="utf-8")

        if descriptor is not None:
            text = descriptor if isinstance(descriptor, str) else json.dumps(descriptor)
            (entry / "contract.json").write_text(text, encoding="utf-8")

        if remappings is not None:
            (entry / "remappings.txt").write_text("\n".join(remappings) + "\n", encoding="utf-8")

        return entry


@pytest.fixture
def corpus(tmp_path: Path) -> CorpusBuilder:
    return CorpusBuilder(tmp_path / "fiesta")


@pytest.fixture
def fake_tool(tmp_path: Path) -> list[str]:
    script = tmp_path / "fake_tool.py"
    script.write_text(FAKE_TOOL, encoding="utf-8")
    return [sys.executable, str(script)]
