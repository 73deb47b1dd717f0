"""Walks a smart-contract-fiesta style corpus and yields analysis jobs.

Layout::

    <root>/organized_contracts/<shard>/<bytecode hash>/metadata.json
                                                     /main.sol | *.sol | contract.json
                                                     /remappings.txt (optional)

Any directory holding a ``metadata.json`` is a corpus entry. Entries are
visited in sorted path order so repeated runs see the same sequence.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Iterator

from .types import CorpusUnreadable, Job, Remapping, SourceFile, SourceType

logger = logging.getLogger(__name__)

CONTRACTS_DIR = "organized_contracts"
METADATA_NAME = "metadata.json"
DESCRIPTOR_NAME = "contract.json"
REMAPPINGS_NAME = "remappings.txt"


@dataclass(frozen=True)
class _Entry:
    path: Path
    bytecode_hash: str
    contract_name: str
    compiler_version: str
    descriptor: Path | None
    sol_files: tuple[Path, ...]

    @property
    def source_type(self) -> SourceType:
        if self.descriptor is not None:
            return SourceType.STANDARD_JSON
        if len(self.sol_files) == 1:
            return SourceType.SINGLE_FILE
        return SourceType.MULTI_FILE


def enumerate_jobs(
    root: str | Path,
    *,
    count: int = 0,
    skip: int = 0,
    compiler_prefix: str = "v0.8.",
) -> Iterator[Job]:
    """Return a lazy iterator over the corpus jobs.

    ``count`` of 0 means every job. ``skip`` drops that many jobs from the
    front of the (filtered, deduplicated) sequence. The corpus root is
    checked right away so an unreadable corpus fails before any job runs.
    """
    if count < 0 or skip < 0:
        raise ValueError("count and skip must be non-negative")

    base = Path(root).expanduser()
    contracts_dir = base / CONTRACTS_DIR
    if not contracts_dir.is_dir():
        contracts_dir = base

    try:
        top = sorted(contracts_dir.iterdir())
    except OSError as exc:
        raise CorpusUnreadable(contracts_dir, exc.strerror or str(exc)) from exc

    return _iter_jobs(top, count=count, skip=skip, compiler_prefix=compiler_prefix)


def _iter_jobs(
    top: list[Path], *, count: int, skip: int, compiler_prefix: str
) -> Iterator[Job]:
    seen: set[str] = set()
    position = 0
    emitted = 0

    for entry_dir in _iter_entry_dirs(top):
        entry = _scan_entry(entry_dir, compiler_prefix)
        if entry is None:
            continue

        if entry.bytecode_hash in seen:
            logger.warning(
                "Duplicate bytecode hash %s at %s, keeping first occurrence",
                entry.bytecode_hash,
                entry_dir,
            )
            continue

        job = _build_job(entry, position)
        if job is None:
            continue

        seen.add(entry.bytecode_hash)
        position += 1
        if job.index < skip:
            continue

        yield job
        emitted += 1
        if count and emitted >= count:
            return


def _iter_entry_dirs(paths: Iterable[Path]) -> Iterator[Path]:
    for path in paths:
        if not path.is_dir():
            continue

        if (path / METADATA_NAME).is_file():
            yield path
            continue

        try:
            children = sorted(path.iterdir())
        except OSError as exc:
            logger.warning("Skipping unreadable directory %s: %s", path, exc)
            continue

        yield from _iter_entry_dirs(children)


def compiler_supported(version: str, prefix: str) -> bool:
    return version.startswith(prefix) and "vyper" not in version.lower()


def _scan_entry(entry_dir: Path, compiler_prefix: str) -> _Entry | None:
    try:
        metadata = json.loads((entry_dir / METADATA_NAME).read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
        logger.warning("Skipping %s: unreadable metadata (%s)", entry_dir, exc)
        return None

    if not isinstance(metadata, dict):
        logger.warning("Skipping %s: metadata is not an object", entry_dir)
        return None

    version = str(metadata.get("CompilerVersion", ""))
    if not compiler_supported(version, compiler_prefix):
        logger.debug("Skipping %s: unsupported compiler %r", entry_dir, version)
        return None

    bytecode_hash = str(metadata.get("BytecodeHash") or entry_dir.name)

    try:
        descriptors = sorted(p for p in entry_dir.rglob(DESCRIPTOR_NAME) if p.is_file())
        sol_files = tuple(sorted(p for p in entry_dir.rglob("*.sol") if p.is_file()))
    except OSError as exc:
        logger.warning("Skipping %s: %s", entry_dir, exc)
        return None

    if not descriptors and not sol_files:
        logger.warning("Skipping %s: no Solidity sources or contract.json found", entry_dir)
        return None

    return _Entry(
        path=entry_dir,
        bytecode_hash=bytecode_hash,
        contract_name=str(metadata.get("ContractName", "")),
        compiler_version=version,
        descriptor=descriptors[0] if descriptors else None,
        sol_files=sol_files,
    )


def _build_job(entry: _Entry, index: int) -> Job | None:
    try:
        remappings = read_remappings(entry.path / REMAPPINGS_NAME)
        if entry.descriptor is not None:
            text = entry.descriptor.read_text(encoding="utf-8", errors="replace")
            return Job(
                index=index,
                bytecode_hash=entry.bytecode_hash,
                contract_name=entry.contract_name,
                compiler_version=entry.compiler_version,
                root=entry.path.resolve(),
                source_type=SourceType.STANDARD_JSON,
                descriptor=unwrap_descriptor(text),
                remappings=remappings,
            )

        sources = tuple(
            SourceFile(
                path.relative_to(entry.path).as_posix(),
                path.read_text(encoding="utf-8", errors="replace"),
            )
            for path in entry.sol_files
        )
    except (OSError, UnicodeDecodeError) as exc:
        logger.warning("Skipping %s: %s", entry.path, exc)
        return None

    return Job(
        index=index,
        bytecode_hash=entry.bytecode_hash,
        contract_name=entry.contract_name,
        compiler_version=entry.compiler_version,
        root=entry.path.resolve(),
        source_type=entry.source_type,
        sources=sources,
        entry=select_entry(sources, entry.contract_name),
        remappings=remappings,
    )


def unwrap_descriptor(text: str) -> str:
    # Etherscan wraps standard-json inputs in an extra pair of braces
    stripped = text.strip()
    if stripped.startswith("{{") and stripped.endswith("}}"):
        return stripped[1:-1]
    return text


def select_entry(sources: tuple[SourceFile, ...], contract_name: str) -> str | None:
    if len(sources) == 1:
        return sources[0].name
    if not contract_name:
        return None

    declaration = re.compile(rf"\bcontract\s+{re.escape(contract_name)}\b")
    for source in sources:
        if declaration.search(source.text):
            return source.name
    return None


def read_remappings(path: Path) -> tuple[Remapping, ...]:
    if not path.is_file():
        return ()

    remappings = []
    for lineno, line in enumerate(path.read_text(encoding="utf-8").splitlines(), 1):
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        try:
            remappings.append(Remapping.parse(line))
        except ValueError:
            logger.warning("%s:%d: ignoring malformed remapping %r", path, lineno, line)

    return tuple(remappings)
