"""Resolve import remappings and inline them into the tool request.

The analysis tool gets one JSON request on stdin per job. Remappings travel
inside that request (and inside ``settings.remappings`` of a standard-json
descriptor) rather than as command-line flags.
"""

from __future__ import annotations

import json
import logging
import os
import re
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Iterable, Mapping

from fiestaforge.config import ToolConfig

from .types import Job, Remapping, SourceType

logger = logging.getLogger(__name__)

_PLACEHOLDER = re.compile(r"\{(root|hash|contract|entry)\}")


@dataclass(frozen=True)
class Invocation:
    argv: tuple[str, ...]
    stdin: str
    cwd: str | None = None
    env: Mapping[str, str] | None = None


class ResolutionError(Exception):
    """The job could not be fully resolved; ``invocation`` is still usable."""

    def __init__(self, message: str, invocation: Invocation):
        super().__init__(message)
        self.invocation = invocation


class UnresolvedImport(ResolutionError):
    def __init__(
        self, bytecode_hash: str, missing: tuple[Remapping, ...], invocation: Invocation
    ):
        targets = ", ".join(remapping.render() for remapping in missing)
        super().__init__(f"{bytecode_hash}: unresolved remapping target(s): {targets}", invocation)
        self.missing = missing


class InvalidDescriptor(ResolutionError):
    def __init__(self, bytecode_hash: str, reason: str, invocation: Invocation):
        super().__init__(f"{bytecode_hash}: invalid contract.json: {reason}", invocation)


def resolve(job: Job, tool: ToolConfig) -> Invocation:
    candidates = list(job.remappings)
    descriptor: dict[str, Any] | None = None
    descriptor_error: str | None = None

    if job.source_type is SourceType.STANDARD_JSON:
        try:
            descriptor = _decode_descriptor(job.descriptor or "")
        except (ValueError, RecursionError) as exc:
            descriptor_error = str(exc)
        else:
            candidates.extend(_descriptor_remappings(job, descriptor))

    units = _source_units(job, descriptor)
    resolved: list[Remapping] = []
    missing: list[Remapping] = []
    for remapping in _dedupe(candidates):
        target = _resolve_target(job.root, remapping, units)
        if target is None:
            missing.append(remapping)
        else:
            resolved.append(target)

    standard_json: Any = None
    if descriptor is not None:
        standard_json = _inline(descriptor, resolved)
    elif descriptor_error is not None:
        standard_json = job.descriptor

    invocation = build_invocation(job, tool, resolved, standard_json)

    if descriptor_error is not None:
        raise InvalidDescriptor(job.bytecode_hash, descriptor_error, invocation)
    if missing:
        raise UnresolvedImport(job.bytecode_hash, tuple(missing), invocation)

    return invocation


def build_invocation(
    job: Job,
    tool: ToolConfig,
    remappings: Iterable[Remapping],
    standard_json: Any = None,
) -> Invocation:
    fields = {
        "root": str(job.root),
        "hash": job.bytecode_hash,
        "contract": job.contract_name,
        "entry": job.entry or "",
    }
    argv = tuple(_PLACEHOLDER.sub(lambda m: fields[m.group(1)], arg) for arg in tool.command)

    request = {
        "bytecode_hash": job.bytecode_hash,
        "contract_name": job.contract_name,
        "compiler_version": job.compiler_version,
        "source_type": job.source_type.value,
        "root": str(job.root),
        "entry": job.entry,
        "sources": {source.name: source.text for source in job.sources},
        "remappings": [remapping.render() for remapping in remappings],
        "standard_json": standard_json,
    }

    return Invocation(
        argv=argv,
        stdin=json.dumps(request),
        cwd=tool.working_dir,
        env={**os.environ, **tool.env},
    )


def _decode_descriptor(text: str) -> dict[str, Any]:
    descriptor = json.loads(text)
    if not isinstance(descriptor, dict):
        raise ValueError(f"top-level value is not an object: {type(descriptor).__name__}")
    return descriptor


def _descriptor_remappings(job: Job, descriptor: Mapping[str, Any]) -> list[Remapping]:
    settings = descriptor.get("settings")
    if not isinstance(settings, Mapping):
        return []

    raw = settings.get("remappings")
    if not isinstance(raw, list):
        if raw is not None:
            logger.warning("%s: ignoring non-list settings.remappings", job.bytecode_hash)
        return []

    remappings = []
    for item in raw:
        try:
            remappings.append(Remapping.parse(str(item)))
        except ValueError:
            logger.warning("%s: ignoring malformed remapping %r", job.bytecode_hash, item)
    return remappings


def _source_units(job: Job, descriptor: Mapping[str, Any] | None) -> set[str]:
    units = {source.name for source in job.sources}
    if descriptor is not None and isinstance(descriptor.get("sources"), Mapping):
        units.update(descriptor["sources"].keys())
    return units


def _dedupe(remappings: Iterable[Remapping]) -> list[Remapping]:
    seen: set[Remapping] = set()
    out = []
    for remapping in remappings:
        if remapping in seen:
            continue
        seen.add(remapping)
        out.append(remapping)
    return out


def _resolve_target(root: Path, remapping: Remapping, units: set[str]) -> Remapping | None:
    target = remapping.target
    path = Path(target)

    if path.is_absolute():
        return remapping if path.exists() else None

    candidate = root / target
    if candidate.exists():
        absolute = candidate.resolve().as_posix()
        if target.endswith("/") and not absolute.endswith("/"):
            absolute += "/"
        return replace(remapping, target=absolute)

    # virtual source-unit names inside the descriptor
    if any(unit.startswith(target) for unit in units):
        return remapping

    return None


def _inline(descriptor: Mapping[str, Any], remappings: list[Remapping]) -> dict[str, Any]:
    inlined = dict(descriptor)
    current = inlined.get("settings")
    settings = dict(current) if isinstance(current, Mapping) else {}
    settings["remappings"] = [remapping.render() for remapping in remappings]
    inlined["settings"] = settings
    return inlined
