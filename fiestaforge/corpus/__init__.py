from .enumerator import enumerate_jobs
from .remappings import (
    InvalidDescriptor,
    Invocation,
    ResolutionError,
    UnresolvedImport,
    build_invocation,
    resolve,
)
from .types import (
    CorpusError,
    CorpusUnreadable,
    Job,
    Remapping,
    SourceFile,
    SourceType,
)

__all__ = [
    "enumerate_jobs",
    "resolve",
    "build_invocation",
    "Invocation",
    "ResolutionError",
    "UnresolvedImport",
    "InvalidDescriptor",
    "Job",
    "Remapping",
    "SourceFile",
    "SourceType",
    "CorpusError",
    "CorpusUnreadable",
]
