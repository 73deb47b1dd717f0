from .executor import Executor
from .pool import JobQueue, Worker, WorkerPool
from .supervisor import ProcessSupervisor
from .types import ExecutorError, RunCancelled, RunSummary, SpawnError

__all__ = [
    "Executor",
    "JobQueue",
    "Worker",
    "WorkerPool",
    "ProcessSupervisor",
    "RunSummary",
    "ExecutorError",
    "SpawnError",
    "RunCancelled",
]
