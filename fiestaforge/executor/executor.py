import dataclasses
import logging
import time
from pathlib import Path
from typing import Iterator

from fiestaforge.classify import DEFAULT_RULES, ExitType, RuleSet, classify
from fiestaforge.config import HarnessConfig
from fiestaforge.corpus import Job, ResolutionError, enumerate_jobs, resolve
from fiestaforge.sink import ResultRow, ResultSink, SinkError

from .pool import JobQueue, WorkerPool
from .supervisor import ProcessSupervisor
from .types import ExecutorError, RunSummary

logger = logging.getLogger(__name__)

INTERNAL_ERROR_RULE = "internal-error"


class Executor:
    def __init__(self, config: HarnessConfig):
        self.config = config
        self.tool = config.require_tool()
        self.rules: RuleSet = DEFAULT_RULES.extended(
            panic=config.rules.panic,
            non_interpreted=config.rules.non_interpreted,
            error=config.rules.error,
        )
        self.supervisor = ProcessSupervisor(config.run.timeout)

    def jobs(self, corpus_root: str | Path) -> Iterator[Job]:
        return enumerate_jobs(
            corpus_root,
            count=self.config.run.jobs,
            skip=self.config.run.skip,
            compiler_prefix=self.config.corpus.compiler_prefix,
        )

    def analyze(self, job: Job) -> ResultRow:
        start = time.monotonic()
        try:
            return self._analyze(job)
        except ExecutorError:
            raise
        except Exception:
            # per-job failures become rows; only ExecutorError ends the run
            logger.exception("%s: internal error while analyzing", job.bytecode_hash)
            return ResultRow(
                bytecode_hash=job.bytecode_hash,
                exit_type=ExitType.TOOL_ERROR,
                elapsed=time.monotonic() - start,
                source_type=job.source_type,
                index=job.index,
                rule=INTERNAL_ERROR_RULE,
            )

    def _analyze(self, job: Job) -> ResultRow:
        resolution_error = None
        try:
            invocation = resolve(job, self.tool)
        except ResolutionError as exc:
            logger.warning("%s", exc)
            invocation = exc.invocation
            resolution_error = str(exc)

        outcome = self.supervisor.run(invocation)
        if resolution_error is not None:
            outcome = dataclasses.replace(outcome, resolution_error=resolution_error)

        verdict = classify(outcome, self.rules)
        logger.info(
            "%s %s %.3fs (%s)",
            job.bytecode_hash,
            verdict.exit_type.value,
            outcome.elapsed,
            verdict.rule,
        )

        return ResultRow(
            bytecode_hash=job.bytecode_hash,
            exit_type=verdict.exit_type,
            elapsed=outcome.elapsed,
            source_type=job.source_type,
            index=job.index,
            rule=verdict.rule,
        )

    def run(self, corpus_root: str | Path) -> RunSummary:
        run = self.config.run
        jobs = self.jobs(corpus_root)
        start = time.monotonic()

        queue = JobQueue(jobs)
        pool = WorkerPool(run.workers)

        sink = ResultSink.open(run.output, ordered=run.ordered)
        try:
            pool.run(queue, sink, self.analyze, on_abort=self.supervisor.abort)
        except BaseException as exc:
            # the run failure stays the raised error
            try:
                sink.finalize()
            except SinkError as sink_exc:
                raise exc from sink_exc
            raise
        sink.finalize()

        return RunSummary(
            total=sink.total,
            counts=dict(sink.counts),
            duration_s=time.monotonic() - start,
            output=run.output,
        )
