import logging

from .rules import DEFAULT_RULES, RuleSet, first_match
from .types import Classification, ExecutionOutcome, ExitStatus, ExitType

logger = logging.getLogger(__name__)


def classify(outcome: ExecutionOutcome, rules: RuleSet = DEFAULT_RULES) -> Classification:
    """Map one execution outcome to exactly one exit type.

    Checks run in priority order and the first hit wins: timeout, signal or
    panic text, non-interpreted marker, error marker, resolver failure,
    clean zero exit. Anything left over is a tool error.
    """
    verdict = _decide(outcome, rules)
    logger.debug(
        "rules v%s matched %s -> %s%s",
        rules.version,
        verdict.rule,
        verdict.exit_type.value,
        f" ({verdict.detail})" if verdict.detail else "",
    )
    return verdict


def _decide(outcome: ExecutionOutcome, rules: RuleSet) -> Classification:
    if outcome.status is ExitStatus.TIMED_OUT:
        return Classification(ExitType.TIMEOUT, "timed-out")

    if outcome.status is ExitStatus.SIGNALED:
        return Classification(ExitType.PROCESS_PANIC, "signal", f"signal {outcome.signal}")

    text = outcome.text

    hit = first_match(rules.panic, text)
    if hit is not None:
        return Classification(ExitType.PROCESS_PANIC, hit[0].name, hit[1])

    hit = first_match(rules.non_interpreted, text)
    if hit is not None:
        return Classification(ExitType.NON_INTERPRETED, hit[0].name, hit[1])

    hit = first_match(rules.error, text)
    if hit is not None:
        return Classification(ExitType.TOOL_ERROR, hit[0].name, hit[1])

    if outcome.resolution_error is not None:
        return Classification(ExitType.TOOL_ERROR, "unresolved-import", outcome.resolution_error)

    if outcome.code == 0:
        return Classification(ExitType.SUCCESS, "clean-exit")

    return Classification(ExitType.TOOL_ERROR, "fallback", f"exit code {outcome.code}")
