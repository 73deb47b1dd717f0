from .classifier import classify
from .rules import DEFAULT_RULES, RULES_VERSION, Rule, RuleSet
from .types import Classification, ExecutionOutcome, ExitStatus, ExitType

__all__ = [
    "classify",
    "DEFAULT_RULES",
    "RULES_VERSION",
    "Rule",
    "RuleSet",
    "Classification",
    "ExecutionOutcome",
    "ExitStatus",
    "ExitType",
]
