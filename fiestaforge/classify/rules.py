"""Text signatures used to classify analysis tool output.

The tool prints free-form text, so these patterns are heuristics. Bump
``RULES_VERSION`` whenever a built-in pattern changes so result files can be
traced back to the table that produced them.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Iterable

RULES_VERSION = "1"


@dataclass(frozen=True)
class Rule:
    name: str
    pattern: re.Pattern[str]

    @classmethod
    def compile(cls, name: str, pattern: str) -> Rule:
        return cls(name, re.compile(pattern, re.MULTILINE))

    def search(self, text: str) -> str | None:
        """Return the line holding the first match, or None."""
        match = self.pattern.search(text)
        if match is None:
            return None

        start = text.rfind("\n", 0, match.start()) + 1
        end = text.find("\n", match.end())
        if end == -1:
            end = len(text)
        return text[start:end].strip()


@dataclass(frozen=True)
class RuleSet:
    version: str
    panic: tuple[Rule, ...] = field(default_factory=tuple)
    non_interpreted: tuple[Rule, ...] = field(default_factory=tuple)
    error: tuple[Rule, ...] = field(default_factory=tuple)

    def extended(
        self,
        *,
        panic: Iterable[str] = (),
        non_interpreted: Iterable[str] = (),
        error: Iterable[str] = (),
    ) -> RuleSet:
        """Return a copy with extra patterns appended to each group."""
        extra_panic = _custom("panic", panic)
        extra_non_interpreted = _custom("non-interpreted", non_interpreted)
        extra_error = _custom("error", error)

        if not (extra_panic or extra_non_interpreted or extra_error):
            return self

        return RuleSet(
            version=f"{self.version}+custom",
            panic=self.panic + extra_panic,
            non_interpreted=self.non_interpreted + extra_non_interpreted,
            error=self.error + extra_error,
        )

    def groups(self) -> list[tuple[str, tuple[Rule, ...]]]:
        return [
            ("panic", self.panic),
            ("non_interpreted", self.non_interpreted),
            ("error", self.error),
        ]


def first_match(rules: Iterable[Rule], text: str) -> tuple[Rule, str] | None:
    for rule in rules:
        line = rule.search(text)
        if line is not None:
            return rule, line
    return None


def _custom(group: str, patterns: Iterable[str]) -> tuple[Rule, ...]:
    return tuple(
        Rule.compile(f"custom-{group}-{i}", pattern) for i, pattern in enumerate(patterns, 1)
    )


DEFAULT_RULES = RuleSet(
    version=RULES_VERSION,
    panic=(
        Rule.compile("rust-panic", r"thread '[^']*' panicked at"),
        Rule.compile("stack-overflow", r"has overflowed its stack"),
        Rule.compile("fatal-runtime-error", r"fatal runtime error"),
        Rule.compile("segfault", r"Segmentation fault"),
    ),
    non_interpreted=(
        Rule.compile("could-not-interpret", r"[Cc]ould not (?:interpret|parse)"),
        Rule.compile("unsupported-input", r"[Uu]nsupported (?:source|input|language)"),
    ),
    error=(
        Rule.compile("error-line", r"^\s*[Ee]rror(?:\[\w+\])?:"),
    ),
)
