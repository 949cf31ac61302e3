"""Typed models for check evaluation results."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

AssertionOutcome = Literal["pass", "fail", "ignored"]
Verdict = Literal["passed", "failed"]


@dataclass(frozen=True)
class AssertionResult:
    """Outcome of one assertion for one target."""

    assertion_id: str
    path: str
    outcome: AssertionOutcome
    message: str | None
    hint: str

    @property
    def computed_failure(self) -> bool:
        """True when the predicate failed, whether or not it is ignored."""
        return self.outcome != "pass"


@dataclass(frozen=True)
class CheckResult:
    """All assertion outcomes of one check for one target."""

    target_id: str
    category: str
    check_id: str
    title: str
    assertions: tuple[AssertionResult, ...]

    @property
    def passed(self) -> bool:
        """True when no assertion is an unignored failure."""
        return all(row.outcome != "fail" for row in self.assertions)

    @property
    def failures(self) -> tuple[AssertionResult, ...]:
        return tuple(row for row in self.assertions if row.outcome == "fail")


@dataclass(frozen=True)
class TargetCheckReport:
    """Check results of one target plus its aggregate verdict."""

    target_id: str
    results: tuple[CheckResult, ...]
    users: tuple["UserSummary", ...] = ()

    @property
    def verdict(self) -> Verdict:
        return "passed" if all(result.passed for result in self.results) else "failed"

    @property
    def failure_rows(self) -> tuple[tuple[CheckResult, AssertionResult], ...]:
        """Every unignored failing assertion with its check, in registry order."""
        return tuple(
            (result, row) for result in self.results for row in result.failures
        )

    @property
    def ignored_count(self) -> int:
        return sum(
            1 for result in self.results for row in result.assertions if row.outcome == "ignored"
        )


@dataclass(frozen=True)
class UserSummary:
    """Declared normal user of a target, shown in verbose check output."""

    name: str
    groups: tuple[str, ...]
    ssh_key_count: int
