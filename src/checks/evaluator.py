"""Check evaluation against a target configuration.

Evaluation is a pure function of the configuration model, the registry
and an ignore store snapshot. It performs no IO and never raises for a
misconfigured system: unexpected value shapes become failing rows.
"""

from __future__ import annotations

from typing import Iterable

from core.config_model import ConfigMapping, ConfigTypeError, lookup, string_items
from core.types import AUTHORIZED_KEYS_PATH, USERS_PATH, Target
from checks.check_types import (
    AssertionResult,
    CheckResult,
    TargetCheckReport,
    UserSummary,
    Verdict,
)
from checks.registry import Assertion, CheckDefinition, CheckRegistry
from store.ignore_store import IgnoreEntry, IgnoreStore

__all__ = [
    "aggregate_verdict",
    "compute_ignore_update",
    "evaluate",
    "evaluate_report",
    "summarize_users",
]


def evaluate(
    target: Target,
    registry: CheckRegistry,
    ignore_store: IgnoreStore,
) -> tuple[CheckResult, ...]:
    """Evaluate every registered check against one target.

    Args:
        target: Evaluated target.
        registry: Check registry.
        ignore_store: Read-only snapshot of suppressed assertions.

    Returns:
        Check results grouped by category in registry order.
    """
    return tuple(
        _evaluate_check(target, check, ignore_store) for check in registry.ordered_checks()
    )


def evaluate_report(
    target: Target,
    registry: CheckRegistry,
    ignore_store: IgnoreStore,
) -> TargetCheckReport:
    """Evaluate a target and wrap the results with its verdict."""
    return TargetCheckReport(
        target_id=target.target_id,
        results=evaluate(target, registry, ignore_store),
        users=summarize_users(target),
    )


def aggregate_verdict(results: Iterable[CheckResult]) -> Verdict:
    """Passed iff every assertion is a pass or ignored."""
    return "passed" if all(result.passed for result in results) else "failed"


def compute_ignore_update(
    store: IgnoreStore,
    evaluations: Iterable[tuple[CheckResult, ...]],
) -> IgnoreStore:
    """Derive the next ignore store from fresh evaluation results.

    Failing assertions are added, passing assertions are removed, and
    triples that the evaluations did not cover are kept unchanged.

    Args:
        store: Current ignore store.
        evaluations: Check results of every evaluated target.

    Returns:
        Updated snapshot, to be persisted in full by the caller.
    """
    to_add: set[IgnoreEntry] = set()
    to_remove: set[IgnoreEntry] = set()
    for results in evaluations:
        for result in results:
            for row in result.assertions:
                entry = IgnoreEntry(result.target_id, result.check_id, row.assertion_id)
                if row.computed_failure:
                    to_add.add(entry)
                else:
                    to_remove.add(entry)
    return store.without_entries(to_remove).with_entries(to_add)


def _evaluate_check(
    target: Target,
    check: CheckDefinition,
    ignore_store: IgnoreStore,
) -> CheckResult:
    rows = tuple(
        _evaluate_assertion(target, check, assertion, ignore_store)
        for assertion in check.assertions
    )
    return CheckResult(
        target_id=target.target_id,
        category=check.category,
        check_id=check.id,
        title=check.title,
        assertions=rows,
    )


def _evaluate_assertion(
    target: Target,
    check: CheckDefinition,
    assertion: Assertion,
    ignore_store: IgnoreStore,
) -> AssertionResult:
    value = target.config.get(assertion.path)
    try:
        message = assertion.predicate(value)
    except ConfigTypeError as error:
        location = assertion.path or "configuration root"
        message = f"Unexpected value below {location}: {error}"
    if message is None:
        outcome = "pass"
    elif ignore_store.contains(target.target_id, check.id, assertion.id):
        outcome = "ignored"
    else:
        outcome = "fail"
    return AssertionResult(
        assertion_id=assertion.id,
        path=assertion.path,
        outcome=outcome,
        message=message,
        hint=assertion.hint,
    )


def summarize_users(target: Target) -> tuple[UserSummary, ...]:
    """Normal users of a target with their groups and key counts.

    Users whose declaration has an unexpected shape are left out.
    """
    users = target.config.get(USERS_PATH)
    if not isinstance(users, ConfigMapping):
        return ()
    summaries: list[UserSummary] = []
    for name in sorted(users.entries):
        user = users.child(name)
        if not isinstance(user, ConfigMapping):
            continue
        try:
            groups = string_items(user.child("extraGroups"))
            keys = string_items(lookup(user, AUTHORIZED_KEYS_PATH))
        except ConfigTypeError:
            continue
        summaries.append(UserSummary(name=name, groups=groups, ssh_key_count=len(keys)))
    return tuple(summaries)
