"""Stable text rendering of check results and the registry listing."""

from __future__ import annotations

from checks.check_types import AssertionResult, CheckResult, TargetCheckReport
from checks.registry import CheckRegistry

_OUTCOME_LABELS = {"pass": "PASS", "fail": "FAIL", "ignored": "IGNORED"}


def render_target_report(report: TargetCheckReport, verbose: bool = False) -> list[str]:
    """Render one target's check results.

    Failing and ignored assertions are always listed with their hint.
    Verbose mode adds passing assertions and the declared users.

    Args:
        report: Check report of one target.
        verbose: Include passing rows and the user summary.

    Returns:
        Output lines in registry order.
    """
    lines = [
        f"target={report.target_id} verdict={report.verdict} "
        f"failed={len(report.failure_rows)} ignored={report.ignored_count}"
    ]
    for result in report.results:
        for row in result.assertions:
            if row.outcome == "pass" and not verbose:
                continue
            lines.extend(_render_row(result, row))
    if verbose:
        for user in report.users:
            groups = ",".join(user.groups) or "-"
            lines.append(f"  user={user.name} groups={groups} ssh_keys={user.ssh_key_count}")
    return lines


def _render_row(result: CheckResult, row: AssertionResult) -> list[str]:
    label = _OUTCOME_LABELS[row.outcome]
    line = f"  [{label}] {result.check_id}.{row.assertion_id} {row.path or '<root>'}"
    if row.message:
        line += f" :: {row.message}"
    lines = [line]
    if row.outcome != "pass" and row.hint:
        lines.append(f"      hint: {row.hint}")
    return lines


def render_registry(registry: CheckRegistry) -> str:
    """List every category and check with its assertions."""
    lines: list[str] = []
    for category, checks in registry.grouped():
        lines.append(f"{category.id}: {category.name}")
        for check in checks:
            assertions = ",".join(assertion.id for assertion in check.assertions)
            lines.append(f"  {check.id} {check.title} :: {check.description}")
            lines.append(f"      assertions: {assertions}")
    return "\n".join(lines)
