"""Ad-hoc ignore rules given on the command line.

Rules use the form ``check.assertion`` or ``check.*`` and are separated
by commas. They apply to every target of one invocation and are never
persisted.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Mapping

from core.errors import IgnoreRuleError
from checks.registry import CheckRegistry
from store.ignore_store import IgnoreEntry

WILDCARD = "*"


@dataclass(frozen=True)
class IgnoreRules:
    """Check id to ignored assertion ids; an empty set ignores the whole check."""

    rules: Mapping[str, frozenset[str]] = field(default_factory=dict)

    def __bool__(self) -> bool:
        return bool(self.rules)

    def ignores(self, check: str, assertion: str) -> bool:
        """Return whether one assertion is covered by these rules."""
        if check not in self.rules:
            return False
        assertions = self.rules[check]
        return not assertions or assertion in assertions

    def expand(self, targets: Iterable[str], registry: CheckRegistry) -> tuple[IgnoreEntry, ...]:
        """Turn rules into ignore triples for the given targets.

        Rules naming checks or assertions that the registry does not know
        are rejected so typos do not silently ignore nothing.
        """
        self._validate(registry)
        matches = [
            (check.id, assertion.id)
            for check in registry.ordered_checks()
            for assertion in check.assertions
            if self.ignores(check.id, assertion.id)
        ]
        return tuple(
            IgnoreEntry(target=target, check=check_id, assertion=assertion_id)
            for target in sorted(set(targets))
            for check_id, assertion_id in matches
        )

    def _validate(self, registry: CheckRegistry) -> None:
        for check_id, assertions in sorted(self.rules.items()):
            check = registry.get(check_id)
            if check is None:
                raise IgnoreRuleError(
                    f"Unknown check '{check_id}' in ignore rules. "
                    "Run 'fleetguard checks' to list available checks."
                )
            known = {assertion.id for assertion in check.assertions}
            unknown = sorted(assertions - known)
            if unknown:
                raise IgnoreRuleError(
                    f"Unknown assertion '{check_id}.{unknown[0]}' in ignore rules. "
                    "Run 'fleetguard checks' to list available checks."
                )


def parse_ignore_rules(text: str) -> IgnoreRules:
    """Parse a comma separated list of ``check.assertion`` items.

    Args:
        text: Rule string, e.g. ``sudo_hardening.wheel_only,nginx.*``.

    Returns:
        Parsed rules; empty items are skipped.

    Raises:
        IgnoreRuleError: If an item lacks a check or an assertion part.
    """
    collected: dict[str, set[str]] = {}
    wildcards: set[str] = set()
    for raw_item in text.split(","):
        item = raw_item.strip()
        if not item:
            continue
        parts = item.split(".")
        if len(parts) != 2:
            raise IgnoreRuleError(
                f"Invalid ignore rule '{item}': expected <check>.<assertion> or <check>.*."
            )
        check, assertion = parts[0].strip(), parts[1].strip()
        if not check:
            raise IgnoreRuleError(f"Invalid ignore rule '{item}': check name is empty.")
        if not assertion:
            raise IgnoreRuleError(f"Invalid ignore rule '{item}': assertion name is empty.")
        if assertion == WILDCARD:
            wildcards.add(check)
        collected.setdefault(check, set()).add(assertion)
    return IgnoreRules(
        {
            check: frozenset() if check in wildcards else frozenset(assertions)
            for check, assertions in collected.items()
        }
    )
