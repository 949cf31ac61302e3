"""Check definitions and the ordered registry that holds them.

Checks are data: every assertion names one config path, a predicate over
the value found there, and a remediation hint. The registry is a flat,
ordered collection; extending it means appending definitions.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Iterator

from core.config_model import ConfigValue

Predicate = Callable[[ConfigValue], "str | None"]


class RegistryError(ValueError):
    """Raised when check definitions are inconsistent."""


@dataclass(frozen=True)
class Assertion:
    """One atomic predicate test over a configuration value.

    Attributes:
        id: Identifier, unique within its check.
        path: Dotted config path passed to the predicate; ``""`` is the root.
        predicate: Returns None on pass or a failure message.
        hint: Remediation shown next to failures.
        reads: Leaf paths the predicate inspects below ``path``. Empty means
            ``path`` itself is the only leaf.
    """

    id: str
    path: str
    predicate: Predicate = field(compare=False)
    hint: str
    reads: tuple[str, ...] = ()

    @property
    def leaf_paths(self) -> tuple[str, ...]:
        """Paths the evaluator collaborator has to export."""
        return self.reads or (self.path,)


@dataclass(frozen=True)
class CheckCategory:
    """Named group of related checks."""

    id: str
    name: str
    description: str


@dataclass(frozen=True)
class CheckDefinition:
    """A named rule made of independent assertions."""

    id: str
    category: str
    title: str
    description: str
    assertions: tuple[Assertion, ...]


class CheckRegistry:
    """Ordered, validated collection of check definitions."""

    def __init__(
        self,
        categories: tuple[CheckCategory, ...],
        checks: tuple[CheckDefinition, ...],
    ) -> None:
        _validate(categories, checks)
        self._categories = categories
        self._checks = checks

    @property
    def categories(self) -> tuple[CheckCategory, ...]:
        return self._categories

    @property
    def checks(self) -> tuple[CheckDefinition, ...]:
        return self._checks

    def __len__(self) -> int:
        return len(self._checks)

    def __iter__(self) -> Iterator[CheckDefinition]:
        return iter(self.ordered_checks())

    def get(self, check_id: str) -> CheckDefinition | None:
        """Return a check by id, or None."""
        for check in self._checks:
            if check.id == check_id:
                return check
        return None

    def grouped(self) -> tuple[tuple[CheckCategory, tuple[CheckDefinition, ...]], ...]:
        """Categories in declaration order, each with its checks in registry order."""
        return tuple(
            (category, tuple(check for check in self._checks if check.category == category.id))
            for category in self._categories
        )

    def ordered_checks(self) -> tuple[CheckDefinition, ...]:
        """Checks grouped by category, stable across runs."""
        return tuple(check for _, checks in self.grouped() for check in checks)

    def export_paths(self) -> tuple[str, ...]:
        """Sorted, unique leaf paths needed to evaluate every assertion."""
        paths = {
            path
            for check in self._checks
            for assertion in check.assertions
            for path in assertion.leaf_paths
            if path
        }
        return tuple(sorted(paths))


def _validate(
    categories: tuple[CheckCategory, ...],
    checks: tuple[CheckDefinition, ...],
) -> None:
    category_ids = [category.id for category in categories]
    _reject_duplicates(category_ids, "category")
    _reject_duplicates([check.id for check in checks], "check")
    known = set(category_ids)
    for check in checks:
        if check.category not in known:
            raise RegistryError(f"Check '{check.id}' references unknown category '{check.category}'.")
        if not check.assertions:
            raise RegistryError(f"Check '{check.id}' defines no assertions.")
        _reject_duplicates(
            [assertion.id for assertion in check.assertions],
            f"assertion in check '{check.id}'",
        )


def _reject_duplicates(ids: list[str], label: str) -> None:
    seen: set[str] = set()
    for item in ids:
        if item in seen:
            raise RegistryError(f"Duplicate {label} id '{item}'.")
        seen.add(item)
