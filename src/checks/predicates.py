"""Reusable predicate builders for check assertions."""

from __future__ import annotations

from core.config_model import (
    ABSENT,
    ConfigValue,
    expect_bool,
    lookup,
)
from checks.registry import Predicate

NOT_PRESENT_MESSAGE = "setting not present"


def require_true(failure: str) -> Predicate:
    """Pass when the setting is true; an unset setting fails."""

    def predicate(value: ConfigValue) -> str | None:
        if value is ABSENT:
            return NOT_PRESENT_MESSAGE
        return None if expect_bool(value) else failure

    return predicate


def require_false(failure: str) -> Predicate:
    """Pass when the setting is false; an unset setting fails."""

    def predicate(value: ConfigValue) -> str | None:
        if value is ABSENT:
            return NOT_PRESENT_MESSAGE
        return failure if expect_bool(value) else None

    return predicate


def flag(value: ConfigValue, path: str) -> bool:
    """Read a boolean below ``value``; unset counts as false."""
    nested = lookup(value, path)
    if nested is ABSENT:
        return False
    return expect_bool(nested)


def when_enabled(condition_path: str, inner: Predicate, inner_path: str) -> Predicate:
    """Apply ``inner`` to ``inner_path`` only when ``condition_path`` is true.

    Both paths are relative to the value handed to the predicate.
    """

    def predicate(value: ConfigValue) -> str | None:
        if not flag(value, condition_path):
            return None
        return inner(lookup(value, inner_path))

    return predicate


def when_present(condition_path: str, inner: Predicate, inner_path: str) -> Predicate:
    """Apply ``inner`` only when ``condition_path`` resolves to any value."""

    def predicate(value: ConfigValue) -> str | None:
        if lookup(value, condition_path) is ABSENT:
            return None
        return inner(lookup(value, inner_path))

    return predicate
