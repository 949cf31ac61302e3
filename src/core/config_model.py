"""Typed model of a resolved target configuration tree.

Evaluated NixOS options arrive as JSON. This module turns them into a
closed set of value variants so checks can pattern-match on the shape of
a setting, including the case where the setting is not present at all.
Lookups never raise: a missing key, a JSON null, or a path that walks
through a non-mapping all resolve to ``ABSENT``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Union


@dataclass(frozen=True)
class ConfigBool:
    """Boolean option value."""

    value: bool


@dataclass(frozen=True)
class ConfigString:
    """String option value."""

    value: str


@dataclass(frozen=True)
class ConfigInt:
    """Integer option value."""

    value: int


@dataclass(frozen=True)
class ConfigList:
    """Ordered list of option values."""

    items: tuple["ConfigValue", ...]


@dataclass(frozen=True)
class ConfigMapping:
    """Attribute set of option values."""

    entries: Mapping[str, "ConfigValue"]

    def __hash__(self) -> int:
        return hash(tuple(sorted(self.entries.items(), key=lambda item: item[0])))

    def child(self, key: str) -> "ConfigValue":
        """Return one attribute, or ABSENT when the key is missing."""
        return self.entries.get(key, ABSENT)


class ConfigAbsent:
    """Marker variant for unset or unavailable settings."""

    _instance: "ConfigAbsent | None" = None

    def __new__(cls) -> "ConfigAbsent":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "ABSENT"

    def __bool__(self) -> bool:
        return False


ABSENT = ConfigAbsent()

ConfigValue = Union[ConfigBool, ConfigString, ConfigInt, ConfigList, ConfigMapping, ConfigAbsent]
ConfigPath = tuple[str, ...]


class ConfigTypeError(Exception):
    """Raised when a setting has a different variant than a check expects.

    This is deliberately not a FleetguardError: the check evaluator turns it
    into a failing assertion instead of letting it escape.
    """

    def __init__(self, expected: str, actual: ConfigValue) -> None:
        super().__init__(f"expected {expected}, found {describe_variant(actual)}")
        self.expected = expected
        self.actual = actual


def from_json(payload: object) -> ConfigValue:
    """Convert a decoded JSON payload into a config value tree.

    Args:
        payload: Value produced by ``json.loads``.

    Returns:
        The equivalent config value; null becomes ABSENT.
    """
    if payload is None:
        return ABSENT
    if isinstance(payload, bool):
        return ConfigBool(payload)
    if isinstance(payload, int):
        return ConfigInt(payload)
    if isinstance(payload, float):
        return ConfigString(repr(payload))
    if isinstance(payload, str):
        return ConfigString(payload)
    if isinstance(payload, (list, tuple)):
        return ConfigList(tuple(from_json(item) for item in payload))
    if isinstance(payload, Mapping):
        return ConfigMapping({str(key): from_json(value) for key, value in payload.items()})
    return ConfigString(str(payload))


def parse_config_path(path: str) -> ConfigPath:
    """Split a dotted option path into segments.

    Double-quoted segments may contain dots, e.g.
    ``services.nginx.virtualHosts."example.org".forceSSL``. The empty
    string addresses the root of the tree.

    Args:
        path: Dotted option path.

    Returns:
        Tuple of path segments.
    """
    if not path:
        return ()
    segments: list[str] = []
    current: list[str] = []
    quoted = False
    for char in path:
        if char == '"':
            quoted = not quoted
        elif char == "." and not quoted:
            segments.append("".join(current))
            current = []
        else:
            current.append(char)
    segments.append("".join(current))
    return tuple(segments)


def lookup(value: ConfigValue, path: str | ConfigPath) -> ConfigValue:
    """Resolve a path below a config value, returning ABSENT when missing."""
    segments = parse_config_path(path) if isinstance(path, str) else path
    current = value
    for segment in segments:
        if not isinstance(current, ConfigMapping):
            return ABSENT
        current = current.child(segment)
    return current


def describe_variant(value: ConfigValue) -> str:
    """Human readable variant name for diagnostics."""
    if isinstance(value, ConfigBool):
        return "bool"
    if isinstance(value, ConfigString):
        return "string"
    if isinstance(value, ConfigInt):
        return "integer"
    if isinstance(value, ConfigList):
        return "list"
    if isinstance(value, ConfigMapping):
        return "attribute set"
    return "nothing (setting not present)"


def expect_bool(value: ConfigValue) -> bool:
    """Return the boolean payload or raise ConfigTypeError."""
    if isinstance(value, ConfigBool):
        return value.value
    raise ConfigTypeError("bool", value)


def expect_str(value: ConfigValue) -> str:
    """Return the string payload or raise ConfigTypeError."""
    if isinstance(value, ConfigString):
        return value.value
    raise ConfigTypeError("string", value)


def expect_int(value: ConfigValue) -> int:
    """Return the integer payload or raise ConfigTypeError."""
    if isinstance(value, ConfigInt):
        return value.value
    raise ConfigTypeError("integer", value)


def expect_list(value: ConfigValue) -> tuple[ConfigValue, ...]:
    """Return list items or raise ConfigTypeError."""
    if isinstance(value, ConfigList):
        return value.items
    raise ConfigTypeError("list", value)


def expect_mapping(value: ConfigValue) -> ConfigMapping:
    """Return the mapping or raise ConfigTypeError."""
    if isinstance(value, ConfigMapping):
        return value
    raise ConfigTypeError("attribute set", value)


def string_items(value: ConfigValue) -> tuple[str, ...]:
    """Return a list of strings, treating ABSENT as the empty list."""
    if value is ABSENT:
        return ()
    return tuple(expect_str(item) for item in expect_list(value))


@dataclass(frozen=True)
class ConfigurationModel:
    """Resolved configuration tree of one target."""

    root: ConfigMapping

    @classmethod
    def from_json(cls, payload: object) -> "ConfigurationModel":
        """Build a model from an evaluator JSON payload.

        Args:
            payload: Decoded JSON object.

        Returns:
            Configuration model; non-object payloads yield an empty tree.
        """
        root = from_json(payload)
        if not isinstance(root, ConfigMapping):
            root = ConfigMapping({})
        return cls(root=root)

    def get(self, path: str | ConfigPath) -> ConfigValue:
        """Look up a setting by dotted path; never raises."""
        return lookup(self.root, path)
