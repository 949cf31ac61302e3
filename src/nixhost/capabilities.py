"""Local build capability probing.

Reads the local nix configuration to learn which platforms can be built
on this machine and which distributed builders are available.
"""

from __future__ import annotations

import json
import platform
import shutil
from dataclasses import dataclass
from pathlib import Path

from core.errors import CommandTimeoutError
from core.logging_config import get_logger
from nixhost.command_runner import CommandRunner

_LOGGER = get_logger(__name__)
_BUILDER_URI_PREFIXES = ("ssh-ng://", "ssh://")
_CONFIG_SHOW_COMMANDS = (
    ("nix", "config", "show", "--json"),
    ("nix", "show-config", "--json"),
)


@dataclass(frozen=True)
class RemoteBuilder:
    """One entry of the nix machines list.

    Attributes:
        uri: Builder store uri, e.g. ``ssh://builder.example.org``.
        systems: Platforms the builder advertises.
        spec: Original machines line, passed back to ``--builders``.
    """

    uri: str
    systems: tuple[str, ...]
    spec: str

    @property
    def host(self) -> str:
        """ssh destination without the uri scheme."""
        for prefix in _BUILDER_URI_PREFIXES:
            if self.uri.startswith(prefix):
                return self.uri[len(prefix) :]
        return self.uri


@dataclass(frozen=True)
class LocalCapabilities:
    """What this machine can build and through which builders.

    Attributes:
        system: Native nix system double.
        extra_platforms: Platforms built through emulation.
        builders: Distributed builders in declared order.
        build_tooling_available: False when local builds are impossible,
            e.g. nix is missing or local build jobs are disabled.
    """

    system: str
    extra_platforms: tuple[str, ...] = ()
    builders: tuple[RemoteBuilder, ...] = ()
    build_tooling_available: bool = True

    def can_build_locally(self, platform_name: str | None) -> bool:
        """True when nix is usable and the platform is native or emulated."""
        if not self.build_tooling_available or platform_name is None:
            return False
        return platform_name == self.system or platform_name in self.extra_platforms


def probe_local_capabilities(
    runner: CommandRunner,
    builders_override: str | None = None,
    timeout: float | None = None,
) -> LocalCapabilities:
    """Inspect the local nix installation.

    Args:
        runner: Local command runner.
        builders_override: Machines list that replaces the configured one.
        timeout: Timeout for the nix configuration query.

    Returns:
        Probed capabilities. Without nix on PATH local builds are reported
        as unavailable and only the builder override is considered.
    """
    if shutil.which("nix") is None:
        _LOGGER.warning("nix_not_found")
        return LocalCapabilities(
            system=_fallback_system(),
            builders=parse_builders(builders_override or ""),
            build_tooling_available=False,
        )
    settings = _read_nix_settings(runner, timeout)
    system = _setting_text(settings, "system") or _fallback_system()
    extra_platforms = _setting_items(settings, "extra-platforms")
    builders_value = builders_override
    if builders_value is None:
        builders_value = _setting_text(settings, "builders") or ""
    capabilities = LocalCapabilities(
        system=system,
        extra_platforms=extra_platforms,
        builders=parse_builders(builders_value),
        build_tooling_available=True,
    )
    _LOGGER.info(
        "local_capabilities_probed",
        system=capabilities.system,
        extra_platforms=list(capabilities.extra_platforms),
        builders=[builder.uri for builder in capabilities.builders],
    )
    return capabilities


def parse_builders(value: str) -> tuple[RemoteBuilder, ...]:
    """Parse a nix machines specification.

    Entries are separated by ``;`` or newlines. ``@path`` reads the entries
    from a file. Each entry is ``uri systems[,systems] ...``; ``-`` leaves a
    field unset. Comments start with ``#``.
    """
    text = value.strip()
    if text.startswith("@"):
        machines_file = Path(text[1:]).expanduser()
        try:
            text = machines_file.read_text(encoding="utf-8")
        except OSError as error:
            _LOGGER.warning("builders_file_unreadable", path=str(machines_file), error=str(error))
            return ()
    builders: list[RemoteBuilder] = []
    for raw_line in text.replace(";", "\n").splitlines():
        line = raw_line.split("#", 1)[0].strip()
        if not line:
            continue
        fields = line.split()
        systems: tuple[str, ...] = ()
        if len(fields) > 1 and fields[1] != "-":
            systems = tuple(item for item in fields[1].split(",") if item)
        builders.append(RemoteBuilder(uri=fields[0], systems=systems, spec=line))
    return tuple(builders)


def _read_nix_settings(runner: CommandRunner, timeout: float | None) -> dict[str, object]:
    for command in _CONFIG_SHOW_COMMANDS:
        try:
            result = runner.run(list(command), timeout=timeout)
        except CommandTimeoutError:
            _LOGGER.warning("nix_config_query_timed_out", command=" ".join(command))
            continue
        if not result.ok:
            continue
        try:
            payload = json.loads(result.stdout)
        except json.JSONDecodeError:
            continue
        if isinstance(payload, dict):
            return payload
    _LOGGER.warning("nix_config_unavailable")
    return {}


def _setting_value(settings: dict[str, object], key: str) -> object:
    entry = settings.get(key)
    if isinstance(entry, dict):
        return entry.get("value")
    return entry


def _setting_text(settings: dict[str, object], key: str) -> str | None:
    value = _setting_value(settings, key)
    if isinstance(value, str):
        return value
    if isinstance(value, list):
        return "\n".join(str(item) for item in value)
    return None


def _setting_items(settings: dict[str, object], key: str) -> tuple[str, ...]:
    value = _setting_value(settings, key)
    if isinstance(value, list):
        return tuple(str(item) for item in value)
    if isinstance(value, str):
        return tuple(value.split())
    return ()


def _fallback_system() -> str:
    machine = platform.machine().lower()
    machine = {"amd64": "x86_64", "arm64": "aarch64"}.get(machine, machine)
    return f"{machine}-{platform.system().lower()}"
