"""Build, copy and activation primitives.

Each function wraps one nix or systemd command and turns its result into
either a value or a domain error. Callers decide which host executes it.
"""

from __future__ import annotations

import json
from typing import Sequence

from core.constants import (
    BOOT_ID_PATH,
    BOOTED_SYSTEM_PATH,
    CURRENT_SYSTEM_PATH,
    REBOOT_COMPONENTS,
    SYSTEM_PROFILE_PATH,
)
from core.errors import (
    ActivationError,
    CommandTimeoutError,
    ConnectivityError,
    CopyError,
)
from core.flake_reference import FlakeReference
from core.logging_config import get_logger
from nixhost.command_runner import CommandResult, CommandRunner
from nixhost.remote import HostExecutor, privileged, raise_for_privilege, ssh_options

_LOGGER = get_logger(__name__)
TOPLEVEL_ATTRIBUTE = "config.system.build.toplevel"
_CONNECTIVITY_MARKERS = (
    "connection refused",
    "connection timed out",
    "could not resolve hostname",
    "no route to host",
    "cannot connect",
    "connection closed",
    "host key verification failed",
)


class NixCommandError(Exception):
    """Raised by build primitives; callers attach the build strategy."""


def build_toplevel(
    runner: CommandRunner,
    reference: FlakeReference,
    timeout: float | None,
    extra_args: Sequence[str] = (),
) -> str:
    """Build a system toplevel on this machine and return its store path.

    Raises:
        NixCommandError: If the build fails or prints unexpected output.
    """
    args = [
        "nix",
        "build",
        "--no-link",
        "--json",
        reference.installable(TOPLEVEL_ATTRIBUTE),
        *extra_args,
    ]
    result = _run_local(runner, args, timeout)
    if not result.ok:
        raise NixCommandError(f"nix build failed for {reference}: {result.diagnostic()}")
    return parse_build_output(result.stdout)


def parse_build_output(stdout: str) -> str:
    """Extract the out path from ``nix build --json`` output."""
    try:
        payload = json.loads(stdout)
    except json.JSONDecodeError as error:
        raise NixCommandError(f"nix build returned invalid JSON: {error}") from error
    if not isinstance(payload, list) or not payload:
        raise NixCommandError("nix build returned no build results.")
    outputs = payload[0].get("outputs") if isinstance(payload[0], dict) else None
    out_path = outputs.get("out") if isinstance(outputs, dict) else None
    if not isinstance(out_path, str) or not out_path:
        raise NixCommandError("nix build result has no 'out' output path.")
    return out_path


def copy_derivation_to_host(
    runner: CommandRunner,
    drv_path: str,
    host: str,
    timeout: float | None,
    connect_timeout: int,
) -> None:
    """Upload a derivation closure so the host can build it itself."""
    result = _nix_copy(runner, ["--derivation", drv_path], host, timeout, connect_timeout)
    if not result.ok:
        raise NixCommandError(f"Uploading {drv_path} to {host} failed: {result.diagnostic()}")


def realise_on_host(executor: HostExecutor, drv_path: str, timeout: float | None) -> str:
    """Build a derivation on the executor's host and return the out path."""
    result = executor.run(["nix-store", "--realise", drv_path], timeout=timeout)
    if not result.ok:
        raise NixCommandError(
            f"Building {drv_path} on {executor.host} failed: {result.diagnostic()}"
        )
    paths = [line.strip() for line in result.stdout.splitlines() if line.strip()]
    if not paths:
        raise NixCommandError(f"Building {drv_path} on {executor.host} returned no output path.")
    return paths[-1]


def copy_closure_to_host(
    runner: CommandRunner,
    store_path: str,
    host: str,
    timeout: float | None,
    connect_timeout: int,
) -> None:
    """Copy a store path and its closure to a host.

    Raises:
        ConnectivityError: If the host cannot be reached.
        CopyError: For every other copy failure.
    """
    try:
        result = _nix_copy(
            runner,
            ["--substitute-on-destination", store_path],
            host,
            timeout,
            connect_timeout,
        )
    except NixCommandError as error:
        raise CopyError(f"Copying {store_path} to {host} failed: {error}") from error
    if result.ok:
        return
    if looks_like_connectivity_failure(result.stderr):
        raise ConnectivityError(f"Cannot reach {host} to copy {store_path}: {result.diagnostic()}")
    raise CopyError(f"Copying {store_path} to {host} failed: {result.diagnostic()}")


def set_system_profile(executor: HostExecutor, store_path: str, timeout: float | None) -> None:
    """Point the system profile at a new generation."""
    result = executor.run(
        privileged(executor, ["nix-env", "-p", SYSTEM_PROFILE_PATH, "--set", store_path]),
        timeout=timeout,
    )
    raise_for_privilege(executor, result)
    if not result.ok:
        raise ActivationError(
            f"Setting the system profile on {executor.host} failed: {result.diagnostic()}"
        )


def switch_to_configuration(
    executor: HostExecutor,
    store_path: str,
    timeout: float | None,
    action: str = "switch",
) -> None:
    """Run the generation's switch-to-configuration script."""
    result = executor.run(
        privileged(executor, [f"{store_path}/bin/switch-to-configuration", action]),
        timeout=timeout,
    )
    raise_for_privilege(executor, result)
    if not result.ok:
        raise ActivationError(
            f"switch-to-configuration {action} on {executor.host} failed: {result.diagnostic()}"
        )


def changed_boot_components(
    executor: HostExecutor,
    new_system: str,
    timeout: float | None,
    booted_system: str = BOOTED_SYSTEM_PATH,
) -> tuple[str, ...]:
    """Boot-relevant components that differ between two generations.

    A non-empty result means the new generation only takes full effect
    after a reboot.
    """
    script = "; ".join(
        (
            f'for c in {" ".join(REBOOT_COMPONENTS)}',
            f'do a=$(readlink -f "{booted_system}/$c")',
            f'b=$(readlink -f "{new_system}/$c")',
            '[ "$a" = "$b" ] || echo "$c"',
            "done",
        )
    )
    result = executor.run(["sh", "-c", script], timeout=timeout)
    if not result.ok:
        raise ActivationError(
            f"Comparing boot components on {executor.host} failed: {result.diagnostic()}"
        )
    return tuple(line.strip() for line in result.stdout.splitlines() if line.strip())


def read_boot_id(executor: HostExecutor, timeout: float | None) -> str:
    """Return the kernel boot id, which changes on every boot."""
    result = executor.run(["cat", BOOT_ID_PATH], timeout=timeout)
    if not result.ok:
        raise ConnectivityError(f"Cannot read boot id on {executor.host}: {result.diagnostic()}")
    return result.stdout.strip()


def schedule_reboot(executor: HostExecutor, timeout: float | None) -> None:
    """Ask the host to reboot; a dropped connection counts as success."""
    try:
        result = executor.run(privileged(executor, ["systemctl", "reboot"]), timeout=timeout)
    except ConnectivityError:
        _LOGGER.info("reboot_connection_dropped", host=executor.host)
        return
    raise_for_privilege(executor, result)
    if not result.ok:
        raise ActivationError(
            f"Requesting a reboot of {executor.host} failed: {result.diagnostic()}"
        )


def current_system_path(executor: HostExecutor, timeout: float | None) -> str:
    """Resolve the store path of the running generation."""
    result = executor.run(["readlink", "-f", CURRENT_SYSTEM_PATH], timeout=timeout)
    if not result.ok:
        raise ActivationError(
            f"Cannot resolve {CURRENT_SYSTEM_PATH} on {executor.host}: {result.diagnostic()}"
        )
    return result.stdout.strip()


def looks_like_connectivity_failure(stderr: str) -> bool:
    lowered = stderr.lower()
    return any(marker in lowered for marker in _CONNECTIVITY_MARKERS)


def _nix_copy(
    runner: CommandRunner,
    args: list[str],
    host: str,
    timeout: float | None,
    connect_timeout: int,
) -> CommandResult:
    return _run_local(
        runner,
        ["nix", "copy", "--to", f"ssh://{host}", *args],
        timeout,
        env={"NIX_SSHOPTS": " ".join(ssh_options(connect_timeout))},
    )


def _run_local(
    runner: CommandRunner,
    args: list[str],
    timeout: float | None,
    env: dict[str, str] | None = None,
) -> CommandResult:
    try:
        return runner.run(args, timeout=timeout, env=env)
    except CommandTimeoutError as error:
        raise NixCommandError(str(error)) from error
