"""Unit tests for nix build, copy and activation primitives."""

from __future__ import annotations

import pytest

from core.errors import ActivationError, CommandTimeoutError, ConnectivityError, CopyError, PermissionDeniedError
from core.flake_reference import FlakeReference
from nixhost.nix_commands import (
    NixCommandError,
    build_toplevel,
    changed_boot_components,
    copy_closure_to_host,
    parse_build_output,
    read_boot_id,
    realise_on_host,
    schedule_reboot,
    switch_to_configuration,
)
from tests.fakes import FakeExecutor, FakeRunner, failed, ok

_BUILD_JSON = '[{"drvPath": "/nix/store/a.drv", "outputs": {"out": "/nix/store/b-system"}}]'


def test_build_toplevel_returns_out_path() -> None:
    """The out path should be read from nix build's JSON."""
    runner = FakeRunner([("nix build", ok(_BUILD_JSON))])

    path = build_toplevel(runner, FlakeReference(".", "web1"), timeout=None, extra_args=("--max-jobs", "0"))

    assert path == "/nix/store/b-system"
    assert runner.calls[0][-2:] == ["--max-jobs", "0"]


def test_build_failure_raises_with_diagnostic() -> None:
    """Build errors should carry nix's stderr."""
    runner = FakeRunner([("nix build", failed("error: builder failed"))])

    with pytest.raises(NixCommandError, match="builder failed"):
        build_toplevel(runner, FlakeReference(".", "web1"), timeout=None)


def test_build_timeout_raises_nix_command_error() -> None:
    """Build timeouts should become build errors."""
    runner = FakeRunner([("nix build", CommandTimeoutError("slow"))])

    with pytest.raises(NixCommandError):
        build_toplevel(runner, FlakeReference(".", "web1"), timeout=1)


@pytest.mark.parametrize("stdout", ["not json", "[]", '[{"outputs": {}}]'])
def test_parse_build_output_rejects_malformed_output(stdout: str) -> None:
    """Unexpected nix build output should not yield a path."""
    with pytest.raises(NixCommandError):
        parse_build_output(stdout)


def test_realise_on_host_returns_last_path() -> None:
    """On-target builds should return the realised output path."""
    executor = FakeExecutor(responses=[("nix-store --realise", ok("/nix/store/b-system\n"))])

    assert realise_on_host(executor, "/nix/store/a.drv", timeout=None) == "/nix/store/b-system"


def test_copy_sets_ssh_options() -> None:
    """Closure copies should pass ssh options through NIX_SSHOPTS."""
    runner = FakeRunner()

    copy_closure_to_host(runner, "/nix/store/b-system", "web1", timeout=None, connect_timeout=5)

    assert runner.calls[0][:4] == ["nix", "copy", "--to", "ssh://web1"]
    assert runner.envs[0] == {"NIX_SSHOPTS": "-o BatchMode=yes -o ConnectTimeout=5"}


def test_copy_connection_refused_is_connectivity_error() -> None:
    """Unreachable hosts should be distinguished from copy failures."""
    runner = FakeRunner([("nix copy", failed("ssh: connect to host web1: Connection refused"))])

    with pytest.raises(ConnectivityError):
        copy_closure_to_host(runner, "/nix/store/b", "web1", timeout=None, connect_timeout=5)


def test_copy_other_failures_are_copy_errors() -> None:
    """Other copy failures should raise CopyError."""
    runner = FakeRunner([("nix copy", failed("error: disk full"))])

    with pytest.raises(CopyError, match="disk full"):
        copy_closure_to_host(runner, "/nix/store/b", "web1", timeout=None, connect_timeout=5)


def test_copy_timeout_is_copy_error() -> None:
    """Copy timeouts should not escape as raw timeouts."""
    runner = FakeRunner([("nix copy", CommandTimeoutError("slow"))])

    with pytest.raises(CopyError):
        copy_closure_to_host(runner, "/nix/store/b", "web1", timeout=1, connect_timeout=5)


def test_switch_uses_sudo_and_reports_failure() -> None:
    """Activation should run privileged and raise on failure."""
    executor = FakeExecutor(responses=[("switch-to-configuration", failed("unit failed"))])

    with pytest.raises(ActivationError, match="unit failed"):
        switch_to_configuration(executor, "/nix/store/b", timeout=None)

    assert executor.calls[0] == ["sudo", "-n", "/nix/store/b/bin/switch-to-configuration", "switch"]


def test_switch_rejected_sudo_is_permission_denied() -> None:
    """A sudo refusal should be reported as a permission problem."""
    executor = FakeExecutor(
        responses=[("switch-to-configuration", failed("sudo: a password is required"))]
    )

    with pytest.raises(PermissionDeniedError):
        switch_to_configuration(executor, "/nix/store/b", timeout=None)


def test_changed_boot_components_lists_differences() -> None:
    """Changed components are printed one per line by the remote script."""
    executor = FakeExecutor(responses=[("readlink", ok("kernel\ninitrd\n"))])

    assert changed_boot_components(executor, "/nix/store/b", timeout=None) == ("kernel", "initrd")
    assert "/run/booted-system/$c" in executor.calls[0][2]


def test_read_boot_id_failure_is_connectivity_error() -> None:
    """An unreadable boot id means the host is not usable yet."""
    executor = FakeExecutor(responses=[("boot_id", failed("no such file"))])

    with pytest.raises(ConnectivityError):
        read_boot_id(executor, timeout=None)


def test_schedule_reboot_tolerates_dropped_connection() -> None:
    """The ssh session dying during reboot is expected."""
    executor = FakeExecutor(responses=[("systemctl reboot", ConnectivityError("closed"))])

    schedule_reboot(executor, timeout=None)

    assert executor.commands() == ["sudo -n systemctl reboot"]
