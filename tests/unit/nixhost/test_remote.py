"""Unit tests for host executors."""

from __future__ import annotations

import pytest

from core.errors import CommandTimeoutError, ConnectivityError, PermissionDeniedError
from nixhost.remote import LocalExecutor, SshExecutor, privileged, raise_for_privilege
from tests.fakes import FakeExecutor, FakeRunner, failed, ok


def test_ssh_executor_quotes_remote_command() -> None:
    """Remote commands should be passed as one shell-quoted argument."""
    runner = FakeRunner([("ssh", ok("done"))])

    result = SshExecutor("web1", runner, connect_timeout=7).run(["echo", "a b"])

    assert result.stdout == "done"
    assert runner.calls[0] == [
        "ssh",
        "-o",
        "BatchMode=yes",
        "-o",
        "ConnectTimeout=7",
        "web1",
        "--",
        "echo 'a b'",
    ]


def test_ssh_exit_255_is_connectivity_error() -> None:
    """ssh's own failure exit code means the host is unreachable."""
    runner = FakeRunner([("ssh", failed("Connection refused", exit_code=255))])

    with pytest.raises(ConnectivityError, match="Cannot reach web1"):
        SshExecutor("web1", runner, connect_timeout=1).run(["true"])


def test_ssh_timeout_is_connectivity_error() -> None:
    """A command timeout over ssh should be attributed to connectivity."""
    runner = FakeRunner([("ssh", CommandTimeoutError("slow"))])

    with pytest.raises(ConnectivityError, match="did not answer"):
        SshExecutor("web1", runner, connect_timeout=1).run(["true"], timeout=2)


def test_remote_command_failures_are_returned() -> None:
    """Non-ssh failures should be returned for the caller to judge."""
    runner = FakeRunner([("ssh", failed("no such file", exit_code=1))])

    assert SshExecutor("web1", runner, connect_timeout=1).run(["cat", "x"]).exit_code == 1


def test_local_executor_runs_without_ssh(monkeypatch: pytest.MonkeyPatch) -> None:
    """The local executor should run commands directly."""
    monkeypatch.setattr("nixhost.remote.os.geteuid", lambda: 0)
    runner = FakeRunner()

    executor = LocalExecutor(runner)
    executor.run(["true"])

    assert runner.calls == [["true"]] and executor.is_local and not executor.use_sudo


def test_privileged_prefixes_sudo_only_when_needed() -> None:
    """Root executors should not use sudo."""
    assert privileged(FakeExecutor(use_sudo=True), ["reboot"]) == ["sudo", "-n", "reboot"]
    assert privileged(FakeExecutor(use_sudo=False), ["reboot"]) == ["reboot"]


def test_sudo_password_prompt_is_permission_denied() -> None:
    """A sudo password requirement should raise PermissionDeniedError."""
    result = failed("sudo: a password is required")

    with pytest.raises(PermissionDeniedError, match="passwordless sudo"):
        raise_for_privilege(FakeExecutor(), result)


def test_other_failures_are_not_permission_errors() -> None:
    """Ordinary command failures should pass through."""
    raise_for_privilege(FakeExecutor(), failed("switch-to-configuration: error"))
