"""Host executors: run a command on the local machine or over ssh."""

from __future__ import annotations

import os
import shlex
from typing import Protocol, Sequence

from core.constants import SSH_CONNECTION_FAILURE_EXIT_CODE
from core.errors import CommandTimeoutError, ConnectivityError, PermissionDeniedError
from nixhost.command_runner import CommandResult, CommandRunner

_SUDO_DENIED_MARKERS = (
    "a password is required",
    "is not in the sudoers file",
    "a terminal is required",
    "is not allowed to execute",
)


class HostExecutor(Protocol):
    """Executes commands on one host."""

    host: str
    is_local: bool
    use_sudo: bool

    def run(self, args: Sequence[str], timeout: float | None = None) -> CommandResult:
        ...


class SshExecutor:
    """Runs commands on a remote host through the ssh client."""

    is_local = False

    def __init__(
        self,
        host: str,
        runner: CommandRunner,
        connect_timeout: int,
        use_sudo: bool = True,
    ) -> None:
        self.host = host
        self.use_sudo = use_sudo
        self._runner = runner
        self._connect_timeout = connect_timeout

    def run(self, args: Sequence[str], timeout: float | None = None) -> CommandResult:
        """Run a command remotely.

        Raises:
            ConnectivityError: If ssh cannot reach the host or times out.
        """
        try:
            result = self._runner.run(
                [*ssh_base_args(self._connect_timeout), self.host, "--", shlex.join(args)],
                timeout=timeout,
            )
        except CommandTimeoutError as error:
            raise ConnectivityError(
                f"Host {self.host} did not answer within {timeout} seconds."
            ) from error
        if result.exit_code == SSH_CONNECTION_FAILURE_EXIT_CODE:
            raise ConnectivityError(
                f"Cannot reach {self.host} over ssh: {result.diagnostic()}"
            )
        return result


class LocalExecutor:
    """Runs commands on the machine Fleetguard itself runs on."""

    is_local = True

    def __init__(self, runner: CommandRunner, host: str = "localhost") -> None:
        self.host = host
        self.use_sudo = os.geteuid() != 0
        self._runner = runner

    def run(self, args: Sequence[str], timeout: float | None = None) -> CommandResult:
        return self._runner.run(list(args), timeout=timeout)


def ssh_base_args(connect_timeout: int) -> list[str]:
    """ssh invocation prefix shared by executors and NIX_SSHOPTS."""
    return ["ssh", *ssh_options(connect_timeout)]


def ssh_options(connect_timeout: int) -> list[str]:
    return ["-o", "BatchMode=yes", "-o", f"ConnectTimeout={connect_timeout}"]


def privileged(executor: HostExecutor, args: Sequence[str]) -> list[str]:
    """Prefix a command with non-interactive sudo when the executor needs it."""
    if executor.use_sudo:
        return ["sudo", "-n", *args]
    return list(args)


def raise_for_privilege(executor: HostExecutor, result: CommandResult) -> None:
    """Raise PermissionDeniedError when sudo refused to run a command."""
    if result.ok or not executor.use_sudo:
        return
    stderr = result.stderr.lower()
    if "sudo" in stderr and any(marker in stderr for marker in _SUDO_DENIED_MARKERS):
        raise PermissionDeniedError(
            f"Privilege escalation was rejected on {executor.host}: {result.diagnostic()}. "
            "Allow passwordless sudo for the deploying user."
        )
