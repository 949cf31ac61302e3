"""Local process execution primitive."""

from __future__ import annotations

import os
import subprocess
from dataclasses import dataclass
from typing import Mapping, Protocol, Sequence

from core.errors import CommandTimeoutError
from core.logging_config import get_logger

_LOGGER = get_logger(__name__)
COMMAND_NOT_FOUND_EXIT_CODE = 127


@dataclass(frozen=True)
class CommandResult:
    """Captured output of one finished command."""

    stdout: str
    stderr: str
    exit_code: int

    @property
    def ok(self) -> bool:
        return self.exit_code == 0

    def diagnostic(self) -> str:
        """Short failure text: stderr if present, otherwise stdout."""
        text = self.stderr.strip() or self.stdout.strip()
        return text or f"exit code {self.exit_code}"


class CommandRunner(Protocol):
    """Runs a local command and captures its output."""

    def run(
        self,
        args: Sequence[str],
        timeout: float | None = None,
        env: Mapping[str, str] | None = None,
    ) -> CommandResult:
        ...


class LocalCommandRunner:
    """CommandRunner backed by ``subprocess.run``."""

    def run(
        self,
        args: Sequence[str],
        timeout: float | None = None,
        env: Mapping[str, str] | None = None,
    ) -> CommandResult:
        """Run a command to completion.

        Args:
            args: Program and arguments.
            timeout: Seconds before the process is killed.
            env: Extra environment variables layered over the current ones.

        Returns:
            Captured result; a missing program yields exit code 127.

        Raises:
            CommandTimeoutError: If the command exceeds ``timeout``.
        """
        _LOGGER.debug("command_started", args=list(args), timeout=timeout)
        process_env = {**os.environ, **env} if env else None
        try:
            completed = subprocess.run(
                list(args),
                capture_output=True,
                text=True,
                timeout=timeout,
                env=process_env,
                check=False,
            )
        except FileNotFoundError:
            return CommandResult(
                stdout="",
                stderr=f"{args[0]}: command not found",
                exit_code=COMMAND_NOT_FOUND_EXIT_CODE,
            )
        except subprocess.TimeoutExpired as error:
            raise CommandTimeoutError(
                f"Command '{args[0]}' did not finish within {timeout} seconds."
            ) from error
        _LOGGER.debug("command_finished", program=args[0], exit_code=completed.returncode)
        return CommandResult(
            stdout=completed.stdout,
            stderr=completed.stderr,
            exit_code=completed.returncode,
        )
