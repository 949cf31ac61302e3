"""Identity of the operator running a deployment."""

from __future__ import annotations

import getpass

from core.errors import CommandTimeoutError
from core.logging_config import get_logger
from core.types import OperatorInfo, SshPublicKey
from nixhost.command_runner import CommandRunner

_LOGGER = get_logger(__name__)


def collect_operator_info(runner: CommandRunner, timeout: float | None = 10.0) -> OperatorInfo:
    """Collect the local username and the keys loaded in ssh-agent."""
    username = getpass.getuser()
    return OperatorInfo(username=username, ssh_keys=_agent_keys(runner, timeout))


def _agent_keys(runner: CommandRunner, timeout: float | None) -> tuple[SshPublicKey, ...]:
    try:
        result = runner.run(["ssh-add", "-L"], timeout=timeout)
    except CommandTimeoutError:
        _LOGGER.warning("ssh_agent_query_timed_out")
        return ()
    if not result.ok:
        _LOGGER.info("ssh_agent_has_no_keys", detail=result.diagnostic())
        return ()
    keys = (SshPublicKey.parse(line) for line in result.stdout.splitlines())
    return tuple(key for key in keys if key is not None)
