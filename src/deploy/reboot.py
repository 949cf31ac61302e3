"""Reboot a target and wait until it is back."""

from __future__ import annotations

import time
from typing import Callable

from core.errors import ConnectivityError, RebootTimeoutError
from core.logging_config import get_logger
from nixhost.nix_commands import read_boot_id, schedule_reboot
from nixhost.remote import HostExecutor

_LOGGER = get_logger(__name__)


def reboot_and_wait(
    executor: HostExecutor,
    timeout_seconds: float,
    poll_interval_seconds: float,
    command_timeout: float | None,
    clock: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], None] = time.sleep,
) -> float:
    """Reboot a host and block until it answers with a new boot id.

    Args:
        executor: Executor of the host to reboot.
        timeout_seconds: Bound on the whole wait.
        poll_interval_seconds: Delay between reachability probes.
        command_timeout: Timeout for individual commands.
        clock: Monotonic clock, injectable for tests.
        sleep: Sleep function, injectable for tests.

    Returns:
        Seconds spent waiting for the host.

    Raises:
        RebootTimeoutError: If the host does not come back in time.
    """
    previous_boot_id = read_boot_id(executor, command_timeout)
    schedule_reboot(executor, command_timeout)
    started_at = clock()
    deadline = started_at + timeout_seconds
    _LOGGER.info("reboot_scheduled", host=executor.host, timeout_seconds=timeout_seconds)
    while True:
        remaining = deadline - clock()
        if remaining <= 0:
            break
        sleep(min(poll_interval_seconds, remaining))
        probe_timeout = remaining if command_timeout is None else min(command_timeout, remaining)
        try:
            boot_id = read_boot_id(executor, max(probe_timeout, 1.0))
        except ConnectivityError:
            continue
        if boot_id and boot_id != previous_boot_id:
            waited = clock() - started_at
            _LOGGER.info("reboot_completed", host=executor.host, waited_seconds=round(waited, 1))
            return waited
    raise RebootTimeoutError(
        f"{executor.host} did not come back within {timeout_seconds:g} seconds after reboot. "
        "Check the console of the machine."
    )
