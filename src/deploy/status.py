"""Read-only runtime status queries.

Each field of a status report comes from one independent query. Queries
run concurrently and a failing query only blanks its own field.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta
from typing import Callable, TypeVar

from core.constants import CURRENT_SYSTEM_PATH
from core.errors import FleetguardError, StatusQueryError
from core.logging_config import get_logger
from core.types import Target
from deploy.deploy_types import SystemStatus
from nixhost.nix_commands import changed_boot_components, current_system_path
from nixhost.remote import HostExecutor

_LOGGER = get_logger(__name__)
_QUERY_NAMES = ("generation", "reboot_required", "failed_units", "uptime")

T = TypeVar("T")


def poll_status(
    target: Target,
    executor: HostExecutor,
    timeout: float | None,
    expected_generation: str | None = None,
) -> SystemStatus:
    """Query the runtime state of one target.

    Args:
        target: Target whose host is queried.
        executor: Executor bound to the target's host.
        timeout: Timeout for each individual query.
        expected_generation: Store path that should be live; defaults to
            the target's evaluated toplevel.

    Returns:
        Status with unknown fields set to None and one error per failed query.
    """
    expected = expected_generation or target.toplevel_out_path
    queries: dict[str, Callable[[], object]] = {
        "generation": lambda: current_system_path(executor, timeout),
        "reboot_required": lambda: bool(
            changed_boot_components(executor, CURRENT_SYSTEM_PATH, timeout)
        ),
        "failed_units": lambda: count_failed_units(executor, timeout),
        "uptime": lambda: read_uptime(executor, timeout),
    }
    with ThreadPoolExecutor(max_workers=len(queries)) as pool:
        futures = {name: pool.submit(_guarded, name, query) for name, query in queries.items()}
        answers = {name: futures[name].result() for name in _QUERY_NAMES}
    errors = tuple(
        f"{name}: {answer[1]}" for name, answer in answers.items() if answer[1] is not None
    )
    current = answers["generation"][0]
    up_to_date = None
    if isinstance(current, str) and expected is not None:
        up_to_date = current == expected
    if errors:
        _LOGGER.warning("status_partial", target=target.target_id, errors=list(errors))
    return SystemStatus(
        target_id=target.target_id,
        host=executor.host,
        generation_up_to_date=up_to_date,
        reboot_required=_typed(answers["reboot_required"][0], bool),
        failed_unit_count=_typed(answers["failed_units"][0], int),
        uptime=_typed(answers["uptime"][0], timedelta),
        current_generation=current if isinstance(current, str) else None,
        errors=errors,
    )


def count_failed_units(executor: HostExecutor, timeout: float | None) -> int:
    """Number of systemd units in the failed state."""
    result = executor.run(
        ["systemctl", "list-units", "--state=failed", "--no-legend", "--plain"],
        timeout=timeout,
    )
    if not result.ok:
        raise StatusQueryError(f"systemctl failed on {executor.host}: {result.diagnostic()}")
    return sum(1 for line in result.stdout.splitlines() if line.strip())


def read_uptime(executor: HostExecutor, timeout: float | None) -> timedelta:
    """System uptime from /proc/uptime."""
    result = executor.run(["cat", "/proc/uptime"], timeout=timeout)
    if not result.ok:
        raise StatusQueryError(f"Reading uptime on {executor.host} failed: {result.diagnostic()}")
    fields = result.stdout.split()
    try:
        seconds = float(fields[0])
    except (IndexError, ValueError) as error:
        raise StatusQueryError(
            f"Unexpected /proc/uptime content on {executor.host}: {result.stdout.strip()!r}"
        ) from error
    return timedelta(seconds=int(seconds))


def _guarded(name: str, query: Callable[[], T]) -> tuple[T | None, str | None]:
    try:
        return query(), None
    except FleetguardError as error:
        _LOGGER.info("status_query_failed", query=name, error=str(error))
        return None, str(error)


def _typed(value: object, kind: type[T]) -> T | None:
    if isinstance(value, kind):
        return value
    return None
