"""Execution of resolved build plans."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

from core.errors import BuildFailure, BuildFailureKind
from core.logging_config import get_logger
from core.types import Target
from builds.build_types import BuildOutcome, BuildPlan, BuildStrategy
from nixhost.command_runner import CommandRunner
from nixhost.nix_commands import (
    NixCommandError,
    build_toplevel,
    copy_derivation_to_host,
    realise_on_host,
)
from nixhost.remote import HostExecutor

_LOGGER = get_logger(__name__)

_FAILURE_KINDS: dict[BuildStrategy, BuildFailureKind] = {
    "local": "local",
    "distributed_builder": "distributed",
    "remote_on_target": "remote_on_target",
}


@dataclass(frozen=True)
class BuildContext:
    """Collaborators needed to run a build plan."""

    runner: CommandRunner
    remote_executor: Callable[[str], HostExecutor]
    timeout: float | None
    connect_timeout: int


def execute_build_plan(target: Target, plan: BuildPlan, context: BuildContext) -> BuildOutcome:
    """Run a build plan and return the produced store path.

    Args:
        target: Target being built.
        plan: Plan from ``resolve_build_plan``.
        context: Command runner and executors.

    Returns:
        Build outcome with the toplevel store path.

    Raises:
        BuildFailure: Tagged with the strategy that failed.
        ConnectivityError: If the target cannot be reached for an on-target build.
    """
    _LOGGER.info("build_started", target=target.target_id, strategy=plan.strategy, host=plan.host)
    try:
        store_path = _run_strategy(target, plan, context)
    except NixCommandError as error:
        _LOGGER.warning("build_failed", target=target.target_id, strategy=plan.strategy)
        raise BuildFailure(_FAILURE_KINDS[plan.strategy], str(error)) from error
    _LOGGER.info("build_finished", target=target.target_id, store_path=store_path)
    return BuildOutcome(plan=plan, store_path=store_path)


def _run_strategy(target: Target, plan: BuildPlan, context: BuildContext) -> str:
    if plan.strategy == "local":
        return build_toplevel(context.runner, target.reference, context.timeout)
    if plan.strategy == "distributed_builder":
        if plan.builder is None:
            raise NixCommandError(f"Build plan for {target.target_id} names no builder.")
        return build_toplevel(
            context.runner,
            target.reference,
            context.timeout,
            extra_args=("--max-jobs", "0", "--builders", plan.builder.spec),
        )
    return _build_on_target(target, plan, context)


def _build_on_target(target: Target, plan: BuildPlan, context: BuildContext) -> str:
    drv_path = target.toplevel_drv_path
    if drv_path is None:
        raise NixCommandError(
            f"Cannot build {target.target_id} on the target: its derivation path is unknown."
        )
    if plan.host is None:
        raise NixCommandError(f"Build plan for {target.target_id} names no target host.")
    copy_derivation_to_host(
        context.runner,
        drv_path,
        plan.host,
        context.timeout,
        context.connect_timeout,
    )
    return realise_on_host(context.remote_executor(plan.host), drv_path, context.timeout)
