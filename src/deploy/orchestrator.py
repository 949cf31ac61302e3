"""Per-target deployment state machine.

Phases run strictly in order: pending, built, checked, copied, activated,
verified. The first domain error stops the pipeline and is recorded as a
failure of the phase that was being attempted.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable

from builds.build_types import BuildOutcome, BuildPlan
from builds.plan_execution import BuildContext, execute_build_plan
from builds.strategy import resolve_build_plan
from checks.evaluator import evaluate_report
from checks.registry import CheckRegistry
from core.config_model import ConfigString
from core.errors import (
    ActivationError,
    BuildFailure,
    CheckFailure,
    ConnectivityError,
    CopyError,
    EvaluationError,
    FleetguardError,
    PermissionDeniedError,
    RebootTimeoutError,
)
from core.logging_config import get_logger
from core.types import Target
from deploy.deploy_types import (
    PHASE_ORDER,
    DeploymentFailure,
    DeploymentOptions,
    DeploymentOutcome,
    DeploymentPhase,
)
from deploy.reboot import reboot_and_wait
from deploy.status import count_failed_units, poll_status
from nixhost.capabilities import LocalCapabilities
from nixhost.nix_commands import (
    changed_boot_components,
    copy_closure_to_host,
    set_system_profile,
    switch_to_configuration,
)
from nixhost.remote import HostExecutor
from store.ignore_store import IgnoreStore

_LOGGER = get_logger(__name__)
HOSTNAME_PATH = "networking.hostName"

_FAILURE_KINDS: tuple[tuple[type[FleetguardError], str], ...] = (
    (EvaluationError, "evaluation_error"),
    (CheckFailure, "check_failure"),
    (BuildFailure, "build_failure"),
    (ConnectivityError, "connectivity_error"),
    (PermissionDeniedError, "permission_denied"),
    (CopyError, "copy_error"),
    (RebootTimeoutError, "reboot_timeout"),
    (ActivationError, "activation_error"),
)


@dataclass(frozen=True)
class DeploymentContext:
    """Collaborators and bounds shared by every target of one run.

    Attributes:
        registry: Check registry used for the gate.
        ignore_store: Ignore snapshot used for the gate.
        capabilities: Probed local build capabilities.
        build_context: Runner and executors for build plans.
        remote_executor: Factory of executors for a target host.
        local_executor: Executor for this machine.
        command_timeout: Timeout for copy and activation commands.
        status_timeout: Timeout for each verification query.
        reboot_timeout_seconds: Bound on the reboot wait.
        reboot_poll_interval_seconds: Delay between reboot probes.
        clock: Monotonic clock for the reboot wait.
        sleep: Sleep function for the reboot wait.
    """

    registry: CheckRegistry
    ignore_store: IgnoreStore
    capabilities: LocalCapabilities
    build_context: BuildContext
    remote_executor: Callable[[str], HostExecutor]
    local_executor: HostExecutor
    command_timeout: float | None
    status_timeout: float | None
    reboot_timeout_seconds: float
    reboot_poll_interval_seconds: float
    clock: Callable[[], float] = time.monotonic
    sleep: Callable[[float], None] = time.sleep


def deploy_target(
    target: Target,
    context: DeploymentContext,
    options: DeploymentOptions,
) -> DeploymentOutcome:
    """Build, gate, copy, activate and verify one target.

    Args:
        target: Evaluated target.
        context: Shared collaborators.
        options: Caller choices.

    Returns:
        Outcome; domain errors are captured as a failed outcome instead of
        being raised.
    """
    phase: DeploymentPhase = "pending"
    warnings: list[str] = []
    plan: BuildPlan | None = None
    store_path: str | None = None
    rebooted = False
    try:
        plan = resolve_build_plan(target, context.capabilities)
        build = execute_build_plan(target, plan, context.build_context)
        store_path = build.store_path
        phase = _advance(target, "built")

        warnings.extend(_gate(target, context, options))
        phase = _advance(target, "checked")

        executor = _activation_executor(target, context, options)
        _copy(build, executor, context)
        phase = _advance(target, "copied")

        baseline = _baseline_failed_units(executor, context)
        set_system_profile(executor, store_path, context.command_timeout)
        switch_to_configuration(executor, store_path, context.command_timeout)
        rebooted, reboot_warning = _handle_reboot(executor, store_path, context, options)
        if reboot_warning:
            warnings.append(reboot_warning)
        phase = _advance(target, "activated")

        if options.verify:
            warnings.extend(_verify(target, executor, store_path, baseline, context))
        phase = _advance(target, "verified")
    except FleetguardError as error:
        failed_phase = _next_phase(phase)
        kind = failure_kind(error)
        _LOGGER.warning(
            "deployment_failed",
            target=target.target_id,
            phase=failed_phase,
            kind=kind,
            error=str(error),
        )
        return DeploymentOutcome(
            target_id=target.target_id,
            phase_reached=phase,
            result="failed",
            failure=DeploymentFailure(
                phase=failed_phase,
                kind=kind,
                detail=str(error),
                failures=error.failures if isinstance(error, CheckFailure) else (),
            ),
            warnings=tuple(warnings),
            plan=plan,
            store_path=store_path,
        )
    return DeploymentOutcome(
        target_id=target.target_id,
        phase_reached=phase,
        result="switched_with_reboot" if rebooted else "switched",
        warnings=tuple(warnings),
        plan=plan,
        store_path=store_path,
    )


def failure_kind(error: FleetguardError) -> str:
    """Stable snake_case name of a domain error, e.g. ``copy_error``."""
    for error_type, kind in _FAILURE_KINDS:
        if isinstance(error, error_type):
            if isinstance(error, BuildFailure):
                return f"{kind}.{error.kind}"
            return kind
    return "error"


def _advance(target: Target, phase: DeploymentPhase) -> DeploymentPhase:
    _LOGGER.info("deployment_phase_reached", target=target.target_id, phase=phase)
    return phase


def _next_phase(phase: DeploymentPhase) -> DeploymentPhase:
    index = PHASE_ORDER.index(phase)
    return PHASE_ORDER[min(index + 1, len(PHASE_ORDER) - 1)]


def _gate(
    target: Target,
    context: DeploymentContext,
    options: DeploymentOptions,
) -> list[str]:
    if options.expected_hostname is not None:
        _check_hostname(target, options.expected_hostname)
    report = evaluate_report(target, context.registry, context.ignore_store)
    if report.verdict == "passed":
        return []
    failures = tuple(
        f"{result.check_id}.{row.assertion_id}: {row.message} (hint: {row.hint})"
        for result, row in report.failure_rows
    )
    if options.force:
        return [f"checks failed, deploying anyway: {failure}" for failure in failures]
    raise CheckFailure(
        f"{len(failures)} check assertion(s) failed for {target.target_id}. "
        "Fix or ignore the settings, or pass --force.",
        failures=failures,
    )


def _check_hostname(target: Target, expected_hostname: str) -> None:
    value = target.config.get(HOSTNAME_PATH)
    configured = value.value if isinstance(value, ConfigString) else None
    if configured == expected_hostname:
        return
    raise CheckFailure(
        f"Refusing to activate {target.target_id} on host '{expected_hostname}': "
        f"the configuration sets networking.hostName to '{configured or 'nothing'}'. "
        "Pass --ignore-hostname to activate it anyway.",
        failures=(f"hostname: expected {expected_hostname}, configured {configured}",),
    )


def _activation_executor(
    target: Target,
    context: DeploymentContext,
    options: DeploymentOptions,
) -> HostExecutor:
    if options.local:
        return context.local_executor
    host = target.deploy_host
    if host is None:
        raise ConnectivityError(
            f"{target.target_id} sets neither networking.fqdn nor networking.hostName. "
            "Set one of them so the target can be reached."
        )
    return context.remote_executor(host)


def _copy(build: BuildOutcome, executor: HostExecutor, context: DeploymentContext) -> None:
    if executor.is_local or build.on_target:
        return
    copy_closure_to_host(
        context.build_context.runner,
        build.store_path,
        executor.host,
        context.command_timeout,
        context.build_context.connect_timeout,
    )


def _baseline_failed_units(executor: HostExecutor, context: DeploymentContext) -> int | None:
    try:
        return count_failed_units(executor, context.status_timeout)
    except FleetguardError as error:
        _LOGGER.info("failed_unit_baseline_unavailable", host=executor.host, error=str(error))
        return None


def _handle_reboot(
    executor: HostExecutor,
    store_path: str,
    context: DeploymentContext,
    options: DeploymentOptions,
) -> tuple[bool, str | None]:
    components = changed_boot_components(executor, store_path, context.command_timeout)
    if not components:
        return False, None
    changed = ", ".join(components)
    if not options.reboot or executor.is_local:
        return False, f"reboot required to apply changed {changed}"
    reboot_and_wait(
        executor,
        context.reboot_timeout_seconds,
        context.reboot_poll_interval_seconds,
        context.command_timeout,
        clock=context.clock,
        sleep=context.sleep,
    )
    return True, None


def _verify(
    target: Target,
    executor: HostExecutor,
    store_path: str,
    baseline: int | None,
    context: DeploymentContext,
) -> list[str]:
    status = poll_status(target, executor, context.status_timeout, expected_generation=store_path)
    warnings = [f"verification incomplete: {error}" for error in status.errors]
    if status.generation_up_to_date is False:
        warnings.append(
            f"new generation is not live: running {status.current_generation}, "
            f"expected {store_path}"
        )
    if (
        status.failed_unit_count is not None
        and status.failed_unit_count > (baseline or 0)
    ):
        warnings.append(
            f"failed units increased from {baseline or 0} to {status.failed_unit_count}"
        )
    return warnings
