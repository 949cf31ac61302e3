"""Python SDK for fleet operations.

This module composes configuration, the evaluator, the check registry,
the ignore store and host executors into the high-level operations the
command line exposes.
"""

from __future__ import annotations

import socket
import threading
from typing import Callable, Sequence, TypeVar

from builds.build_types import BuildOutcome
from builds.plan_execution import BuildContext, execute_build_plan
from builds.strategy import resolve_build_plan
from checks.check_types import TargetCheckReport
from checks.evaluator import compute_ignore_update, evaluate, evaluate_report
from checks.registry import CheckRegistry
from checks.standard_checks import build_standard_registry
from core.config import FleetguardConfig
from core.errors import ConnectivityError
from core.flake_reference import FlakeReference, parse_flake_reference
from core.logging_config import get_logger
from core.types import Target
from deploy.deploy_types import DeploymentOptions, DeploymentOutcome, SystemStatus
from deploy.orchestrator import DeploymentContext, deploy_target
from deploy.status import poll_status
from fleet.runner import FleetEntry, FleetReport, run_fleet
from nixhost.capabilities import LocalCapabilities, probe_local_capabilities
from nixhost.command_runner import CommandRunner, LocalCommandRunner
from nixhost.evaluator import ConfigEvaluator, NixEvaluator
from nixhost.operator_info import collect_operator_info
from nixhost.remote import HostExecutor, LocalExecutor, SshExecutor
from store.ignore_rules import IgnoreRules
from store.ignore_store import IgnoreStore, load_ignore_store, save_ignore_store

_LOGGER = get_logger(__name__)

R = TypeVar("R")
S = TypeVar("S")


class FleetguardClient:
    """Primary SDK entry point for check, build, deploy and status workflows."""

    def __init__(
        self,
        config: FleetguardConfig | None = None,
        runner: CommandRunner | None = None,
        evaluator: ConfigEvaluator | None = None,
        registry: CheckRegistry | None = None,
        capabilities: LocalCapabilities | None = None,
        remote_executor: Callable[[str], HostExecutor] | None = None,
        local_executor: HostExecutor | None = None,
        hostname: str | None = None,
        abort_event: threading.Event | None = None,
    ) -> None:
        """Create SDK client.

        Every collaborator is optional; missing ones are built from the
        configuration the first time they are needed.

        Args:
            config: Optional runtime configuration.
            runner: Local command runner.
            evaluator: Target configuration evaluator.
            registry: Check registry; defaults to the standard checks for
                the current operator.
            capabilities: Local build capabilities; probed when omitted.
            remote_executor: Factory of executors for a target host.
            local_executor: Executor for this machine.
            hostname: Local hostname used by switch-local.
            abort_event: Set to stop dispatching new targets.
        """
        self._config = config or FleetguardConfig.from_env()
        self._runner = runner or LocalCommandRunner()
        self._evaluator = evaluator or NixEvaluator(
            self._runner, timeout=self._config.command_timeout_seconds
        )
        self._registry = registry
        self._capabilities = capabilities
        self._remote_executor = remote_executor or self._ssh_executor
        self._local_executor = local_executor
        self._hostname = hostname
        self._abort_event = abort_event

    @property
    def config(self) -> FleetguardConfig:
        return self._config

    @property
    def registry(self) -> CheckRegistry:
        """Check registry, built for the current operator on first use."""
        if self._registry is None:
            operator = collect_operator_info(
                self._runner, timeout=self._config.ssh_connect_timeout_seconds
            )
            self._registry = build_standard_registry(operator)
        return self._registry

    @property
    def capabilities(self) -> LocalCapabilities:
        if self._capabilities is None:
            self._capabilities = probe_local_capabilities(
                self._runner,
                builders_override=self._config.builders,
                timeout=self._config.status_timeout_seconds,
            )
        return self._capabilities

    def checks(self) -> CheckRegistry:
        """Return the check registry for listing; evaluates no target."""
        return self.registry

    def resolve_targets(self, references: Sequence[str]) -> tuple[FlakeReference, ...]:
        """Parse target references, or discover every configuration.

        Args:
            references: ``[url#]attribute`` strings; empty means all
                ``nixosConfigurations`` of the configured flake.

        Returns:
            Distinct references in the given order.

        Raises:
            FlakeReferenceError: If a reference is malformed.
            EvaluationError: If discovery fails.
        """
        if not references:
            return self._evaluator.discover(self._config.flake_url)
        parsed = (parse_flake_reference(text, self._config.flake_url) for text in references)
        return tuple(dict.fromkeys(parsed))

    def local_reference(self) -> FlakeReference:
        """Reference of this machine's configuration in the configured flake."""
        return FlakeReference(url=self._config.flake_url, attribute=self._local_hostname())

    def check(
        self,
        references: Sequence[str],
        ignore_rules: IgnoreRules | None = None,
    ) -> FleetReport[TargetCheckReport]:
        """Evaluate every check against every target.

        Args:
            references: Target references; empty means all.
            ignore_rules: Session-only ignore rules.

        Returns:
            Report with one check report per evaluated target.
        """
        targets = self.resolve_targets(references)
        store = self._session_store(targets, ignore_rules)
        registry = self.registry
        return self._run(
            targets,
            lambda reference: evaluate_report(self._evaluate(reference), registry, store),
        )

    def save_ignore(
        self,
        references: Sequence[str],
        ignore_rules: IgnoreRules | None = None,
    ) -> tuple[FleetReport[TargetCheckReport], IgnoreStore]:
        """Record current failures in the ignore store and drop fixed ones.

        The store is rewritten once, after every target was evaluated.

        Args:
            references: Target references; empty means all.
            ignore_rules: Session-only ignore rules applied to the returned
                reports, never persisted.

        Returns:
            Check reports against the updated store, and the saved store.

        Raises:
            IgnoreStoreError: If the store cannot be read or written.
        """
        targets = self.resolve_targets(references)
        registry = self.registry
        evaluated = self._run(targets, self._evaluate)
        current = load_ignore_store(self._config.ignore_file)
        updated = compute_ignore_update(
            current,
            (evaluate(target, registry, current) for target in evaluated.results),
        )
        save_ignore_store(self._config.ignore_file, updated)
        session = self._with_rules(updated, targets, ignore_rules)
        return (
            _map_report(evaluated, lambda target: evaluate_report(target, registry, session)),
            updated,
        )

    def build(self, references: Sequence[str]) -> FleetReport[BuildOutcome]:
        """Resolve and execute a build plan for every target; no activation."""
        targets = self.resolve_targets(references)
        capabilities = self.capabilities
        context = self._build_context()

        def pipeline(reference: FlakeReference) -> BuildOutcome:
            target = self._evaluate(reference, check_paths=False)
            return execute_build_plan(target, resolve_build_plan(target, capabilities), context)

        return self._run(targets, pipeline)

    def switch_local(
        self,
        references: Sequence[str],
        force: bool = False,
        ignore_hostname: bool = False,
        ignore_rules: IgnoreRules | None = None,
    ) -> FleetReport[DeploymentOutcome]:
        """Build, check and activate configurations on this machine.

        Args:
            references: Target references; empty means this host's
                configuration.
            force: Activate even when checks fail.
            ignore_hostname: Activate configurations for other hostnames.
            ignore_rules: Session-only ignore rules.

        Returns:
            Deployment report; targets run one at a time.
        """
        targets = self.resolve_targets(references) if references else (self.local_reference(),)
        options = DeploymentOptions(
            force=force,
            local=True,
            expected_hostname=None if ignore_hostname else self._local_hostname(),
        )
        return self._deploy(targets, options, ignore_rules, max_workers=1)

    def switch_remote(
        self,
        references: Sequence[str],
        force: bool = False,
        reboot: bool = False,
        verify: bool = True,
        ignore_rules: IgnoreRules | None = None,
        continue_on_failure: bool = True,
    ) -> FleetReport[DeploymentOutcome]:
        """Build, check, copy and activate configurations over ssh.

        Args:
            references: Target references; empty means all.
            force: Deploy even when checks fail.
            reboot: Reboot targets whose boot components changed.
            verify: Re-poll status after activation.
            ignore_rules: Session-only ignore rules.
            continue_on_failure: When false, stop starting new targets
                after the first failed deployment.

        Returns:
            Deployment report.
        """
        targets = self.resolve_targets(references)
        options = DeploymentOptions(force=force, reboot=reboot, verify=verify)
        return self._deploy(
            targets,
            options,
            ignore_rules,
            continue_on_failure=continue_on_failure,
        )

    def status(self, references: Sequence[str]) -> FleetReport[SystemStatus]:
        """Query runtime status of every target; read-only."""
        targets = self.resolve_targets(references)
        timeout = self._config.status_timeout_seconds

        def pipeline(reference: FlakeReference) -> SystemStatus:
            target = self._evaluate(reference, check_paths=False)
            host = target.deploy_host
            if host is None:
                raise ConnectivityError(
                    f"{target.target_id} sets neither networking.fqdn nor networking.hostName. "
                    "Set one of them so the target can be queried."
                )
            return poll_status(target, self._remote_executor(host), timeout)

        return self._run(targets, pipeline)

    def _deploy(
        self,
        targets: Sequence[FlakeReference],
        options: DeploymentOptions,
        ignore_rules: IgnoreRules | None,
        max_workers: int | None = None,
        continue_on_failure: bool = True,
    ) -> FleetReport[DeploymentOutcome]:
        context = DeploymentContext(
            registry=self.registry,
            ignore_store=self._session_store(targets, ignore_rules),
            capabilities=self.capabilities,
            build_context=self._build_context(),
            remote_executor=self._remote_executor,
            local_executor=self._local(),
            command_timeout=self._config.command_timeout_seconds,
            status_timeout=self._config.status_timeout_seconds,
            reboot_timeout_seconds=self._config.reboot_timeout_seconds,
            reboot_poll_interval_seconds=self._config.reboot_poll_interval_seconds,
        )
        return self._run(
            targets,
            lambda reference: deploy_target(self._evaluate(reference), context, options),
            max_workers=max_workers,
            continue_on_failure=continue_on_failure,
            is_failure=lambda outcome: outcome.failed,
        )

    def _run(
        self,
        targets: Sequence[FlakeReference],
        pipeline: Callable[[FlakeReference], R],
        max_workers: int | None = None,
        continue_on_failure: bool = True,
        is_failure: Callable[[R], bool] | None = None,
    ) -> FleetReport[R]:
        return run_fleet(
            targets,
            pipeline,
            max_workers or self._config.max_workers,
            continue_on_failure=continue_on_failure,
            abort_event=self._abort_event,
            is_failure=is_failure,
        )

    def _evaluate(self, reference: FlakeReference, check_paths: bool = True) -> Target:
        paths = self.registry.export_paths() if check_paths else ()
        return self._evaluator.evaluate(reference, paths)

    def _session_store(
        self,
        targets: Sequence[FlakeReference],
        ignore_rules: IgnoreRules | None,
    ) -> IgnoreStore:
        return self._with_rules(load_ignore_store(self._config.ignore_file), targets, ignore_rules)

    def _with_rules(
        self,
        store: IgnoreStore,
        targets: Sequence[FlakeReference],
        ignore_rules: IgnoreRules | None,
    ) -> IgnoreStore:
        if not ignore_rules:
            return store
        entries = ignore_rules.expand((str(target) for target in targets), self.registry)
        return store.with_entries(entries)

    def _build_context(self) -> BuildContext:
        return BuildContext(
            runner=self._runner,
            remote_executor=self._remote_executor,
            timeout=self._config.command_timeout_seconds,
            connect_timeout=self._config.ssh_connect_timeout_seconds,
        )

    def _ssh_executor(self, host: str) -> HostExecutor:
        return SshExecutor(host, self._runner, self._config.ssh_connect_timeout_seconds)

    def _local(self) -> HostExecutor:
        if self._local_executor is None:
            self._local_executor = LocalExecutor(self._runner, host=self._local_hostname())
        return self._local_executor

    def _local_hostname(self) -> str:
        if self._hostname is None:
            self._hostname = socket.gethostname().split(".", 1)[0]
        return self._hostname


def _map_report(report: FleetReport[S], transform: Callable[[S], R]) -> FleetReport[R]:
    entries: list[FleetEntry[R]] = []
    for entry in report.entries:
        if entry.status == "ok" and entry.result is not None:
            entries.append(
                FleetEntry(target_id=entry.target_id, status="ok", result=transform(entry.result))
            )
        else:
            entries.append(
                FleetEntry(
                    target_id=entry.target_id,
                    status=entry.status,
                    error=entry.error,
                    error_type=entry.error_type,
                )
            )
    return FleetReport(entries=tuple(entries))
