"""Activation commands for Fleetguard CLI."""

from __future__ import annotations

import argparse
from typing import Any

from cli.output import render_unfinished_entry
from deploy.deploy_types import DeploymentOutcome
from fleet.client import FleetguardClient
from fleet.runner import FleetReport
from store.ignore_rules import parse_ignore_rules


def add_switch_local_command(subparsers: Any) -> None:
    """Register switch-local subcommand."""
    parser = subparsers.add_parser(
        "switch-local",
        help="Build, check and activate a configuration on this machine",
    )
    parser.add_argument(
        "targets",
        nargs="*",
        help="Targets as [flake#]name; default is this machine's hostname",
    )
    _add_gate_arguments(parser)
    parser.add_argument(
        "--ignore-hostname",
        action="store_true",
        help="Activate even when the configuration's hostName differs from this machine",
    )


def add_switch_remote_command(subparsers: Any) -> None:
    """Register switch-remote subcommand."""
    parser = subparsers.add_parser(
        "switch-remote",
        help="Build, check, copy and activate configurations over ssh",
    )
    parser.add_argument("targets", nargs="*", help="Targets as [flake#]name; default all")
    _add_gate_arguments(parser)
    parser.add_argument(
        "--reboot",
        action="store_true",
        help="Reboot targets whose kernel or initrd changed and wait for them",
    )
    parser.add_argument(
        "--no-verify",
        dest="verify",
        action="store_false",
        help="Skip the status check after activation",
    )


def run_switch_local_command(client: FleetguardClient, args: argparse.Namespace) -> int:
    """Activate configurations locally and print each outcome."""
    report = client.switch_local(
        args.targets,
        force=args.force,
        ignore_hostname=args.ignore_hostname,
        ignore_rules=parse_ignore_rules(args.ignore) if args.ignore else None,
    )
    return _print_deployment_report(report)


def run_switch_remote_command(client: FleetguardClient, args: argparse.Namespace) -> int:
    """Activate configurations on remote targets and print each outcome."""
    report = client.switch_remote(
        args.targets,
        force=args.force,
        reboot=args.reboot,
        verify=args.verify,
        ignore_rules=parse_ignore_rules(args.ignore) if args.ignore else None,
    )
    return _print_deployment_report(report)


def render_outcome(outcome: DeploymentOutcome) -> list[str]:
    """Render one deployment outcome with its warnings and failures."""
    strategy = outcome.plan.strategy if outcome.plan else "-"
    line = (
        f"target={outcome.target_id} result={outcome.result} phase={outcome.phase_reached} "
        f"strategy={strategy} store_path={outcome.store_path or '-'}"
    )
    if outcome.failure is not None:
        line += (
            f" failed_phase={outcome.failure.phase} kind={outcome.failure.kind}"
            f" :: {outcome.failure.detail}"
        )
    lines = [line]
    if outcome.failure is not None:
        lines.extend(f"  failure: {item}" for item in outcome.failure.failures)
    lines.extend(f"  warning: {warning}" for warning in outcome.warnings)
    return lines


def _add_gate_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--force", action="store_true", help="Deploy even when checks fail")
    parser.add_argument(
        "--ignore",
        default="",
        help="Comma separated check.assertion or check.* rules for this run only",
    )


def _print_deployment_report(report: FleetReport[DeploymentOutcome]) -> int:
    failed = 0
    for entry in report.entries:
        if entry.status != "ok" or entry.result is None:
            failed += 1
            print(render_unfinished_entry(entry))
            continue
        if entry.result.failed:
            failed += 1
        print("\n".join(render_outcome(entry.result)))
    switched = len(report.entries) - failed
    print(f"targets={len(report.entries)} switched={switched} failed={failed}")
    return 0 if failed == 0 else 1
