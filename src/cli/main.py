"""Fleetguard CLI entry points.
This module exposes check, build, deployment and status commands.
It maps argparse commands onto SDK calls.
"""

from __future__ import annotations

import argparse
import math
from dataclasses import replace
from pathlib import Path
from typing import Callable, Sequence

from cli.build_command import add_build_command, run_build_command
from cli.check_command import add_check_command, run_check_command
from cli.checks_command import add_checks_command, run_checks_command
from cli.status_command import add_status_command, run_status_command
from cli.switch_command import (
    add_switch_local_command,
    add_switch_remote_command,
    run_switch_local_command,
    run_switch_remote_command,
)
from core.config import FleetguardConfig
from core.errors import FleetguardConfigError, FleetguardError
from fleet.client import FleetguardClient

CommandHandler = Callable[[FleetguardClient, argparse.Namespace], int]

_COMMANDS: dict[str, CommandHandler] = {
    "check": run_check_command,
    "checks": run_checks_command,
    "build": run_build_command,
    "switch-local": run_switch_local_command,
    "switch-remote": run_switch_remote_command,
    "status": run_status_command,
}


def build_parser() -> argparse.ArgumentParser:
    """Build the top-level CLI parser.

    Returns:
        Configured argument parser.
    """
    parser = argparse.ArgumentParser(
        prog="fleetguard",
        description="Check, build and deploy NixOS configurations safely",
    )
    parser.add_argument("--flake", help="Override FLEETGUARD_FLAKE for this command")
    parser.add_argument("--ignore-file", help="Override FLEETGUARD_IGNORE_FILE for this command")
    parser.add_argument(
        "--max-workers",
        type=int,
        help="Override FLEETGUARD_MAX_WORKERS for this command",
    )
    parser.add_argument(
        "--reboot-timeout",
        type=float,
        help="Override FLEETGUARD_REBOOT_TIMEOUT (seconds) for this command",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)
    add_check_command(subparsers)
    add_checks_command(subparsers)
    add_build_command(subparsers)
    add_switch_local_command(subparsers)
    add_switch_remote_command(subparsers)
    add_status_command(subparsers)
    return parser


def main(
    argv: Sequence[str] | None = None,
    client_factory: Callable[[FleetguardConfig], FleetguardClient] = FleetguardClient,
) -> int:
    """Run the Fleetguard CLI.

    Args:
        argv: Optional argument vector.
        client_factory: Builds the SDK client from the resolved config.

    Returns:
        Process exit code.
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        config = _build_config(args)
    except FleetguardConfigError as error:
        print(f"error={error}")
        return 2
    handler = _COMMANDS.get(args.command)
    if handler is None:
        parser.error(f"Unsupported command: {args.command}")
        return 2
    try:
        return handler(client_factory(config), args)
    except FleetguardConfigError as error:
        print(f"error={error}")
        return 2
    except FleetguardError as error:
        print(f"error={error}")
        return 1


def _build_config(args: argparse.Namespace) -> FleetguardConfig:
    """Build config from the environment with CLI overrides applied.

    Args:
        args: Parsed CLI args.

    Returns:
        Validated config.

    Raises:
        FleetguardConfigError: If a value is invalid.
    """
    config = FleetguardConfig.from_env()
    if args.flake:
        config = replace(config, flake_url=args.flake)
    if args.ignore_file:
        config = replace(config, ignore_file=Path(args.ignore_file).expanduser())
    if args.max_workers is not None:
        if args.max_workers < 1:
            raise FleetguardConfigError(
                f"Invalid --max-workers value: expected at least 1, got {args.max_workers}."
            )
        config = replace(config, max_workers=args.max_workers)
    if args.reboot_timeout is not None:
        if not math.isfinite(args.reboot_timeout) or args.reboot_timeout <= 0:
            raise FleetguardConfigError(
                f"Invalid --reboot-timeout value: expected a positive finite duration, "
                f"got {args.reboot_timeout}."
            )
        config = replace(config, reboot_timeout_seconds=args.reboot_timeout)
    return config
