"""Status command wiring for Fleetguard CLI."""

from __future__ import annotations

import argparse
from datetime import timedelta
from typing import Any

from cli.output import format_optional, render_unfinished_entry
from core.errors import FleetguardError
from deploy.deploy_types import SystemStatus
from fleet.client import FleetguardClient


def add_status_command(subparsers: Any) -> None:
    """Register status subcommand."""
    parser = subparsers.add_parser("status", help="Show runtime status of targets")
    parser.add_argument("targets", nargs="*", help="Targets as [flake#]name; default all")


def run_status_command(client: FleetguardClient, args: argparse.Namespace) -> int:
    """Print one status line per target; status never fails the run."""
    try:
        report = client.status(args.targets)
    except FleetguardError as error:
        print(f"error={error}")
        return 0
    for entry in report.entries:
        if entry.status != "ok" or entry.result is None:
            print(render_unfinished_entry(entry))
            continue
        print("\n".join(render_status(entry.result)))
    return 0


def render_status(status: SystemStatus) -> list[str]:
    """Render a status report; unknown fields print as ``unknown``."""
    lines = [
        f"target={status.target_id} host={status.host or '-'} "
        f"generation_up_to_date={format_optional(status.generation_up_to_date)} "
        f"reboot_required={format_optional(status.reboot_required)} "
        f"failed_units={format_optional(status.failed_unit_count)} "
        f"uptime={format_uptime(status.uptime)}"
    ]
    lines.extend(f"  error: {error}" for error in status.errors)
    return lines


def format_uptime(uptime: timedelta | None) -> str:
    """Compact uptime such as ``3d4h12m``."""
    if uptime is None:
        return "unknown"
    minutes = int(uptime.total_seconds()) // 60
    days, minutes = divmod(minutes, 24 * 60)
    hours, minutes = divmod(minutes, 60)
    if days:
        return f"{days}d{hours}h{minutes}m"
    if hours:
        return f"{hours}h{minutes}m"
    return f"{minutes}m"
