"""Registry listing command for Fleetguard CLI."""

from __future__ import annotations

import argparse
from typing import Any

from checks.report import render_registry
from fleet.client import FleetguardClient


def add_checks_command(subparsers: Any) -> None:
    """Register checks subcommand."""
    subparsers.add_parser("checks", help="List every available check")


def run_checks_command(client: FleetguardClient, args: argparse.Namespace) -> int:
    """Print the check registry; no target is evaluated."""
    print(render_registry(client.checks()))
    return 0
