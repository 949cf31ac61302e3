"""Build command wiring for Fleetguard CLI."""

from __future__ import annotations

import argparse
from typing import Any

from cli.output import render_unfinished_entry
from fleet.client import FleetguardClient


def add_build_command(subparsers: Any) -> None:
    """Register build subcommand."""
    parser = subparsers.add_parser(
        "build",
        help="Build target system closures without activating them",
    )
    parser.add_argument("targets", nargs="*", help="Targets as [flake#]name; default all")


def run_build_command(client: FleetguardClient, args: argparse.Namespace) -> int:
    """Build every target and print its store path."""
    report = client.build(args.targets)
    for entry in report.entries:
        if entry.status != "ok" or entry.result is None:
            print(render_unfinished_entry(entry))
            continue
        plan = entry.result.plan
        print(
            f"target={entry.target_id} status=built strategy={plan.strategy} "
            f"host={plan.host or '-'} store_path={entry.result.store_path}"
        )
    built = len(report.results)
    print(f"targets={len(report.entries)} built={built} failed={len(report.entries) - built}")
    return 0 if built == len(report.entries) else 1
