"""Check command wiring for Fleetguard CLI."""

from __future__ import annotations

import argparse
from typing import Any

from checks.report import render_target_report
from cli.output import render_unfinished_entry
from fleet.client import FleetguardClient
from store.ignore_rules import parse_ignore_rules


def add_check_command(subparsers: Any) -> None:
    """Register check subcommand."""
    parser = subparsers.add_parser(
        "check",
        help="Evaluate best-practice checks against target configurations",
    )
    parser.add_argument("targets", nargs="*", help="Targets as [flake#]name; default all")
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Also list passing assertions and declared users",
    )
    parser.add_argument(
        "--save-ignore",
        action="store_true",
        help="Ignore current failures and forget ignores of fixed settings",
    )
    parser.add_argument(
        "--ignore",
        default="",
        help="Comma separated check.assertion or check.* rules for this run only",
    )


def run_check_command(client: FleetguardClient, args: argparse.Namespace) -> int:
    """Evaluate checks and print one block per target."""
    rules = parse_ignore_rules(args.ignore) if args.ignore else None
    if args.save_ignore:
        report, store = client.save_ignore(args.targets, rules)
        print(f"ignore_file={client.config.ignore_file} ignored_entries={len(store)}")
    else:
        report = client.check(args.targets, rules)
    passed = 0
    for entry in report.entries:
        if entry.status != "ok" or entry.result is None:
            print(render_unfinished_entry(entry))
            continue
        if entry.result.verdict == "passed":
            passed += 1
        print("\n".join(render_target_report(entry.result, verbose=args.verbose)))
    failed = len(report.entries) - passed
    print(f"targets={len(report.entries)} passed={passed} failed={failed}")
    return 0 if failed == 0 else 1
