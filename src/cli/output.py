"""Shared text rendering of fleet report entries."""

from __future__ import annotations

from fleet.runner import FleetEntry


def render_unfinished_entry(entry: FleetEntry) -> str:
    """Render a failed or skipped entry as one line."""
    if entry.status == "skipped":
        return f"target={entry.target_id} status=skipped"
    return f"target={entry.target_id} status=failed error_type={entry.error_type} :: {entry.error}"


def format_optional(value: object) -> str:
    """Render a possibly unknown value; booleans print lowercase."""
    if value is None:
        return "unknown"
    if isinstance(value, bool):
        return str(value).lower()
    return str(value)
