"""Unit tests for the public SDK import path."""

from __future__ import annotations

import fleetguard


def test_every_export_resolves() -> None:
    """Names listed in __all__ should be importable from the facade."""
    missing = [name for name in fleetguard.__all__ if not hasattr(fleetguard, name)]

    assert missing == []
    assert fleetguard.FleetguardClient.__name__ == "FleetguardClient"
