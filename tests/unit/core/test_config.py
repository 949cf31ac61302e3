"""Unit tests for core config parsing."""

from __future__ import annotations

import pytest

from core.config import FleetguardConfig
from core.errors import FleetguardConfigError


def test_from_env_uses_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    """Config should fall back to documented defaults."""
    for variable in (
        "FLEETGUARD_FLAKE",
        "FLEETGUARD_IGNORE_FILE",
        "FLEETGUARD_REBOOT_TIMEOUT",
        "FLEETGUARD_BUILDERS",
    ):
        monkeypatch.delenv(variable, raising=False)

    config = FleetguardConfig.from_env()

    assert (config.flake_url, config.ignore_file.name, config.reboot_timeout_seconds) == (
        ".",
        ".fleetguard-ignore.yaml",
        300.0,
    ) and config.builders is None


def test_from_env_reads_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    """Config should resolve values from environment."""
    monkeypatch.setenv("FLEETGUARD_FLAKE", "github:example/infra")
    monkeypatch.setenv("FLEETGUARD_MAX_WORKERS", "3")
    monkeypatch.setenv("FLEETGUARD_REBOOT_POLL_INTERVAL", "0.5")

    config = FleetguardConfig.from_env()

    assert (config.flake_url, config.max_workers, config.reboot_poll_interval_seconds) == (
        "github:example/infra",
        3,
        0.5,
    )


def test_from_env_raises_for_invalid_worker_count(monkeypatch: pytest.MonkeyPatch) -> None:
    """Config should fail for non-numeric worker counts."""
    monkeypatch.setenv("FLEETGUARD_MAX_WORKERS", "many")

    with pytest.raises(FleetguardConfigError, match="FLEETGUARD_MAX_WORKERS"):
        FleetguardConfig.from_env()


def test_from_env_raises_for_non_positive_timeout(monkeypatch: pytest.MonkeyPatch) -> None:
    """Config should reject zero durations."""
    monkeypatch.setenv("FLEETGUARD_REBOOT_TIMEOUT", "0")

    with pytest.raises(FleetguardConfigError, match="positive"):
        FleetguardConfig.from_env()


@pytest.mark.parametrize("raw_value", ["nan", "inf", "-inf"])
def test_from_env_raises_for_non_finite_timeout(
    monkeypatch: pytest.MonkeyPatch,
    raw_value: str,
) -> None:
    """Config should reject durations that would never expire."""
    monkeypatch.setenv("FLEETGUARD_REBOOT_TIMEOUT", raw_value)

    with pytest.raises(FleetguardConfigError, match="finite"):
        FleetguardConfig.from_env()
