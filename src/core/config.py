"""Runtime configuration model for Fleetguard.

This module owns all environment variable parsing and validation.
Other modules consume a typed config object instead of raw env reads.
"""

from __future__ import annotations

from dataclasses import dataclass
import math
import os
from pathlib import Path

from core.constants import (
    DEFAULT_COMMAND_TIMEOUT_SECONDS,
    DEFAULT_FLAKE_URL,
    DEFAULT_IGNORE_FILE_NAME,
    DEFAULT_REBOOT_POLL_INTERVAL_SECONDS,
    DEFAULT_REBOOT_TIMEOUT_SECONDS,
    DEFAULT_SSH_CONNECT_TIMEOUT_SECONDS,
    DEFAULT_STATUS_TIMEOUT_SECONDS,
)
from core.errors import FleetguardConfigError


@dataclass(frozen=True)
class FleetguardConfig:
    """Validated runtime configuration.

    Attributes:
        flake_url: Flake used for bare target names and target discovery.
        ignore_file: Path of the persisted ignore store.
        max_workers: Upper bound of targets processed in parallel.
        command_timeout_seconds: Timeout for build, copy and activation commands.
        status_timeout_seconds: Timeout for each individual status query.
        reboot_timeout_seconds: Bound on waiting for a rebooted target.
        reboot_poll_interval_seconds: Delay between reachability probes.
        ssh_connect_timeout_seconds: ssh ConnectTimeout option value.
        builders: Optional builder list overriding the local nix configuration.
    """

    flake_url: str
    ignore_file: Path
    max_workers: int
    command_timeout_seconds: float
    status_timeout_seconds: float
    reboot_timeout_seconds: float
    reboot_poll_interval_seconds: float
    ssh_connect_timeout_seconds: int
    builders: str | None

    @classmethod
    def from_env(cls) -> "FleetguardConfig":
        """Build config from process environment variables.

        Returns:
            A validated config object.

        Raises:
            FleetguardConfigError: If environment values are invalid.
        """
        ignore_file_value = os.getenv("FLEETGUARD_IGNORE_FILE", DEFAULT_IGNORE_FILE_NAME)
        return cls(
            flake_url=os.getenv("FLEETGUARD_FLAKE", DEFAULT_FLAKE_URL),
            ignore_file=Path(ignore_file_value).expanduser(),
            max_workers=_parse_positive_int(
                "FLEETGUARD_MAX_WORKERS",
                os.getenv("FLEETGUARD_MAX_WORKERS", str(os.cpu_count() or 1)),
            ),
            command_timeout_seconds=_parse_positive_float(
                "FLEETGUARD_COMMAND_TIMEOUT",
                os.getenv("FLEETGUARD_COMMAND_TIMEOUT", str(DEFAULT_COMMAND_TIMEOUT_SECONDS)),
            ),
            status_timeout_seconds=_parse_positive_float(
                "FLEETGUARD_STATUS_TIMEOUT",
                os.getenv("FLEETGUARD_STATUS_TIMEOUT", str(DEFAULT_STATUS_TIMEOUT_SECONDS)),
            ),
            reboot_timeout_seconds=_parse_positive_float(
                "FLEETGUARD_REBOOT_TIMEOUT",
                os.getenv("FLEETGUARD_REBOOT_TIMEOUT", str(DEFAULT_REBOOT_TIMEOUT_SECONDS)),
            ),
            reboot_poll_interval_seconds=_parse_positive_float(
                "FLEETGUARD_REBOOT_POLL_INTERVAL",
                os.getenv(
                    "FLEETGUARD_REBOOT_POLL_INTERVAL",
                    str(DEFAULT_REBOOT_POLL_INTERVAL_SECONDS),
                ),
            ),
            ssh_connect_timeout_seconds=_parse_positive_int(
                "FLEETGUARD_SSH_CONNECT_TIMEOUT",
                os.getenv(
                    "FLEETGUARD_SSH_CONNECT_TIMEOUT",
                    str(DEFAULT_SSH_CONNECT_TIMEOUT_SECONDS),
                ),
            ),
            builders=os.getenv("FLEETGUARD_BUILDERS") or None,
        )


def _parse_positive_int(variable: str, raw_value: str) -> int:
    """Parse a strictly positive integer environment value.

    Args:
        variable: Environment variable name, used in the error message.
        raw_value: Raw string from environment.

    Returns:
        Parsed integer.

    Raises:
        FleetguardConfigError: If value is not a positive integer.
    """
    try:
        value = int(raw_value)
    except ValueError as error:
        raise FleetguardConfigError(
            f"Invalid {variable} value: expected integer, got '{raw_value}'. "
            f"Set {variable} to a positive whole number."
        ) from error
    if value < 1:
        raise FleetguardConfigError(
            f"Invalid {variable} value: expected at least 1, got {value}. "
            f"Set {variable} to a positive whole number."
        )
    return value


def _parse_positive_float(variable: str, raw_value: str) -> float:
    try:
        value = float(raw_value)
    except ValueError as error:
        raise FleetguardConfigError(
            f"Invalid {variable} value: expected number of seconds, got '{raw_value}'. "
            f"Set {variable} to a positive number."
        ) from error
    if not math.isfinite(value) or value <= 0:
        raise FleetguardConfigError(
            f"Invalid {variable} value: expected a positive finite duration, got {value}. "
            f"Set {variable} to a positive number."
        )
    return value
