"""Fleetguard exception hierarchy.

This module defines traceable domain errors with clear boundaries.
Every error raised inside a target pipeline is attributed to exactly
one target by the fleet runner.
"""

from __future__ import annotations

from typing import Literal

BuildFailureKind = Literal["local", "distributed", "remote_on_target"]


class FleetguardError(Exception):
    """Base exception for all Fleetguard failures."""


class FleetguardConfigError(FleetguardError):
    """Raised for invalid runtime configuration."""


class FlakeReferenceError(FleetguardError):
    """Raised for malformed target references."""


class EvaluationError(FleetguardError):
    """Raised when a target configuration cannot be evaluated."""


class CheckFailure(FleetguardError):
    """Raised when configuration checks gate a deployment."""

    def __init__(self, message: str, failures: tuple[str, ...] = ()) -> None:
        super().__init__(message)
        self.failures = failures


class BuildFailure(FleetguardError):
    """Raised when a build strategy cannot produce a system closure."""

    def __init__(self, kind: BuildFailureKind, message: str) -> None:
        super().__init__(message)
        self.kind: BuildFailureKind = kind


class ConnectivityError(FleetguardError):
    """Raised when a target host cannot be reached."""


class PermissionDeniedError(FleetguardError):
    """Raised when privilege escalation is rejected on a target."""


class CopyError(FleetguardError):
    """Raised when copying a closure to a target fails."""


class ActivationError(FleetguardError):
    """Raised when switching a target to a new generation fails."""


class RebootTimeoutError(FleetguardError):
    """Raised when a rebooted target does not come back in time."""


class IgnoreStoreError(FleetguardError):
    """Raised for ignore file read and write failures."""


class IgnoreRuleError(FleetguardError):
    """Raised for malformed ad-hoc ignore rules."""


class CommandTimeoutError(FleetguardError):
    """Raised when an external command exceeds its timeout."""


class StatusQueryError(FleetguardError):
    """Raised when one read-only status query returns unusable output."""
