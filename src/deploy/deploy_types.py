"""Typed models for deployments and system status."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from typing import Literal

from builds.build_types import BuildPlan

DeploymentPhase = Literal["pending", "built", "checked", "copied", "activated", "verified"]
DeploymentResult = Literal["switched", "switched_with_reboot", "failed"]

PHASE_ORDER: tuple[DeploymentPhase, ...] = (
    "pending",
    "built",
    "checked",
    "copied",
    "activated",
    "verified",
)


@dataclass(frozen=True)
class DeploymentOptions:
    """Caller choices for one deployment run.

    Attributes:
        force: Deploy even when checks fail.
        reboot: Reboot when the new generation needs it.
        local: Activate on this machine instead of over ssh.
        verify: Re-poll status after activation.
        expected_hostname: For local switches, refuse to activate a
            configuration whose hostName differs from this value.
    """

    force: bool = False
    reboot: bool = False
    local: bool = False
    verify: bool = True
    expected_hostname: str | None = None


@dataclass(frozen=True)
class DeploymentFailure:
    """Why and where a deployment stopped."""

    phase: DeploymentPhase
    kind: str
    detail: str
    failures: tuple[str, ...] = ()


@dataclass(frozen=True)
class DeploymentOutcome:
    """Final state of one target's deployment.

    Attributes:
        target_id: Target identity.
        phase_reached: Last phase completed successfully.
        result: Switched, switched with reboot, or failed.
        failure: Failure details when ``result`` is failed.
        warnings: Non-fatal findings, e.g. a pending reboot.
        plan: Build plan that was executed, if resolution succeeded.
        store_path: Activated system closure, if the build succeeded.
    """

    target_id: str
    phase_reached: DeploymentPhase
    result: DeploymentResult
    failure: DeploymentFailure | None = None
    warnings: tuple[str, ...] = ()
    plan: BuildPlan | None = None
    store_path: str | None = None

    @property
    def failed(self) -> bool:
        return self.result == "failed"


@dataclass(frozen=True)
class SystemStatus:
    """Runtime state of one target; None marks a field as unknown."""

    target_id: str
    host: str | None
    generation_up_to_date: bool | None
    reboot_required: bool | None
    failed_unit_count: int | None
    uptime: timedelta | None
    current_generation: str | None = None
    errors: tuple[str, ...] = ()
