"""Typed models for build planning."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from nixhost.capabilities import RemoteBuilder

BuildStrategy = Literal["local", "distributed_builder", "remote_on_target"]


@dataclass(frozen=True)
class BuildPlan:
    """How and where one target's system closure gets built.

    Attributes:
        target_id: Target identity.
        strategy: Selected build strategy.
        host: Builder host for distributed builds, the deploy host for
            builds on the target, None for local builds.
        builder: Selected distributed builder, if any.
    """

    target_id: str
    strategy: BuildStrategy
    host: str | None = None
    builder: RemoteBuilder | None = None


@dataclass(frozen=True)
class BuildOutcome:
    """A successfully executed build plan."""

    plan: BuildPlan
    store_path: str

    @property
    def on_target(self) -> bool:
        """True when the closure already lives in the target's store."""
        return self.plan.strategy == "remote_on_target"
