"""Build strategy resolution.

Preference order: build locally, then on a distributed builder that
advertises the target platform, then on the target itself. Resolution is
a pure function of the target and the probed local capabilities.
"""

from __future__ import annotations

from core.errors import BuildFailure
from core.types import Target
from builds.build_types import BuildPlan
from nixhost.capabilities import LocalCapabilities


def resolve_build_plan(target: Target, capabilities: LocalCapabilities) -> BuildPlan:
    """Choose the cheapest viable build strategy for one target.

    Args:
        target: Evaluated target.
        capabilities: Local platform, builders and tooling availability.

    Returns:
        Deterministic build plan.

    Raises:
        BuildFailure: If even building on the target is impossible because
            the configuration names no reachable host.
    """
    platform_name = target.platform
    if capabilities.can_build_locally(platform_name):
        return BuildPlan(target_id=target.target_id, strategy="local")
    if platform_name is not None:
        for builder in capabilities.builders:
            if platform_name in builder.systems:
                return BuildPlan(
                    target_id=target.target_id,
                    strategy="distributed_builder",
                    host=builder.host,
                    builder=builder,
                )
    deploy_host = target.deploy_host
    if deploy_host is None:
        raise BuildFailure(
            "remote_on_target",
            f"No build strategy for {target.target_id}: platform "
            f"'{platform_name or 'unknown'}' cannot be built locally or on a builder, "
            "and the configuration sets no networking.hostName to build on the target.",
        )
    return BuildPlan(
        target_id=target.target_id,
        strategy="remote_on_target",
        host=deploy_host,
    )
