"""Unit tests for build strategy resolution."""

from __future__ import annotations

import pytest

from builds.strategy import resolve_build_plan
from core.errors import BuildFailure
from nixhost.capabilities import LocalCapabilities, parse_builders
from tests.fakes import load_settings, make_target, with_setting

_BUILDERS = parse_builders("ssh://arm aarch64-linux; ssh://x86-a x86_64-linux; ssh://x86-b x86_64-linux")


def test_matching_platform_builds_locally() -> None:
    """A native platform with nix available should build locally."""
    plan = resolve_build_plan(make_target(), LocalCapabilities(system="x86_64-linux", builders=_BUILDERS))

    assert (plan.strategy, plan.host) == ("local", None)


def test_foreign_platform_uses_matching_builder() -> None:
    """A platform this machine cannot build goes to a matching builder."""
    capabilities = LocalCapabilities(system="aarch64-darwin", builders=_BUILDERS)

    plan = resolve_build_plan(make_target(), capabilities)

    assert (plan.strategy, plan.host, plan.builder) == ("distributed_builder", "x86-a", _BUILDERS[1])


def test_no_builder_falls_back_to_target() -> None:
    """Without local or builder options the target builds itself."""
    capabilities = LocalCapabilities(system="aarch64-darwin", builders=_BUILDERS[:1])

    plan = resolve_build_plan(make_target(), capabilities)

    assert (plan.strategy, plan.host) == ("remote_on_target", "web1")


def test_no_host_and_no_builder_is_build_failure() -> None:
    """Resolution should fail instead of inventing a fourth strategy."""
    settings = with_setting(load_settings("web1"), "networking.hostName", None)
    settings = with_setting(settings, "networking.fqdnOrHostName", None)

    with pytest.raises(BuildFailure) as caught:
        resolve_build_plan(make_target(settings=settings), LocalCapabilities(system="aarch64-darwin"))

    assert caught.value.kind == "remote_on_target"


def test_resolution_is_deterministic() -> None:
    """Identical inputs should give identical plans."""
    capabilities = LocalCapabilities(system="aarch64-darwin", builders=_BUILDERS)
    target = make_target()

    assert resolve_build_plan(target, capabilities) == resolve_build_plan(target, capabilities)


def test_removing_local_tooling_switches_to_builder() -> None:
    """Losing local nix with a matching builder should pick the builder."""
    target = make_target()
    with_tooling = LocalCapabilities(system="x86_64-linux", builders=_BUILDERS)
    without_tooling = LocalCapabilities(system="x86_64-linux", builders=_BUILDERS, build_tooling_available=False)

    strategies = (
        resolve_build_plan(target, with_tooling).strategy,
        resolve_build_plan(target, without_tooling).strategy,
    )

    assert strategies == ("local", "distributed_builder")


def test_first_matching_builder_wins() -> None:
    """Builders are tried in declared order."""
    capabilities = LocalCapabilities(
        system="x86_64-linux", builders=_BUILDERS, build_tooling_available=False
    )

    assert resolve_build_plan(make_target(), capabilities).host == "x86-a"
