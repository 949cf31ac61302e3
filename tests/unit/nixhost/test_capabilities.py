"""Unit tests for local build capability probing."""

from __future__ import annotations

import json

import pytest

from nixhost.capabilities import LocalCapabilities, RemoteBuilder, parse_builders, probe_local_capabilities
from tests.fakes import FakeRunner, failed, ok


def test_parse_builders_reads_systems_and_hosts() -> None:
    """Machine lines should yield uri, systems and host."""
    builders = parse_builders(
        "ssh://arm.example.org aarch64-linux,armv7l-linux /key 4; ssh-ng://x86 x86_64-linux"
    )

    assert [(builder.host, builder.systems) for builder in builders] == [
        ("arm.example.org", ("aarch64-linux", "armv7l-linux")),
        ("x86", ("x86_64-linux",)),
    ]


def test_parse_builders_skips_comments_and_dash_fields(tmp_path) -> None:
    """Comments and '-' placeholders should be ignored, also in @files."""
    machines = tmp_path / "machines"
    machines.write_text("# builders\nssh://b1 - /key\n\n", encoding="utf-8")

    builders = parse_builders(f"@{machines}")

    assert builders == (RemoteBuilder(uri="ssh://b1", systems=(), spec="ssh://b1 - /key"),)


def test_parse_builders_unreadable_file_yields_none(tmp_path) -> None:
    """A missing machines file means no builders."""
    assert parse_builders(f"@{tmp_path / 'missing'}") == ()


def test_can_build_locally_accepts_extra_platforms() -> None:
    """Emulated platforms count as local."""
    capabilities = LocalCapabilities(system="x86_64-linux", extra_platforms=("aarch64-linux",))

    assert capabilities.can_build_locally("aarch64-linux")
    assert not capabilities.can_build_locally("riscv64-linux")
    assert not capabilities.can_build_locally(None)


def test_can_build_locally_requires_tooling() -> None:
    """Without nix nothing builds locally."""
    capabilities = LocalCapabilities(system="x86_64-linux", build_tooling_available=False)

    assert not capabilities.can_build_locally("x86_64-linux")


def test_probe_reads_nix_settings(monkeypatch: pytest.MonkeyPatch) -> None:
    """Probing should use nix's reported system, platforms and builders."""
    monkeypatch.setattr("nixhost.capabilities.shutil.which", lambda name: "/usr/bin/nix")
    settings = {
        "system": {"value": "x86_64-linux"},
        "extra-platforms": {"value": ["i686-linux"]},
        "builders": {"value": "ssh://arm aarch64-linux"},
    }
    runner = FakeRunner([("nix config show", ok(json.dumps(settings)))])

    capabilities = probe_local_capabilities(runner)

    assert (capabilities.system, capabilities.extra_platforms) == ("x86_64-linux", ("i686-linux",))
    assert [builder.host for builder in capabilities.builders] == ["arm"]


def test_probe_falls_back_to_show_config(monkeypatch: pytest.MonkeyPatch) -> None:
    """Older nix versions only know ``nix show-config``."""
    monkeypatch.setattr("nixhost.capabilities.shutil.which", lambda name: "/usr/bin/nix")
    runner = FakeRunner(
        [
            ("nix config show", failed("unknown command")),
            ("nix show-config", ok(json.dumps({"system": {"value": "aarch64-linux"}}))),
        ]
    )

    assert probe_local_capabilities(runner).system == "aarch64-linux"


def test_probe_override_replaces_configured_builders(monkeypatch: pytest.MonkeyPatch) -> None:
    """An explicit builder list should win over nix's configuration."""
    monkeypatch.setattr("nixhost.capabilities.shutil.which", lambda name: "/usr/bin/nix")
    settings = {"builders": {"value": "ssh://configured x86_64-linux"}}
    runner = FakeRunner([("nix config show", ok(json.dumps(settings)))])

    capabilities = probe_local_capabilities(runner, builders_override="ssh://override aarch64-linux")

    assert [builder.host for builder in capabilities.builders] == ["override"]


def test_probe_without_nix_disables_local_builds(monkeypatch: pytest.MonkeyPatch) -> None:
    """A machine without nix can still list builders but cannot build."""
    monkeypatch.setattr("nixhost.capabilities.shutil.which", lambda name: None)

    capabilities = probe_local_capabilities(FakeRunner(), builders_override="ssh://b x86_64-linux")

    assert not capabilities.build_tooling_available and len(capabilities.builders) == 1
