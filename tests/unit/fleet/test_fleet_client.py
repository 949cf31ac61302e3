"""Unit tests for the fleet SDK client."""

from __future__ import annotations

from dataclasses import replace
from pathlib import Path

from core.config import FleetguardConfig
from core.errors import EvaluationError
from fleet.client import FleetguardClient
from nixhost.capabilities import LocalCapabilities
from store.ignore_rules import parse_ignore_rules
from store.ignore_store import IgnoreEntry, load_ignore_store
from tests.fakes import (
    FakeEvaluator,
    FakeExecutor,
    FakeRunner,
    failed,
    load_settings,
    ok,
    standard_registry,
    with_setting,
)

_STORE_PATH = "/nix/store/bbbb-nixos-system-web1"
_BUILD_JSON = '[{"outputs": {"out": "%s"}}]' % _STORE_PATH


def _compliant() -> dict[str, object]:
    return with_setting(load_settings("web1"), "security.sudo.execWheelOnly", True)


def _client(
    tmp_path: Path,
    settings: dict[str, dict[str, object]] | None = None,
    errors: dict[str, Exception] | None = None,
    runner: FakeRunner | None = None,
    host: FakeExecutor | None = None,
    hostname: str = "web1",
) -> FleetguardClient:
    config = replace(
        FleetguardConfig.from_env(),
        flake_url=".",
        ignore_file=tmp_path / "ignore.yaml",
        max_workers=2,
    )
    remote = host or FakeExecutor()
    return FleetguardClient(
        config,
        runner=runner or FakeRunner([("nix build", ok(_BUILD_JSON))]),
        evaluator=FakeEvaluator(settings or {"web1": load_settings("web1")}, errors),
        registry=standard_registry(),
        capabilities=LocalCapabilities(system="x86_64-linux"),
        remote_executor=lambda name: remote,
        local_executor=FakeExecutor(host=hostname, is_local=True, use_sudo=False),
        hostname=hostname,
    )


def test_check_discovers_every_configuration(tmp_path) -> None:
    """Without references, every configuration of the flake is checked."""
    client = _client(tmp_path, {"web1": load_settings("web1"), "web2": _compliant()})

    report = client.check([])

    verdicts = {entry.target_id: entry.result.verdict for entry in report.entries}
    assert verdicts == {".#web1": "failed", ".#web2": "passed"}


def test_check_isolates_evaluation_errors(tmp_path) -> None:
    """A configuration that fails to evaluate should not hide the others."""
    client = _client(tmp_path, errors={"broken": EvaluationError("attribute missing")})

    report = client.check([])

    broken, web1 = report.entries
    assert (broken.status, broken.error_type) == ("failed", "EvaluationError")
    assert web1.status == "ok"


def test_session_rules_ignore_without_persisting(tmp_path) -> None:
    """Ad-hoc rules suppress failures for one run only."""
    client = _client(tmp_path)

    report = client.check(["web1"], parse_ignore_rules("sudo_hardening.wheel_only"))

    assert report.results[0].verdict == "passed"
    assert not (tmp_path / "ignore.yaml").exists()


def test_save_ignore_persists_current_failures(tmp_path) -> None:
    """Saving should record failures and report against the new store."""
    client = _client(tmp_path)

    report, store = client.save_ignore(["web1"])

    expected = IgnoreEntry(".#web1", "sudo_hardening", "wheel_only")
    assert expected in store.entries
    assert load_ignore_store(tmp_path / "ignore.yaml") == store
    assert (report.results[0].verdict, report.results[0].ignored_count) == ("passed", 1)


def test_save_ignore_drops_fixed_entries(tmp_path) -> None:
    """Entries of assertions that pass again should be removed."""
    client = _client(tmp_path)
    client.save_ignore(["web1"])
    fixed = _client(tmp_path, {"web1": _compliant()})

    _, store = fixed.save_ignore(["web1"])

    assert len(store) == 0


def test_build_returns_store_paths(tmp_path) -> None:
    """Builds should not evaluate check paths or activate anything."""
    runner = FakeRunner([("nix build", ok(_BUILD_JSON))])
    client = _client(tmp_path, runner=runner)

    report = client.build([])

    assert report.results[0].store_path == _STORE_PATH
    assert not any("switch-to-configuration" in command for command in runner.commands())


def test_status_without_host_fails_that_target(tmp_path) -> None:
    """A target that names no host cannot be queried."""
    settings = with_setting(load_settings("web1"), "networking.hostName", None)
    settings = with_setting(settings, "networking.fqdnOrHostName", None)
    client = _client(tmp_path, {"web1": settings})

    report = client.status([])

    assert report.entries[0].error_type == "ConnectivityError"


def test_status_queries_the_target_host(tmp_path) -> None:
    """Status should run read-only queries through the target's executor."""
    host = FakeExecutor(
        responses=[
            ("readlink -f /run/current-system", ok(_STORE_PATH)),
            ("/proc/uptime", ok("60.0 1.0")),
        ]
    )
    client = _client(tmp_path, host=host)

    status = client.status(["web1"]).results[0]

    assert (status.generation_up_to_date, status.failed_unit_count) == (True, 0)
    assert status.uptime.total_seconds() == 60


def test_switch_local_defaults_to_this_host(tmp_path) -> None:
    """switch-local without references activates this host's configuration."""
    client = _client(tmp_path, {"web1": _compliant()})

    report = client.switch_local([])

    outcome = report.results[0]
    assert (outcome.target_id, outcome.result) == (".#web1", "switched")


def test_switch_local_refuses_foreign_configuration(tmp_path) -> None:
    """Activating another machine's configuration needs --ignore-hostname."""
    client = _client(tmp_path, {"web1": _compliant()}, hostname="laptop")

    refused = client.switch_local(["web1"]).results[0]
    forced = client.switch_local(["web1"], ignore_hostname=True).results[0]

    assert (refused.result, refused.failure.kind) == ("failed", "check_failure")
    assert forced.result == "switched"


def test_switch_remote_isolates_gate_failures(tmp_path) -> None:
    """A target failing its checks should not stop the other deployments."""
    client = _client(tmp_path, {"a": load_settings("web1"), "b": _compliant()})

    report = client.switch_remote([], verify=False)

    outcomes = {entry.target_id: entry.result.result for entry in report.entries}
    assert outcomes == {".#a": "failed", ".#b": "switched"}


def test_switch_remote_isolates_build_failures(tmp_path) -> None:
    """A failed build of one target should not affect the other deployment."""
    runner = FakeRunner(
        [
            ('nixosConfigurations."a"', failed("error: builder for system-a failed")),
            ("nix build", ok(_BUILD_JSON)),
        ]
    )
    client = _client(tmp_path, {"a": _compliant(), "b": _compliant()}, runner=runner)

    report = client.switch_remote([], verify=False)

    first, second = report.results
    assert (first.target_id, first.failure.phase, first.failure.kind) == (
        ".#a",
        "built",
        "build_failure.local",
    )
    assert (second.target_id, second.result, second.phase_reached) == (
        ".#b",
        "switched",
        "verified",
    )
