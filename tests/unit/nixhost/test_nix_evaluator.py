"""Unit tests for the nix configuration evaluator."""

from __future__ import annotations

import json

import pytest

from core.errors import CommandTimeoutError, EvaluationError
from core.flake_reference import FlakeReference
from nixhost.evaluator import NixEvaluator, build_apply_expression
from tests.fakes import FakeRunner, failed, load_settings, ok


def test_discover_lists_sorted_configurations() -> None:
    """Discovery should return one reference per configuration."""
    runner = FakeRunner([("builtins.attrNames", ok('["web2", "db1"]'))])

    references = NixEvaluator(runner).discover("/srv/infra")

    assert [str(reference) for reference in references] == ["/srv/infra#db1", "/srv/infra#web2"]


def test_evaluate_builds_target_from_json() -> None:
    """Evaluated JSON should become the target's configuration model."""
    runner = FakeRunner([("nix eval", ok(json.dumps(load_settings("web1"))))])

    target = NixEvaluator(runner).evaluate(FlakeReference(".", "web1"), ["security.sudo.enable"])

    assert target.deploy_host == "web1" and target.platform == "x86_64-linux"
    assert runner.calls[0][:4] == ["nix", "eval", "--json", '.#nixosConfigurations."web1"']


def test_evaluate_failure_raises_evaluation_error() -> None:
    """nix failures should be reported per target."""
    runner = FakeRunner([("nix eval", failed("error: attribute 'web9' missing"))])

    with pytest.raises(EvaluationError, match="web9"):
        NixEvaluator(runner).evaluate(FlakeReference(".", "web9"), [])


def test_evaluate_timeout_raises_evaluation_error() -> None:
    """Timeouts should surface as evaluation errors."""
    runner = FakeRunner([("nix eval", CommandTimeoutError("slow"))])

    with pytest.raises(EvaluationError, match="timed out"):
        NixEvaluator(runner).evaluate(FlakeReference(".", "web1"), [])


def test_evaluate_rejects_non_object_output() -> None:
    """A non-object payload is not a configuration."""
    runner = FakeRunner([("nix eval", ok("[1, 2]"))])

    with pytest.raises(EvaluationError, match="JSON object"):
        NixEvaluator(runner).evaluate(FlakeReference(".", "web1"), [])


def test_apply_expression_wraps_every_leaf() -> None:
    """Each exported leaf should tolerate missing or throwing options."""
    expression = build_apply_expression(["security.sudo.enable", "security.sudo.execWheelOnly"])

    assert 'tryOrNull (config."security"."sudo"."enable" or null)' in expression
    assert 'tryOrNull (config."security"."sudo"."execWheelOnly" or null)' in expression


def test_apply_expression_shorter_prefix_wins() -> None:
    """A parent path should export the whole subtree once."""
    expression = build_apply_expression(["boot.loader", "boot.loader.grub.enable"])

    assert '"loader" = tryOrNull (config."boot"."loader" or null);' in expression
    assert "grub" not in expression


def test_apply_expression_projects_users() -> None:
    """Users should be exported through the normal-user projection."""
    expression = build_apply_expression(["users.users"])

    assert "isNormalUser" in expression and "authorizedKeys" in expression
