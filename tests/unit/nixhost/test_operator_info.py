"""Unit tests for operator identity collection."""

from __future__ import annotations

import pytest

from core.errors import CommandTimeoutError
from core.types import SshPublicKey
from nixhost.operator_info import collect_operator_info
from tests.fakes import FakeRunner, failed, ok


def test_collects_username_and_agent_keys(monkeypatch: pytest.MonkeyPatch) -> None:
    """Agent keys should be parsed line by line."""
    monkeypatch.setattr("nixhost.operator_info.getpass.getuser", lambda: "deploy")
    runner = FakeRunner([("ssh-add", ok("ssh-ed25519 AAAA one\nssh-rsa BBBB two\n"))])

    operator = collect_operator_info(runner)

    assert operator.username == "deploy"
    assert operator.ssh_keys == (SshPublicKey("ssh-ed25519", "AAAA"), SshPublicKey("ssh-rsa", "BBBB"))


def test_missing_agent_yields_no_keys(monkeypatch: pytest.MonkeyPatch) -> None:
    """An unavailable agent should not fail collection."""
    monkeypatch.setattr("nixhost.operator_info.getpass.getuser", lambda: "deploy")
    runner = FakeRunner([("ssh-add", failed("Could not open a connection to your authentication agent.", 2))])

    assert collect_operator_info(runner).ssh_keys == ()


def test_agent_timeout_yields_no_keys(monkeypatch: pytest.MonkeyPatch) -> None:
    """A hanging agent should not block the run."""
    monkeypatch.setattr("nixhost.operator_info.getpass.getuser", lambda: "deploy")
    runner = FakeRunner([("ssh-add", CommandTimeoutError("slow"))])

    assert collect_operator_info(runner).ssh_keys == ()
