"""Unit tests for rebooting a target and waiting for it."""

from __future__ import annotations

import pytest

from core.errors import ConnectivityError, RebootTimeoutError
from deploy.reboot import reboot_and_wait
from tests.fakes import FakeExecutor, ok, sequence


class _FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.now += seconds


def test_wait_returns_when_boot_id_changes() -> None:
    """The host counts as back once it reports a new boot id."""
    clock = _FakeClock()
    executor = FakeExecutor(
        responses=[
            (
                "boot_id",
                sequence(ok("old\n"), ConnectivityError("down"), ok("old\n"), ok("new\n")),
            ),
        ]
    )

    waited = reboot_and_wait(executor, 60, 5, None, clock=clock, sleep=clock.sleep)

    assert waited == 15 and "sudo -n systemctl reboot" in executor.commands()


def test_wait_times_out_when_host_stays_down() -> None:
    """Exceeding the bound should raise RebootTimeoutError."""
    clock = _FakeClock()
    executor = FakeExecutor(responses=[("boot_id", sequence(ok("old"), ConnectivityError("down")))])

    with pytest.raises(RebootTimeoutError, match="30 seconds"):
        reboot_and_wait(executor, 30, 5, None, clock=clock, sleep=clock.sleep)

    assert clock.now == 30


def test_unchanged_boot_id_is_not_a_reboot() -> None:
    """A host that never rebooted should time out instead of passing."""
    clock = _FakeClock()
    executor = FakeExecutor(responses=[("boot_id", ok("same"))])

    with pytest.raises(RebootTimeoutError):
        reboot_and_wait(executor, 10, 5, None, clock=clock, sleep=clock.sleep)
