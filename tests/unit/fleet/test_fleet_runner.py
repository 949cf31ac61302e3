"""Unit tests for the bounded parallel fleet runner."""

from __future__ import annotations

import _thread
import threading

import pytest

from core.errors import BuildFailure
from fleet.runner import run_fleet


def test_report_is_sorted_by_target_identity() -> None:
    """Entries should come back sorted whatever the dispatch order."""
    report = run_fleet(["b", "a", "c"], str.upper, max_workers=3)

    assert [entry.target_id for entry in report.entries] == ["a", "b", "c"]
    assert report.results == ("A", "B", "C")


def test_failure_is_isolated_to_its_target() -> None:
    """One failing pipeline must not affect its siblings."""

    def pipeline(name: str) -> str:
        if name == "a":
            raise BuildFailure("local", "nix build failed")
        return "switched"

    report = run_fleet(["a", "b"], pipeline, max_workers=2)

    failed, succeeded = report.entries
    assert (failed.status, failed.error_type, failed.error) == (
        "failed",
        "BuildFailure",
        "nix build failed",
    )
    assert (succeeded.status, succeeded.result) == ("ok", "switched")


def test_unexpected_exceptions_are_captured() -> None:
    """Programming errors in a pipeline become failed entries."""

    def pipeline(name: str) -> str:
        raise KeyError(name)

    report = run_fleet(["a"], pipeline, max_workers=1)

    assert report.entries[0].error_type == "KeyError"
    assert report.entries[0].error.startswith("Unexpected error:")


def test_stop_on_failure_skips_remaining_targets() -> None:
    """Without continue-on-failure, targets after the first failure are skipped."""
    started: list[str] = []

    def pipeline(name: str) -> str:
        started.append(name)
        raise BuildFailure("local", "broken")

    report = run_fleet(["a", "b", "c"], pipeline, max_workers=1, continue_on_failure=False)

    assert started == ["a"]
    assert [entry.status for entry in report.entries] == ["failed", "skipped", "skipped"]


def test_result_classifier_counts_as_failure() -> None:
    """Returned results flagged as failures should also stop dispatch."""
    report = run_fleet(
        ["a", "b"],
        lambda name: name,
        max_workers=1,
        continue_on_failure=False,
        is_failure=lambda result: result == "a",
    )

    assert [entry.status for entry in report.entries] == ["ok", "skipped"]


def test_abort_event_stops_new_targets() -> None:
    """A set abort event keeps queued targets from starting."""
    abort = threading.Event()

    def pipeline(name: str) -> str:
        abort.set()
        return name

    report = run_fleet(["a", "b"], pipeline, max_workers=1, abort_event=abort)

    assert [entry.status for entry in report.entries] == ["ok", "skipped"]
    assert len(report.skipped) == 1


def test_rejects_duplicate_targets() -> None:
    """Each target may only be processed once per run."""
    with pytest.raises(ValueError, match="exactly once"):
        run_fleet(["a", "a"], str.upper, max_workers=2)


def test_rejects_non_positive_worker_bound() -> None:
    """The worker bound must be at least one."""
    with pytest.raises(ValueError, match="at least 1"):
        run_fleet(["a"], str.upper, max_workers=0)


def test_empty_fleet_returns_empty_report() -> None:
    """No targets means no entries and no error."""
    assert run_fleet([], str.upper, max_workers=4).entries == ()


def test_interrupt_skips_queued_targets_and_finishes_running_ones() -> None:
    """Ctrl-C during a run lets the running target finish and starts no other."""
    abort = threading.Event()
    started: list[str] = []

    def pipeline(name: str) -> str:
        started.append(name)
        if name == "a":
            _thread.interrupt_main()
            assert abort.wait(timeout=5)
        return name

    report = run_fleet(["a", "b", "c"], pipeline, max_workers=1, abort_event=abort)

    assert started == ["a"]
    assert [entry.status for entry in report.entries] == ["ok", "skipped", "skipped"]
    assert report.results == ("a",)
