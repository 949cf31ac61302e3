"""Bounded parallel execution of per-target pipelines.

Each target is processed by exactly one worker. A failing pipeline is
recorded against its own target and never cancels its siblings. The
report is assembled after every dispatched pipeline has finished and is
always sorted by target identity. An interrupt stops dispatching and
waits for the pipelines already running.
"""

from __future__ import annotations

import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from typing import Callable, Generic, Literal, Sequence, TypeVar

from core.errors import FleetguardError
from core.logging_config import get_logger

_LOGGER = get_logger(__name__)

T = TypeVar("T")
R = TypeVar("R")
FleetEntryStatus = Literal["ok", "failed", "skipped"]


@dataclass(frozen=True)
class FleetEntry(Generic[R]):
    """Outcome of one target's pipeline.

    Attributes:
        target_id: Target identity.
        status: ``ok`` when the pipeline returned, ``failed`` when it
            raised, ``skipped`` when it never started.
        result: Pipeline return value for ``ok`` entries.
        error: Failure message for ``failed`` entries.
        error_type: Exception class name for ``failed`` entries.
    """

    target_id: str
    status: FleetEntryStatus
    result: R | None = None
    error: str | None = None
    error_type: str | None = None


@dataclass(frozen=True)
class FleetReport(Generic[R]):
    """All entries of one fleet run, sorted by target identity."""

    entries: tuple[FleetEntry[R], ...]

    @property
    def failed(self) -> tuple[FleetEntry[R], ...]:
        return tuple(entry for entry in self.entries if entry.status == "failed")

    @property
    def skipped(self) -> tuple[FleetEntry[R], ...]:
        return tuple(entry for entry in self.entries if entry.status == "skipped")

    @property
    def results(self) -> tuple[R, ...]:
        """Return values of the pipelines that completed."""
        return tuple(
            entry.result
            for entry in self.entries
            if entry.status == "ok" and entry.result is not None
        )


def run_fleet(
    targets: Sequence[T],
    pipeline: Callable[[T], R],
    max_workers: int,
    continue_on_failure: bool = True,
    abort_event: threading.Event | None = None,
    target_id: Callable[[T], str] = str,
    is_failure: Callable[[R], bool] | None = None,
) -> FleetReport[R]:
    """Run a pipeline for every target on a bounded worker pool.

    Args:
        targets: Targets to process; each must appear once.
        pipeline: Per-target work; exceptions are captured per target.
        max_workers: Upper bound of concurrently running pipelines.
        continue_on_failure: When false, targets not yet started after
            the first failure are skipped.
        abort_event: Set by the caller to stop dispatching new targets;
            in-flight pipelines finish. An interrupt (Ctrl-C) sets it as well
            and the partial report is returned.
        target_id: Maps a target to its identity.
        is_failure: Classifies a returned result as a failure for the
            purpose of ``continue_on_failure``.

    Returns:
        Report with one entry per target, sorted by target identity.

    Raises:
        ValueError: If ``max_workers`` is below one or a target repeats.
    """
    if max_workers < 1:
        raise ValueError(f"max_workers must be at least 1, got {max_workers}.")
    identities = [target_id(target) for target in targets]
    if len(set(identities)) != len(identities):
        raise ValueError("Every target must appear exactly once in a fleet run.")
    stop = abort_event or threading.Event()

    def _guarded(target: T, identity: str) -> FleetEntry[R]:
        if stop.is_set():
            return FleetEntry(target_id=identity, status="skipped")
        entry = _run_one(pipeline, target, identity)
        failed = entry.status == "failed" or (
            is_failure is not None and entry.result is not None and is_failure(entry.result)
        )
        if failed and not continue_on_failure:
            stop.set()
        return entry

    futures: dict[str, Future[FleetEntry[R]]] = {}
    worker_count = max(1, min(max_workers, len(targets)))
    _LOGGER.info("fleet_run_started", targets=len(targets), max_workers=worker_count)
    pool = ThreadPoolExecutor(max_workers=worker_count, thread_name_prefix="fleetguard")
    try:
        for target, identity in zip(targets, identities):
            futures[identity] = pool.submit(_guarded, target, identity)
        wait(futures.values())
    except KeyboardInterrupt:
        stop.set()
        _LOGGER.warning("fleet_run_interrupted", dispatched=len(futures), targets=len(targets))
        wait(futures.values())
    finally:
        pool.shutdown(wait=True)
    entries = sorted(
        (
            futures[identity].result()
            if identity in futures
            else FleetEntry(target_id=identity, status="skipped")
            for identity in identities
        ),
        key=lambda entry: entry.target_id,
    )
    report: FleetReport[R] = FleetReport(entries=tuple(entries))
    _LOGGER.info(
        "fleet_run_finished",
        targets=len(entries),
        failed=len(report.failed),
        skipped=len(report.skipped),
    )
    return report


def _run_one(pipeline: Callable[[T], R], target: T, identity: str) -> FleetEntry[R]:
    try:
        result = pipeline(target)
    except FleetguardError as error:
        _LOGGER.warning("target_failed", target=identity, error=str(error))
        return FleetEntry(
            target_id=identity,
            status="failed",
            error=str(error),
            error_type=type(error).__name__,
        )
    except Exception as error:
        _LOGGER.exception("target_crashed", target=identity)
        return FleetEntry(
            target_id=identity,
            status="failed",
            error=f"Unexpected error: {error}",
            error_type=type(error).__name__,
        )
    return FleetEntry(target_id=identity, status="ok", result=result)
