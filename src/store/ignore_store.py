"""Ignore store snapshots and their YAML persistence.

The store is a set of (target, check, assertion) triples for accepted
check failures. Snapshots are immutable; callers derive new snapshots
and persist them through ``save_ignore_store`` only.
"""

from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Iterator, Mapping

import yaml

from core.constants import IGNORE_FILE_VERSION
from core.errors import IgnoreStoreError
from core.logging_config import get_logger

_LOGGER = get_logger(__name__)


@dataclass(frozen=True, order=True)
class IgnoreEntry:
    """One suppressed assertion of one target."""

    target: str
    check: str
    assertion: str


@dataclass(frozen=True)
class IgnoreStore:
    """Immutable snapshot of ignored assertions."""

    entries: frozenset[IgnoreEntry] = field(default_factory=frozenset)

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self) -> Iterator[IgnoreEntry]:
        return iter(sorted(self.entries))

    def contains(self, target: str, check: str, assertion: str) -> bool:
        """Return whether a triple is suppressed."""
        return IgnoreEntry(target, check, assertion) in self.entries

    def with_entries(self, entries: Iterable[IgnoreEntry]) -> "IgnoreStore":
        """Return a snapshot that also contains ``entries``."""
        return IgnoreStore(self.entries | frozenset(entries))

    def without_entries(self, entries: Iterable[IgnoreEntry]) -> "IgnoreStore":
        """Return a snapshot with ``entries`` removed."""
        return IgnoreStore(self.entries - frozenset(entries))


def load_ignore_store(path: Path) -> IgnoreStore:
    """Read an ignore store from disk.

    Args:
        path: Ignore file path; a missing file is an empty store.

    Returns:
        Ignore store snapshot.

    Raises:
        IgnoreStoreError: If the file cannot be read or has an invalid shape.
    """
    if not path.exists():
        return IgnoreStore()
    try:
        payload = yaml.safe_load(path.read_text(encoding="utf-8"))
    except OSError as error:
        raise IgnoreStoreError(
            f"Failed to read ignore file at {path}: {error}. Check file permissions and retry."
        ) from error
    except yaml.YAMLError as error:
        raise IgnoreStoreError(
            f"Failed to parse ignore file at {path}: {error}. Fix the YAML syntax or delete the file."
        ) from error
    if payload is None:
        return IgnoreStore()
    return IgnoreStore(frozenset(_parse_entries(payload, path)))


def save_ignore_store(path: Path, store: IgnoreStore) -> Path:
    """Persist a full ignore store, replacing previous contents.

    Args:
        path: Ignore file path.
        store: Snapshot to write.

    Returns:
        Written file path.

    Raises:
        IgnoreStoreError: If the file cannot be written.
    """
    payload = {
        "version": IGNORE_FILE_VERSION,
        "ignored": [
            {"target": entry.target, "check": entry.check, "assertion": entry.assertion}
            for entry in store
        ],
    }
    body = yaml.safe_dump(payload, sort_keys=False, default_flow_style=False)
    target_dir = path.resolve().parent
    temp_name: str | None = None
    try:
        target_dir.mkdir(parents=True, exist_ok=True)
        handle, temp_name = tempfile.mkstemp(prefix=".ignore-", dir=target_dir)
        with os.fdopen(handle, "w", encoding="utf-8") as temp_file:
            temp_file.write(body)
        os.replace(temp_name, path)
    except OSError as error:
        if temp_name is not None:
            Path(temp_name).unlink(missing_ok=True)
        raise IgnoreStoreError(
            f"Failed to write ignore file at {path}: {error}. Check directory permissions and retry."
        ) from error
    _LOGGER.info("ignore_store_saved", path=str(path), entries=len(store))
    return path


def _parse_entries(payload: object, path: Path) -> list[IgnoreEntry]:
    if not isinstance(payload, Mapping):
        raise IgnoreStoreError(
            f"Invalid ignore file at {path}: expected a mapping with an 'ignored' list."
        )
    version = payload.get("version", IGNORE_FILE_VERSION)
    if version != IGNORE_FILE_VERSION:
        raise IgnoreStoreError(
            f"Unsupported ignore file version {version!r} at {path}: "
            f"expected {IGNORE_FILE_VERSION}."
        )
    rows = payload.get("ignored") or []
    if not isinstance(rows, list):
        raise IgnoreStoreError(f"Invalid ignore file at {path}: 'ignored' must be a list.")
    entries: list[IgnoreEntry] = []
    for index, row in enumerate(rows):
        entries.append(_parse_entry(row, index, path))
    return entries


def _parse_entry(row: object, index: int, path: Path) -> IgnoreEntry:
    if not isinstance(row, Mapping):
        raise IgnoreStoreError(f"Invalid ignore entry #{index} at {path}: expected a mapping.")
    values = []
    for key in ("target", "check", "assertion"):
        value = row.get(key)
        if not isinstance(value, str) or not value:
            raise IgnoreStoreError(
                f"Invalid ignore entry #{index} at {path}: '{key}' must be a non-empty string."
            )
        values.append(value)
    return IgnoreEntry(*values)
