"""
Filesystem snapshots and change detection.

A snapshot maps every path under a directory to its modification time and
directory flag. Comparing two snapshots against a watermark (the wall-clock
time taken just before the first snapshot) tells which files an execution
created, updated or deleted, without attributing older edits to it.
"""

from __future__ import annotations

import logging
import os
import stat

from collections.abc import Iterable
from pathlib import Path

from core.constants import SNAPSHOT_EXCLUDES
from models.sandbox_models import Change, ChangeType, FileState, FilesystemSnapshot

logger = logging.getLogger(__name__)


def take_snapshot(directory: Path | str, exclude: Iterable[str] = SNAPSHOT_EXCLUDES) -> FilesystemSnapshot:
    """
    Recursively record mtime and directory flag for every entry under a directory.

    Entries whose name is in `exclude` are skipped at any depth, and excluded
    directories are not descended into. Symlinks are recorded as links
    and never followed. A missing root yields an empty snapshot.

    Args:
        directory: Root directory to walk
        exclude: Entry names to skip

    Returns:
        Mapping of absolute path to FileState
    """
    root = Path(directory)
    excluded = frozenset(exclude)
    snapshot: FilesystemSnapshot = {}

    if not root.is_dir():
        logger.debug(f"Snapshot root {root} does not exist, returning empty snapshot")
        return snapshot

    for dirpath, dirnames, filenames in os.walk(root):
        # Prune in place so os.walk skips excluded subtrees
        dirnames[:] = [d for d in dirnames if d not in excluded]

        for name in dirnames:
            _record(snapshot, os.path.join(dirpath, name))
        for name in filenames:
            if name in excluded:
                continue
            _record(snapshot, os.path.join(dirpath, name))

    return snapshot


def _record(snapshot: FilesystemSnapshot, path: str) -> None:
    # lstat: symlinks are recorded as links, never followed
    try:
        st = os.lstat(path)
    except FileNotFoundError:
        # Removed between listing and stat
        return
    except OSError as e:
        logger.warning(f"Skipping unreadable entry {path}: {e}")
        return
    snapshot[path] = FileState(mtime_ms=st.st_mtime_ns / 1_000_000, is_directory=stat.S_ISDIR(st.st_mode))


def detect_changes(before: FilesystemSnapshot, after: FilesystemSnapshot, since_ms: float) -> list[Change]:
    """
    Classify differences between two snapshots.

    - present only in `after`, modified at or after the watermark: created
    - present only in `before`: deleted (the watermark does not apply)
    - present in both, newer in `after` and at or after the watermark: updated

    Everything else is unchanged and omitted. Classification is driven by
    timestamps only, never by content.

    Args:
        before: Snapshot taken before the run
        after: Snapshot taken after the run
        since_ms: Watermark in epoch milliseconds

    Returns:
        Changes sorted by path
    """
    changes: list[Change] = []

    for path in sorted(before.keys() | after.keys()):
        prev = before.get(path)
        curr = after.get(path)

        if prev is None and curr is not None:
            if curr.mtime_ms >= since_ms:
                changes.append(Change(ChangeType.CREATED, path, curr.is_directory))
        elif prev is not None and curr is None:
            changes.append(Change(ChangeType.DELETED, path, prev.is_directory))
        elif prev is not None and curr is not None:
            if curr.mtime_ms > prev.mtime_ms and curr.mtime_ms >= since_ms:
                changes.append(Change(ChangeType.UPDATED, path, curr.is_directory))

    return changes
