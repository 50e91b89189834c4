# icejar - Mumble Ice module supervisor
# Copyright (C) 2026 icejar Authors
# SPDX-License-Identifier: Apache-2.0

"""Snapshot diffing for watched directories.

A scan produces a set of paths.  Comparing it with the previous scan and a
registry of recorded modification times yields the set of *changed* paths:
created, deleted and modified files are all reported the same way, and
callers test for existence to tell them apart.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Iterable, MutableMapping
from pathlib import Path

logger = logging.getLogger("icejar.filediff")


def mtime(path: Path) -> int | None:
    """Modification time in nanoseconds, or ``None`` if *path* is gone.

    For a directory this is the newest modification time of the directory
    and everything below it, so editing a nested file counts as a change.
    """
    try:
        newest = os.stat(path).st_mtime_ns
    except OSError:
        return None

    if os.path.isdir(path):
        for dirpath, dirnames, filenames in os.walk(path, followlinks=True):
            for name in dirnames + filenames:
                try:
                    newest = max(newest, os.stat(os.path.join(dirpath, name)).st_mtime_ns)
                except OSError:
                    continue
    return newest


def changed_files(
    new_files: set[Path],
    old_files: set[Path],
    last_modified: MutableMapping[Path, int],
) -> set[Path]:
    """Return the paths created, removed or modified between two scans.

    A path present in both scans counts as modified when its current
    modification time differs from the one recorded in *last_modified*.
    """
    changed = new_files ^ old_files
    for path in new_files & old_files:
        if mtime(path) != last_modified.get(path):
            changed.add(path)
    return changed


def update_last_modified(
    paths: Iterable[Path],
    last_modified: MutableMapping[Path, int],
) -> None:
    """Record current modification times for *paths*; forget missing ones."""
    for path in paths:
        current = mtime(path)
        if current is None:
            last_modified.pop(path, None)
        else:
            last_modified[path] = current


# ── Directory scans ────────────────────────────────────────────────


def scan_files_with_extension(directory: Path, extension: str) -> set[Path]:
    """All regular files below *directory* whose name ends in *extension*.

    The walk is recursive and follows symlinks.  A missing or unreadable
    directory yields an empty set.
    """
    files: set[Path] = set()

    def _on_error(exc: OSError) -> None:
        logger.warning("Walking directory contents of `%s` threw: %s", directory, exc)

    for dirpath, _dirnames, filenames in os.walk(
        directory, onerror=_on_error, followlinks=True,
    ):
        base = Path(dirpath)
        for name in filenames:
            if name.endswith(extension):
                files.add(base / name)
    return files


def scan_server_configs(directory: Path, extension: str) -> set[Path]:
    """Direct children of *directory* that are config files or directories.

    Each entry is one session: a file ending in *extension*, or a directory
    whose config files are read together.
    """
    configs: set[Path] = set()
    try:
        entries = list(directory.iterdir())
    except OSError:
        return configs

    for entry in entries:
        if entry.is_dir() or entry.name.endswith(extension):
            configs.add(entry)
    return configs
