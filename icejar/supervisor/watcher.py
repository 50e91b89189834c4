# icejar - Mumble Ice module supervisor
# Copyright (C) 2026 icejar Authors
# SPDX-License-Identifier: Apache-2.0

"""Directory watcher for the module and server configuration directories.

Events carry no payload for the supervisor: any change just means "rescan".
"""

from __future__ import annotations

import logging
import queue
from collections.abc import Iterable
from pathlib import Path

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

logger = logging.getLogger("icejar.watcher")

# ── Configuration ───────────────────────────────────────────────────

# Wait for bursts of file operations (editor saves, zip writes) to settle
SETTLE_DELAY_SEC = 0.5


class _ChangeHandler(FileSystemEventHandler):
    """Forward every filesystem event to the watcher's queue."""

    def __init__(self, events: queue.Queue[Path]) -> None:
        super().__init__()
        self._events = events

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.event_type in ("opened", "closed_no_write"):
            return
        logger.debug("%s: %s", event.event_type, event.src_path)
        self._events.put(Path(str(event.src_path)))


class DirectoryWatcher:
    """Recursive watch over a set of directories.

    Usage::

        with DirectoryWatcher([module_dir, config_dir]) as watcher:
            while True:
                if watcher.wait_for_change(timeout=1.0):
                    rescan()
    """

    def __init__(
        self,
        directories: Iterable[Path],
        settle_delay_sec: float = SETTLE_DELAY_SEC,
    ) -> None:
        self.directories = list(directories)
        self.settle_delay_sec = settle_delay_sec
        self._events: queue.Queue[Path] = queue.Queue()
        self._observer: Observer | None = None

    # ── Start/Stop ──────────────────────────────────────────────────

    def start(self) -> None:
        """Start watching.

        Raises:
            FileNotFoundError: A watched directory does not exist.
            OSError: The platform watch could not be registered.
        """
        if self._observer is not None:
            return

        observer = Observer()
        handler = _ChangeHandler(self._events)
        for directory in self.directories:
            if not directory.is_dir():
                raise FileNotFoundError(f"`{directory}` is not a directory")
            observer.schedule(handler, str(directory), recursive=True)
            logger.debug("Watching directory: %s", directory)

        observer.start()
        self._observer = observer

    def stop(self) -> None:
        if self._observer is None:
            return
        self._observer.stop()
        self._observer.join(timeout=5.0)
        self._observer = None

    def __enter__(self) -> DirectoryWatcher:
        self.start()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.stop()

    @property
    def is_alive(self) -> bool:
        return self._observer is not None and self._observer.is_alive()

    # ── Events ──────────────────────────────────────────────────────

    def wait_for_change(self, timeout: float | None = None) -> bool:
        """Block until something changes; return False on timeout.

        After the first event, waits ``settle_delay_sec`` and drains whatever
        else arrived so that one burst of writes yields one rescan.
        """
        try:
            self._events.get(timeout=timeout)
        except queue.Empty:
            return False

        # Consume every queued event so related writes collapse into one rescan.
        while True:
            try:
                self._events.get(timeout=self.settle_delay_sec)
            except queue.Empty:
                return True
