# icejar - Mumble Ice module supervisor
# Copyright (C) 2026 icejar Authors
# SPDX-License-Identifier: Apache-2.0

"""Per-module sqlite databases.

The registry keeps at most one open connection per database file: opening a
path closes whatever connection was previously handed out for it.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from pathlib import Path

logger = logging.getLogger("icejar.modules.store")


class StoreRegistry:
    """Open sqlite connections keyed by canonical database path."""

    def __init__(self) -> None:
        self._connections: dict[Path, sqlite3.Connection] = {}
        self._lock = threading.Lock()

    @staticmethod
    def _key(path: Path) -> Path:
        return Path(path).resolve()

    def open(self, path: Path) -> sqlite3.Connection:
        """Open *path*, closing any connection already open for it.

        Raises:
            sqlite3.Error: The database could not be opened.
            OSError: The parent directory could not be created.
        """
        key = self._key(path)
        with self._lock:
            self._close_locked(key)
            key.parent.mkdir(parents=True, exist_ok=True)
            # Modules use their connection from RPC callback threads too.
            connection = sqlite3.connect(key, check_same_thread=False)
            self._connections[key] = connection
        logger.debug("Opened database %s", key)
        return connection

    def close(self, path: Path) -> None:
        """Commit and close the connection for *path*, if one is open."""
        key = self._key(path)
        with self._lock:
            self._close_locked(key)

    def close_all(self) -> None:
        with self._lock:
            for key in list(self._connections):
                self._close_locked(key)

    def is_open(self, path: Path) -> bool:
        with self._lock:
            return self._key(path) in self._connections

    def get(self, path: Path) -> sqlite3.Connection | None:
        with self._lock:
            return self._connections.get(self._key(path))

    def __len__(self) -> int:
        with self._lock:
            return len(self._connections)

    def _close_locked(self, key: Path) -> None:
        connection = self._connections.pop(key, None)
        if connection is None:
            return
        try:
            connection.commit()
        except sqlite3.Error as e:
            logger.debug("Committing database %s threw: %s", key, e)
        finally:
            connection.close()
        logger.debug("Closed database %s", key)
