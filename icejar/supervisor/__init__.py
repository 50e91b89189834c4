# icejar - Mumble Ice module supervisor
# Copyright (C) 2026 icejar Authors
# SPDX-License-Identifier: Apache-2.0
"""Sessions, the directory watcher and the reconciling supervisor."""

from __future__ import annotations

from icejar.supervisor.manager import Supervisor
from icejar.supervisor.session import ReconnectPolicy, SessionActor, SessionState
from icejar.supervisor.watcher import DirectoryWatcher

__all__ = [
    "DirectoryWatcher",
    "ReconnectPolicy",
    "SessionActor",
    "SessionState",
    "Supervisor",
]
