# icejar - Mumble Ice module supervisor
# Copyright (C) 2026 icejar Authors
# SPDX-License-Identifier: Apache-2.0
"""Message passing between modules attached to the same server."""

from __future__ import annotations

from icejar.messaging.bus import (
    DEFAULT_CHANNEL,
    Coordinator,
    MessageBus,
    Receiver,
    RWLock,
    Sender,
)
from icejar.messaging.convert import convert

__all__ = [
    "DEFAULT_CHANNEL",
    "Coordinator",
    "MessageBus",
    "Receiver",
    "RWLock",
    "Sender",
    "convert",
]
