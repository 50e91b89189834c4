# icejar - Mumble Ice module supervisor
# Copyright (C) 2026 icejar Authors
# SPDX-License-Identifier: Apache-2.0
"""Server configuration parsing."""

from __future__ import annotations

from icejar.config.models import (
    ServerSection,
    SessionConfig,
    load_session_config,
    read_config_text,
)

__all__ = [
    "ServerSection",
    "SessionConfig",
    "load_session_config",
    "read_config_text",
]
