# icejar - Mumble Ice module supervisor
# Copyright (C) 2026 icejar Authors
# SPDX-License-Identifier: Apache-2.0
"""Global test fixtures for icejar.

Provides filesystem isolation, a fake RPC backend and fast reconnect
timings for all test modules.
"""

from __future__ import annotations

import logging
from pathlib import Path

import pytest
import structlog

from icejar.paths import Layout
from icejar.supervisor.session import ReconnectPolicy
from tests.helpers.filesystem import create_layout
from tests.helpers.mocks import FakeRpcBackend


# ── Fixtures ──────────────────────────────────────────────


@pytest.fixture(autouse=True)
def _restore_logging():
    """Undo ``setup_logging`` side effects on the root and icejar loggers."""
    root = logging.getLogger()
    base = logging.getLogger("icejar")
    root_level, base_level = root.level, base.level
    yield
    for handler in list(root.handlers):
        if isinstance(handler.formatter, structlog.stdlib.ProcessorFormatter):
            root.removeHandler(handler)
    root.setLevel(root_level)
    base.setLevel(base_level)


@pytest.fixture
def layout(tmp_path: Path) -> Layout:
    """Isolated server, module and data directories."""
    return create_layout(tmp_path)


@pytest.fixture
def rpc() -> FakeRpcBackend:
    return FakeRpcBackend()


@pytest.fixture
def fast_policy() -> ReconnectPolicy:
    """Backoff short enough for tests that exercise retries."""
    return ReconnectPolicy(min_delay_sec=0.01, max_delay_sec=0.04, join_timeout_sec=5.0)
