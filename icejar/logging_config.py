# icejar - Mumble Ice module supervisor
# Copyright (C) 2026 icejar Authors
# SPDX-License-Identifier: Apache-2.0
#
# This file is part of icejar, licensed under Apache-2.0.
# See LICENSE for the full license text.

"""Centralized logging configuration for icejar.

Uses structlog in stdlib-compatible mode so that plain
``logging.getLogger()`` calls (including the loggers handed to modules) are
rendered through one processor pipeline.

Logger hierarchy::

    icejar
    icejar.client.{server}
    icejar.client.{server}.module.{module}

Provides:
- setup_logging(): structlog + stdlib unified setup (console)
- set_verbose(): lower the ``icejar`` hierarchy to DEBUG
- LineRenderer: the final processor producing one line per record
"""

from __future__ import annotations

import logging
import sys
from datetime import datetime
from typing import Any

import structlog

BASE_LOGGER = "icejar"
CLIENT_LOGGER = "client"
MODULE_LOGGER = "module"

TIMESTAMP_FORMAT = "%d %b %Y %I:%M:%S %p %Z"


def client_logger_name(server_key: str) -> str:
    return ".".join((BASE_LOGGER, CLIENT_LOGGER, server_key))


def module_logger_name(server_key: str, module_key: str) -> str:
    return ".".join((BASE_LOGGER, CLIENT_LOGGER, server_key, MODULE_LOGGER, module_key))


# ── Processors ─────────────────────────────────────────────────


def add_record_timestamp(
    _logger: Any, _method_name: str, event_dict: dict[str, Any],
) -> dict[str, Any]:
    """Stamp the event with the creation time of its stdlib record."""
    record = event_dict.get("_record")
    created = record.created if record is not None else datetime.now().timestamp()
    event_dict["timestamp"] = (
        datetime.fromtimestamp(created).astimezone().strftime(TIMESTAMP_FORMAT)
    )
    return event_dict


class LineRenderer:
    """Render ``[timestamp] [LEVEL] logger: message`` lines.

    The renderer holds no per-record state, so a single instance can be
    shared by handlers running on different threads.
    """

    def __init__(self, show_tracebacks: bool = False) -> None:
        self.show_tracebacks = show_tracebacks

    def __call__(
        self, _logger: Any, _method_name: str, event_dict: dict[str, Any],
    ) -> str:
        timestamp = event_dict.get("timestamp", "")
        level = str(event_dict.get("level", "")).upper()
        name = event_dict.get("logger", "")
        line = f"[{timestamp}] [{level}] {name}: {event_dict.get('event', '')}"
        exception = event_dict.get("exception")
        if self.show_tracebacks and exception:
            line = f"{line}\n{exception}"
        return line


def _build_shared_processors() -> list:
    """Build the shared processor chain used by both structlog and stdlib."""
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]


# ── Main Setup ─────────────────────────────────────────────────


def setup_logging(
    level: str = "INFO",
    verbose: bool = False,
    show_tracebacks: bool = False,
) -> None:
    """Configure logging for the whole icejar process.

    Args:
        level: Root log level (DEBUG, INFO, WARNING, etc.).
        verbose: Set the ``icejar`` hierarchy to DEBUG.
        show_tracebacks: Render tracebacks of logged exceptions instead of
            one line per failure.
    """
    shared_processors = _build_shared_processors()

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    root.handlers.clear()

    console_formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            add_record_timestamp,
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            LineRenderer(show_tracebacks=show_tracebacks),
        ],
        foreign_pre_chain=list(shared_processors),
    )
    console = logging.StreamHandler(sys.stderr)
    console.setLevel(logging.DEBUG)
    console.setFormatter(console_formatter)
    root.addHandler(console)

    if verbose:
        set_verbose()

    # watchdog logs every inotify event at DEBUG
    logging.getLogger("watchdog").setLevel(logging.WARNING)


def set_verbose() -> None:
    """Log everything from ``icejar`` and its descendants."""
    logging.getLogger(BASE_LOGGER).setLevel(logging.DEBUG)
