# icejar - Mumble Ice module supervisor
# Copyright (C) 2026 icejar Authors
# SPDX-License-Identifier: Apache-2.0
#
# This file is part of icejar, licensed under Apache-2.0.
# See LICENSE for the full license text.

"""Interface implemented by icejar modules.

A module is a ``.zip`` bundle containing a subclass of :class:`Module`.
Only the first such class found in a bundle is used, and it must be
constructible without arguments.

Module instances are touched from several threads: ``setup()`` and
``cleanup()`` are driven by the supervisor, while callbacks registered with
the RPC adapter run on the RPC library's thread pool.  Implementations must
tolerate a callback arriving while ``setup()`` or ``cleanup()`` runs.

Lifecycle of one instance::

    set_logger -> setup_message_passing -> set_database_connection
        -> setup (once per connection) ... -> cleanup
"""

from __future__ import annotations

import abc
import dataclasses
import logging
import sqlite3
import typing
from typing import Any, TypeVar

from icejar.messaging.bus import Coordinator

R = TypeVar("R")


class Module(abc.ABC):
    """Base class for icejar modules."""

    logger: logging.Logger = logging.getLogger("icejar.module")

    @abc.abstractmethod
    def setup(
        self,
        config: dict[str, Any],
        meta: Any,
        adapter: Any,
        server: Any,
    ) -> None:
        """Set up the module for a freshly established connection.

        The connection is closed and re-opened whenever any module of the
        session is reloaded, so this is called again even for modules that
        did not change.  It must be safe to call several times.

        Args:
            config: The module's table from the server config (may be empty).
            meta: Proxy for the remote ``Meta`` object.
            adapter: Object adapter for registering callback servants.
            server: Proxy for the selected virtual server, or ``None`` when
                the config selects no server.
        """

    def cleanup(self) -> None:
        """Release resources when the module is unloaded.

        Callbacks registered through the adapter go away with the connection
        and need no explicit removal.
        """

    def set_logger(self, logger: logging.Logger) -> None:
        """Receive this instance's logger, before any other hook."""
        self.logger = logger

    def setup_message_passing(self, coordinator: Coordinator) -> None:
        """Receive the message passing coordinator, after ``set_logger``."""

    def set_database_connection(self, connection: sqlite3.Connection) -> None:
        """Receive this instance's database connection.

        Called after ``setup_message_passing`` and only if opening the
        database succeeded.  The connection is committed and closed by icejar
        when the module is unloaded.
        """


# ── Config helpers ─────────────────────────────────────────────────


def parse_config(config: dict[str, Any], cls: type[R]) -> R:
    """Build the dataclass *cls* from a module config table.

    Each field is read from the key of the same name.  Missing keys and
    values whose type does not match the field annotation become ``None``.
    """
    hints = typing.get_type_hints(cls)
    kwargs: dict[str, Any] = {}
    for f in dataclasses.fields(cls):  # type: ignore[arg-type]
        if not f.init:
            continue
        value = config.get(f.name)
        kwargs[f.name] = value if _matches(value, hints.get(f.name, Any)) else None
    return cls(**kwargs)


def _matches(value: Any, annotation: Any) -> bool:
    if value is None or annotation is Any:
        return value is not None
    args = typing.get_args(annotation)
    origin = typing.get_origin(annotation)
    if args and origin not in (list, dict, tuple, set):
        return any(_matches(value, a) for a in args if a is not type(None))
    target = origin if origin is not None else annotation
    return isinstance(target, type) and isinstance(value, target)


# ── Callback helpers ───────────────────────────────────────────────


class DefaultServerCallback:
    """No-op implementations of every server callback event.

    Mix in before the generated servant base so only the events of
    interest need overriding::

        class Greeter(DefaultServerCallback, MumbleServer.ServerCallback):
            def userConnected(self, state, current=None):
                ...
    """

    def userConnected(self, state: Any, current: Any = None) -> None:  # noqa: N802
        pass

    def userDisconnected(self, state: Any, current: Any = None) -> None:  # noqa: N802
        pass

    def userStateChanged(self, state: Any, current: Any = None) -> None:  # noqa: N802
        pass

    def userTextMessage(  # noqa: N802
        self, state: Any, message: Any, current: Any = None,
    ) -> None:
        pass

    def channelCreated(self, state: Any, current: Any = None) -> None:  # noqa: N802
        pass

    def channelRemoved(self, state: Any, current: Any = None) -> None:  # noqa: N802
        pass

    def channelStateChanged(self, state: Any, current: Any = None) -> None:  # noqa: N802
        pass
