# icejar - Mumble Ice module supervisor
# Copyright (C) 2026 icejar Authors
# SPDX-License-Identifier: Apache-2.0
#
# This file is part of icejar, licensed under Apache-2.0.
# See LICENSE for the full license text.

"""In-process message passing between modules of one server.

Messages are addressed by ``(server, module, channel)``.  Each module gets a
:class:`Coordinator` bound to its own server and module name; from it the
module mints :class:`Sender` objects (to talk to another module on the same
server) and :class:`Receiver` objects (to listen on one of its channels)::

    def setup_message_passing(self, coordinator):
        self.scores = coordinator.sender("scoreboard")
        coordinator.receiver(Greeting, self.on_greeting, channel="greet")

    ...
    self.scores.send(Score(user_id, 10))

Delivery is synchronous and happens on the sender's thread.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import Any, Generic, TypeVar

from icejar.exceptions import ConversionError
from icejar.messaging.convert import convert

logger = logging.getLogger("icejar.messaging")

T = TypeVar("T")

DEFAULT_CHANNEL = ""


class RWLock:
    """Readers-writer lock: many concurrent readers or a single writer.

    Writers are preferred; once a writer is waiting, new readers block until
    it has finished.  A thread that already holds a read lock may take it
    again regardless of waiting writers.
    """

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers: dict[int, int] = {}
        self._writer = False
        self._writers_waiting = 0

    @contextmanager
    def read(self) -> Iterator[None]:
        me = threading.get_ident()
        with self._cond:
            if me not in self._readers:
                while self._writer or self._writers_waiting:
                    self._cond.wait()
            self._readers[me] = self._readers.get(me, 0) + 1
        try:
            yield
        finally:
            with self._cond:
                self._readers[me] -= 1
                if not self._readers[me]:
                    del self._readers[me]
                if not self._readers:
                    self._cond.notify_all()

    @contextmanager
    def write(self) -> Iterator[None]:
        with self._cond:
            self._writers_waiting += 1
            while self._writer or self._readers:
                self._cond.wait()
            self._writers_waiting -= 1
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


class Receiver(Generic[T]):
    """Endpoint that accepts messages of one declared type."""

    def __init__(
        self,
        message_type: type[T] | Any,
        handler: Callable[[T], None] | None = None,
    ) -> None:
        self.message_type = message_type
        self._handler = handler
        self._lock = RWLock()

    def set_handler(self, handler: Callable[[T], None] | None) -> None:
        with self._lock.write():
            self._handler = handler

    def handle(self, message: Any) -> bool:
        """Deliver *message*; return whether a handler accepted it."""
        try:
            converted = convert(message, self.message_type)
        except ConversionError as e:
            logger.debug("Dropping message for %r: %s", self.message_type, e)
            return False

        with self._lock.read():
            if self._handler is None:
                return False
            self._handler(converted)
            return True


class Sender(Generic[T]):
    """Endpoint addressing one module channel on one server."""

    def __init__(
        self,
        bus: MessageBus,
        server_key: str,
        module_key: str,
        channel: str = DEFAULT_CHANNEL,
    ) -> None:
        self._bus = bus
        self.server_key = server_key
        self.module_key = module_key
        self.channel = channel

    def send(self, message: T) -> bool:
        """Deliver *message* synchronously.

        Returns ``False`` when nobody listens on the target channel, when the
        receiver has no handler, or when the message cannot be reconciled
        with the receiver's declared type.
        """
        receiver = self._bus.get_receiver(self.server_key, self.module_key, self.channel)
        if receiver is None:
            return False
        return receiver.handle(message)


class Coordinator:
    """Mints senders and receivers for one ``(server, module)`` pair."""

    def __init__(self, bus: MessageBus, server_key: str, module_key: str) -> None:
        self._bus = bus
        self.server_key = server_key
        self.module_key = module_key

    def sender(self, module_key: str, channel: str = DEFAULT_CHANNEL) -> Sender[Any]:
        """Sender for *module_key*'s *channel* on this coordinator's server."""
        return Sender(self._bus, self.server_key, module_key, channel)

    def receiver(
        self,
        message_type: type[T] | Any,
        handler: Callable[[T], None] | None = None,
        channel: str = DEFAULT_CHANNEL,
    ) -> Receiver[T]:
        """Listen on *channel*, replacing any receiver already installed there."""
        return self._bus.create_receiver(
            self.server_key, self.module_key, channel, message_type, handler,
        )


class MessageBus:
    """Routing table ``server -> module -> channel -> Receiver``."""

    def __init__(self) -> None:
        self._receivers: dict[str, dict[str, dict[str, Receiver[Any]]]] = {}
        self._lock = threading.Lock()

    def coordinator(self, server_key: str, module_key: str) -> Coordinator:
        return Coordinator(self, server_key, module_key)

    def create_receiver(
        self,
        server_key: str,
        module_key: str,
        channel: str,
        message_type: Any,
        handler: Callable[[Any], None] | None = None,
    ) -> Receiver[Any]:
        receiver: Receiver[Any] = Receiver(message_type, handler)
        with self._lock:
            modules = self._receivers.setdefault(server_key, {})
            modules.setdefault(module_key, {})[channel] = receiver
        return receiver

    def get_receiver(
        self, server_key: str, module_key: str, channel: str = DEFAULT_CHANNEL,
    ) -> Receiver[Any] | None:
        with self._lock:
            return self._receivers.get(server_key, {}).get(module_key, {}).get(channel)

    def remove_module(self, server_key: str, module_key: str) -> None:
        """Drop every receiver of one module instance."""
        with self._lock:
            modules = self._receivers.get(server_key)
            if modules is not None:
                modules.pop(module_key, None)

    def remove_server(self, server_key: str) -> None:
        """Drop every receiver registered under *server_key*."""
        with self._lock:
            self._receivers.pop(server_key, None)

    def has_server(self, server_key: str) -> bool:
        with self._lock:
            return server_key in self._receivers
