# icejar - Mumble Ice module supervisor
# Copyright (C) 2026 icejar Authors
# SPDX-License-Identifier: Apache-2.0

"""Abstract RPC backend used by sessions.

Sessions never talk to the RPC library directly; everything library-specific
(communicator setup, proxy casts, connection management) goes through an
:class:`RpcBackend`.  Proxies returned by the backend are opaque to icejar
except for the three remote calls used to select a virtual server:
``meta.getServer(id)``, ``meta.getAllServers()`` and
``server.getConf("registerName")``.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any


class RpcBackend(ABC):
    """Library seam for one RPC implementation."""

    @abstractmethod
    def create_communicator(self) -> Any:
        """Create a communicator with a shared implicit context and
        single-threaded client and server thread pools."""

    @abstractmethod
    def is_shutdown(self, communicator: Any) -> bool:
        """Whether *communicator* has been shut down or destroyed."""

    @abstractmethod
    def set_secret(self, communicator: Any, secret: str) -> None:
        """Put the auth secret into the implicit request context."""

    @abstractmethod
    def connect_meta(self, communicator: Any, proxy_string: str) -> Any:
        """Resolve and checked-cast the root ``Meta`` proxy.

        Raises:
            ProxyCastError: The remote object is not a ``Meta``.
        """

    @abstractmethod
    def create_adapter(self, communicator: Any, endpoints: str) -> Any:
        """Create and activate the object adapter for inbound callbacks."""

    @abstractmethod
    def configure_connection(self, meta: Any, on_close: Callable[[], None]) -> None:
        """Set idle management on *meta*'s connection and install *on_close*
        as its close callback."""

    @abstractmethod
    def clear_close_callback(self, meta: Any) -> None:
        """Replace the close callback of *meta*'s connection with a no-op."""

    @abstractmethod
    def close_connection(self, meta: Any) -> None:
        """Gracefully close *meta*'s connection."""

    @abstractmethod
    def destroy_adapter(self, adapter: Any) -> None: ...

    @abstractmethod
    def destroy_communicator(self, communicator: Any) -> None: ...

    @abstractmethod
    def is_fatal(self, error: BaseException) -> bool:
        """Whether *error* means the session must stop retrying.

        True for errors signalling that the communicator was destroyed or the
        operation was interrupted.
        """
