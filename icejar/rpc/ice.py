# icejar - Mumble Ice module supervisor
# Copyright (C) 2026 icejar Authors
# SPDX-License-Identifier: Apache-2.0
#
# This file is part of icejar, licensed under Apache-2.0.
# See LICENSE for the full license text.

"""ZeroC Ice implementation of :class:`RpcBackend`.

Ice and the generated Mumble bindings are imported lazily: the slice file is
compiled at runtime with ``Ice.loadSlice`` the first time a backend is
created.  Mumble renamed its Ice module from ``Murmur`` to ``MumbleServer``;
either name is accepted, but the slice file must match the server, otherwise
the checked cast of ``Meta`` returns ``None``.
"""

from __future__ import annotations

import importlib
import logging
import threading
from collections.abc import Callable
from pathlib import Path
from types import ModuleType
from typing import Any

from icejar.exceptions import ProxyCastError, RpcUnavailableError
from icejar.rpc.backend import RpcBackend

logger = logging.getLogger("icejar.rpc")

DEFAULT_SLICE_FILE = Path("MumbleServer.ice")
SLICE_MODULE_NAMES = ("MumbleServer", "Murmur")

CALLBACK_ADAPTER_NAME = "Callback.Client"
ICE_CONTEXT_SECRET_VAR = "secret"
ACM_TIMEOUT_SEC = 120

_slice_lock = threading.Lock()
_slice_module: ModuleType | None = None


def _import_ice() -> ModuleType:
    try:
        return importlib.import_module("Ice")
    except ImportError as e:
        raise RpcUnavailableError(
            "ZeroC Ice is not installed (pip install 'icejar[ice]')"
        ) from e


def load_slice(slice_path: Path = DEFAULT_SLICE_FILE) -> ModuleType:
    """Compile the Mumble slice file once and return the generated module.

    Raises:
        RpcUnavailableError: Ice is missing, the slice file does not exist,
            or it defines neither ``MumbleServer`` nor ``Murmur``.
    """
    global _slice_module

    with _slice_lock:
        if _slice_module is not None:
            return _slice_module

        Ice = _import_ice()
        if not Path(slice_path).is_file():
            raise RpcUnavailableError(f"Slice file `{slice_path}` not found")

        Ice.loadSlice("", ["-I" + Ice.getSliceDir(), str(slice_path)])

        for name in SLICE_MODULE_NAMES:
            try:
                _slice_module = importlib.import_module(name)
            except ImportError:
                continue
            logger.debug("Loaded slice module %s from `%s`", name, slice_path)
            return _slice_module

        raise RpcUnavailableError(
            f"Slice file `{slice_path}` defines none of {', '.join(SLICE_MODULE_NAMES)}"
        )


def slice_module() -> ModuleType:
    """The generated Mumble module; :func:`load_slice` must have run."""
    if _slice_module is None:
        raise RpcUnavailableError("Mumble slice definitions have not been loaded")
    return _slice_module


class IceBackend(RpcBackend):
    """RPC backend talking to a Mumble server over ZeroC Ice."""

    def __init__(self, slice_path: Path = DEFAULT_SLICE_FILE) -> None:
        self.Ice = _import_ice()
        self.mumble = load_slice(slice_path)

    def create_communicator(self) -> Any:
        properties = self.Ice.createProperties()
        properties.setProperty("Ice.ImplicitContext", "Shared")
        # One thread per pool so callbacks to a session are delivered serially.
        properties.setProperty("Ice.ThreadPool.Client.SizeMax", "1")
        properties.setProperty("Ice.ThreadPool.Server.SizeMax", "1")

        init_data = self.Ice.InitializationData()
        init_data.properties = properties
        return self.Ice.initialize(init_data)

    def is_shutdown(self, communicator: Any) -> bool:
        try:
            return communicator.isShutdown()
        except self.Ice.CommunicatorDestroyedException:
            return True

    def set_secret(self, communicator: Any, secret: str) -> None:
        communicator.getImplicitContext().put(ICE_CONTEXT_SECRET_VAR, secret)

    def connect_meta(self, communicator: Any, proxy_string: str) -> Any:
        meta = self.mumble.MetaPrx.checkedCast(communicator.stringToProxy(proxy_string))
        if meta is None:
            raise ProxyCastError(
                f"`{proxy_string}` is not a {self.mumble.__name__}.Meta object"
            )
        return meta

    def create_adapter(self, communicator: Any, endpoints: str) -> Any:
        adapter = communicator.createObjectAdapterWithEndpoints(
            CALLBACK_ADAPTER_NAME, endpoints,
        )
        adapter.activate()
        return adapter

    def configure_connection(self, meta: Any, on_close: Callable[[], None]) -> None:
        connection = meta.ice_getConnection()
        connection.setACM(
            ACM_TIMEOUT_SEC,
            self.Ice.ACMClose.CloseOnIdle,
            self.Ice.ACMHeartbeat.HeartbeatOnIdle,
        )
        connection.setCloseCallback(lambda _connection: on_close())

    def clear_close_callback(self, meta: Any) -> None:
        meta.ice_getConnection().setCloseCallback(lambda _connection: None)

    def close_connection(self, meta: Any) -> None:
        meta.ice_getConnection().close(self.Ice.ConnectionClose.Gracefully)

    def destroy_adapter(self, adapter: Any) -> None:
        adapter.destroy()

    def destroy_communicator(self, communicator: Any) -> None:
        communicator.destroy()

    def is_fatal(self, error: BaseException) -> bool:
        fatal = tuple(
            cls for cls in (
                getattr(self.Ice, "CommunicatorDestroyedException", None),
                getattr(self.Ice, "OperationInterruptedException", None),
            )
            if cls is not None
        )
        return bool(fatal) and isinstance(error, fatal)
