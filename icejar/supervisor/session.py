"""
Session actor: one RPC session to one virtual server.
"""

# icejar - Mumble Ice module supervisor
# Copyright (C) 2026 icejar Authors
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from pathlib import Path
from typing import Any

from icejar.config.models import SessionConfig
from icejar.exceptions import ServerSelectionError
from icejar.logging_config import client_logger_name
from icejar.modules.api import Module
from icejar.paths import module_config_name
from icejar.rpc.backend import RpcBackend
from icejar.rpc.helpers import SERVER_NAME_VAR

# How often a waiting reconnect task re-checks its interruption flag
LOCK_POLL_INTERVAL_SEC = 0.1


# ── Configuration ──────────────────────────────────────────────────

@dataclass
class ReconnectPolicy:
    """Reconnect backoff configuration."""
    min_delay_sec: float = 1.0             # First backoff delay
    max_delay_sec: float = 60.0            # Cap for the doubling delay
    join_timeout_sec: float = 10.0         # Wait for a previous task to exit

    def delays(self) -> Iterator[float]:
        """Yield ``min, 2*min, 4*min, ...`` capped at ``max_delay_sec``."""
        delay = self.min_delay_sec
        while True:
            if delay < self.max_delay_sec:
                yield delay
                delay *= 2
            else:
                yield self.max_delay_sec


# ── Session State ──────────────────────────────────────────────────

class SessionState(Enum):
    """State of a session's connection."""
    IDLE = "idle"                # Created, never configured
    CONNECTING = "connecting"    # Reconnect task running or backing off
    CONNECTED = "connected"      # Proxies acquired, modules set up
    STOPPED = "stopped"          # Cleaned up, or stopped by a fatal error


def build_proxy_string(config: SessionConfig) -> str:
    proxy_string = f"Meta:default -h {config.rpc_host} -p {config.rpc_port} "
    return proxy_string + " ".join(config.rpc_args)


def build_adapter_endpoints(config: SessionConfig) -> str:
    endpoints = f"tcp -h {config.callback_host}"
    if config.callback_port >= 0:
        endpoints += f" -p {config.callback_port}"
    return endpoints


class _ReconnectTask:
    """A reconnect thread and the event used to interrupt it."""

    def __init__(self, target: Any, name: str) -> None:
        self.interrupted = threading.Event()
        self.thread = threading.Thread(
            target=target, args=(self.interrupted,), name=name, daemon=True,
        )

    def interrupt(self, timeout: float) -> bool:
        """Signal the task and wait for it; return whether it exited."""
        self.interrupted.set()
        if self.thread is threading.current_thread() or not self.thread.is_alive():
            return True
        self.thread.join(timeout)
        return not self.thread.is_alive()


# ── Session Actor ──────────────────────────────────────────────────

class SessionActor:
    """
    Owner of the RPC session and module instances for one virtual server.

    Responsibilities:
    - Keep a connection to the remote ``Meta`` object, reconnecting with
      capped exponential backoff
    - Select the configured virtual server
    - Call ``setup()`` on every module after each (re)connect
    - Unload modules that are replaced or no longer enabled

    ``reconfigure``, ``reload_modules`` and ``cleanup`` run under the
    session lock, and so does every connection attempt.  Callbacks from the
    RPC library are *not* serialized against them.  The module map is an
    immutable snapshot replaced under the lock, so the module accessors
    never wait for a connection attempt.
    """

    def __init__(
        self,
        name: str,
        rpc: RpcBackend,
        logger: logging.Logger | None = None,
        policy: ReconnectPolicy | None = None,
    ) -> None:
        self.name = name
        self.logger = logger or logging.getLogger(client_logger_name(name))
        self.policy = policy or ReconnectPolicy()
        self.config = SessionConfig()
        self.state = SessionState.IDLE

        self._rpc = rpc
        self._lock = threading.RLock()
        self._modules: Mapping[Path, Module | None] = MappingProxyType({})
        self._task: _ReconnectTask | None = None
        self._stopped = False

        self._communicator: Any = None
        self._meta: Any = None
        self._adapter: Any = None
        self._server: Any = None

    # ── Accessors ──────────────────────────────────────────────────

    @property
    def enabled_modules(self) -> dict[Path, Module | None]:
        return dict(self._modules)

    def has_module_file(self, bundle_path: Path) -> bool:
        return bundle_path in self._modules

    def get_module(self, bundle_path: Path) -> Module | None:
        return self._modules.get(bundle_path)

    @property
    def meta(self) -> Any:
        return self._meta

    @property
    def adapter(self) -> Any:
        return self._adapter

    @property
    def server(self) -> Any:
        return self._server

    @property
    def is_connected(self) -> bool:
        return self.state is SessionState.CONNECTED

    # ── Supervisor operations ─────────────────────────────────────

    def reconfigure(
        self, config: SessionConfig, modules: Mapping[Path, Module | None],
    ) -> None:
        """Adopt a new config and module set, then reconnect."""
        with self._lock:
            self.config = config
            self._stopped = False

            if self._communicator is None or self._rpc.is_shutdown(self._communicator):
                self._communicator = self._rpc.create_communicator()
            self._rpc.set_secret(self._communicator, config.rpc_secret or "")

            for bundle_path in self._modules:
                if bundle_path not in modules:
                    self._unload_module(bundle_path)
            self._modules = MappingProxyType(dict(modules))

            self._start_reconnect_task()

    def reload_modules(
        self,
        changed: Mapping[Path, Module | None],
        removed: Iterable[Path] = (),
    ) -> None:
        """Swap in new instances for changed bundles and drop removed ones.

        The connection is always re-established so that every module, not
        only the reloaded ones, sees a fresh ``setup()``.
        """
        with self._lock:
            modules = dict(self._modules)
            for bundle_path, module in changed.items():
                self.logger.debug("Reloading `%s`", bundle_path)
                self._unload_module(bundle_path)
                modules[bundle_path] = module

            for bundle_path in removed:
                self.logger.debug("Unloading removed `%s`", bundle_path)
                self._unload_module(bundle_path)
                modules.pop(bundle_path, None)
            self._modules = MappingProxyType(modules)

            if not self._stopped:
                self._start_reconnect_task()

    def cleanup(self) -> None:
        """Unload all modules, disconnect and destroy the communicator."""
        with self._lock:
            self.logger.debug("Cleaning up.")
            self._stopped = True

            task, self._task = self._task, None
            if task is not None and not task.interrupt(self.policy.join_timeout_sec):
                self.logger.warning("Connection thread did not exit during cleanup")

            for bundle_path in self._modules:
                self._unload_module(bundle_path)
            self._modules = MappingProxyType(dict.fromkeys(self._modules))

            self._disconnect()

            if self._communicator is not None:
                try:
                    self._rpc.destroy_communicator(self._communicator)
                except Exception as e:
                    self.logger.debug("Destroying communicator threw: %s", e)
                self._communicator = None

            self.state = SessionState.STOPPED

    # ── Reconnect task ─────────────────────────────────────────────

    def _start_reconnect_task(self) -> None:
        with self._lock:
            if self._stopped:
                return

            previous = self._task
            if previous is not None and not previous.interrupt(self.policy.join_timeout_sec):
                self.logger.warning(
                    "Previous connection thread did not exit within %.0fs",
                    self.policy.join_timeout_sec,
                )

            self.state = SessionState.CONNECTING
            self._task = _ReconnectTask(self._reconnect, f"icejar-reconnect-{self.name}")
            self._task.thread.start()

    def _on_connection_closed(self) -> None:
        # Runs on an RPC library thread; never block it on the session lock.
        threading.Thread(
            target=self._start_reconnect_task,
            name=f"icejar-closed-{self.name}",
            daemon=True,
        ).start()

    def _acquire(self, interrupted: threading.Event) -> bool:
        """Take the session lock unless the task is interrupted first."""
        while not interrupted.is_set():
            if self._lock.acquire(timeout=LOCK_POLL_INTERVAL_SEC):
                if interrupted.is_set():
                    self._lock.release()
                    return False
                return True
        return False

    def _reconnect(self, interrupted: threading.Event) -> None:
        self.logger.debug("Re-connecting...")
        delays = self.policy.delays()

        while not interrupted.is_set():
            if not self._acquire(interrupted):
                return
            try:
                self.state = SessionState.CONNECTING
                self._disconnect()
                self._attempt_connection()
                self._setup_modules()
                self.state = SessionState.CONNECTED
                return
            except Exception as e:
                if self._rpc.is_fatal(e):
                    self.logger.debug("Connection attempt interrupted: %s", e)
                    self.state = SessionState.STOPPED
                    return
                self.logger.debug("Connection attempt threw: %s", e)
            finally:
                self._lock.release()

            interrupted.wait(next(delays))

    # ── Connection ────────────────────────────────────────────────

    def _attempt_connection(self) -> None:
        meta = self._rpc.connect_meta(self._communicator, build_proxy_string(self.config))
        adapter = None
        try:
            adapter = self._rpc.create_adapter(
                self._communicator, build_adapter_endpoints(self.config),
            )
            # Try to reconnect if the remote server drops the connection.
            self._rpc.configure_connection(meta, self._on_connection_closed)
            server = self._select_server(meta)
        except BaseException:
            self._release_connection(meta, adapter)
            raise

        self._meta, self._adapter, self._server = meta, adapter, server
        self.logger.info("Connected.")

    def _select_server(self, meta: Any) -> Any:
        server_id = self.config.server_id
        server_name = self.config.server_name

        if server_id is not None:
            server = meta.getServer(server_id)
            if server is None:
                raise ServerSelectionError(f"No server with ID {server_id}")
            if server_name is not None:
                actual_name = server.getConf(SERVER_NAME_VAR)
                if actual_name != server_name:
                    raise ServerSelectionError(
                        f'Server with ID `{server_id}` is named "{actual_name}" '
                        f'instead of "{server_name}"'
                    )
            return server

        if server_name is not None:
            for server in meta.getAllServers():
                if server.getConf(SERVER_NAME_VAR) == server_name:
                    return server
            self.logger.warning('No server named "%s"; continuing without one', server_name)

        return None

    def _disconnect(self) -> None:
        meta, adapter = self._meta, self._adapter
        self._meta = self._adapter = self._server = None
        if meta is not None or adapter is not None:
            self._release_connection(meta, adapter)
            self.logger.info("Disconnected.")

    def _release_connection(self, meta: Any, adapter: Any) -> None:
        # The close callback goes first so an explicit close does not
        # trigger a reconnect.
        if meta is not None:
            try:
                self._rpc.clear_close_callback(meta)
                self._rpc.close_connection(meta)
            except Exception as e:
                self.logger.debug("Closing connection threw: %s", e)
        if adapter is not None:
            try:
                self._rpc.destroy_adapter(adapter)
            except Exception as e:
                self.logger.debug("Destroying adapter threw: %s", e)

    # ── Modules ───────────────────────────────────────────────────

    def _setup_modules(self) -> None:
        with self._lock:
            for bundle_path, module in self._modules.items():
                if module is None:
                    continue
                module_config = self.config.module_config(module_config_name(bundle_path))
                try:
                    module.setup(module_config, self._meta, self._adapter, self._server)
                except Exception as e:
                    self.logger.warning(
                        "Call to `setup()` for `Module` from `%s` threw: %s",
                        bundle_path, e, exc_info=True,
                    )

    def _unload_module(self, bundle_path: Path) -> None:
        """Call ``cleanup()`` on the loaded instance; the caller replaces the map."""
        module = self._modules.get(bundle_path)
        if module is not None:
            try:
                module.cleanup()
            except Exception:
                self.logger.warning(
                    "Call to `cleanup()` for `Module` from `%s` threw:",
                    bundle_path, exc_info=True,
                )
