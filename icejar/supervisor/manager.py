"""
Supervisor - Reconciles sessions and modules with the files on disk.
"""

# icejar - Mumble Ice module supervisor
# Copyright (C) 2026 icejar Authors
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

import logging
import threading
from pathlib import Path

from icejar.config.models import SessionConfig, load_session_config
from icejar.filediff import (
    changed_files,
    scan_files_with_extension,
    scan_server_configs,
    update_last_modified,
)
from icejar.logging_config import BASE_LOGGER, client_logger_name
from icejar.messaging.bus import MessageBus
from icejar.modules.api import Module
from icejar.modules.runtime import ModuleRuntime
from icejar.modules.store import StoreRegistry
from icejar.paths import MODULE_EXTENSION, SERVER_CONFIG_EXTENSION, Layout
from icejar.rpc.backend import RpcBackend
from icejar.supervisor.session import ReconnectPolicy, SessionActor
from icejar.supervisor.watcher import DirectoryWatcher

logger = logging.getLogger(BASE_LOGGER)

# ── Configuration ──────────────────────────────────────────────────

POLL_INTERVAL_SEC = 5.0
# How long the watch loop blocks before re-checking the stop flag
WATCH_TIMEOUT_SEC = 1.0


# ── Supervisor ─────────────────────────────────────────────────────

class Supervisor:
    """
    Single-threaded reconciler for sessions and module instances.

    Responsibilities:
    - Scan the module and server-config directories and diff them against
      the previous scan
    - Reload module instances when their bundle changes
    - Create, reconfigure and remove sessions when their config changes
    - Keep at most one database connection per module database

    Every registry here is mutated only by the thread running
    :meth:`reconcile`.
    """

    def __init__(
        self,
        layout: Layout,
        rpc: RpcBackend,
        reconnect_policy: ReconnectPolicy | None = None,
        poll_interval_sec: float = POLL_INTERVAL_SEC,
    ) -> None:
        self.layout = layout
        self.rpc = rpc
        self.reconnect_policy = reconnect_policy or ReconnectPolicy()
        self.poll_interval_sec = poll_interval_sec

        self.module_paths: set[Path] = set()
        self.server_config_paths: set[Path] = set()
        self.last_modified: dict[Path, int] = {}
        self.sessions: dict[Path, SessionActor] = {}

        self.bus = MessageBus()
        self.stores = StoreRegistry()
        self.runtime = ModuleRuntime(layout, self.bus, self.stores)

    # ── Reconciliation ─────────────────────────────────────────────

    def reconcile(self) -> None:
        """Apply everything that changed on disk since the last call."""
        self.update_modules()
        self.update_clients()

    def _safe_reconcile(self) -> None:
        try:
            self.reconcile()
        except Exception:
            logger.warning("Reconciling module and configuration changes threw:", exc_info=True)

    def update_modules(self) -> None:
        new_paths = scan_files_with_extension(self.layout.module_dir, MODULE_EXTENSION)
        changed = changed_files(new_paths, self.module_paths, self.last_modified)
        self.module_paths = new_paths
        update_last_modified(changed, self.last_modified)
        if not changed:
            return

        logger.debug("Changed modules: %s", sorted(str(p) for p in changed))
        self.runtime.update_factories(changed)

        for config_path, session in self.sessions.items():
            wanted = self._wanted_bundles(session.config)
            reloaded: dict[Path, Module | None] = {}
            removed: list[Path] = []

            for bundle_path in sorted(changed):
                if session.has_module_file(bundle_path):
                    self.runtime.release(bundle_path, config_path)
                    if bundle_path in new_paths:
                        reloaded[bundle_path] = self.runtime.instantiate(bundle_path, config_path)
                    else:
                        removed.append(bundle_path)
                elif bundle_path in new_paths and bundle_path in wanted:
                    reloaded[bundle_path] = self.runtime.instantiate(bundle_path, config_path)

            if reloaded or removed:
                session.reload_modules(reloaded, removed)

    def update_clients(self) -> None:
        new_configs = scan_server_configs(
            self.layout.server_config_dir, SERVER_CONFIG_EXTENSION,
        )
        changed = changed_files(new_configs, self.server_config_paths, self.last_modified)
        self.server_config_paths = new_configs
        update_last_modified(changed, self.last_modified)

        for config_path in sorted(changed):
            try:
                self._update_client(config_path)
            except Exception as e:
                logger.warning("Parsing `%s` threw: %s", config_path, e, exc_info=True)

    def _update_client(self, config_path: Path) -> None:
        if not config_path.exists():
            logger.info("Config `%s` removed", config_path)
            self.remove_session(config_path)
            return

        config = load_session_config(config_path)
        if not config.enabled:
            logger.info("Config `%s` disabled", config_path)
            self.remove_session(config_path)
            return

        session = self.sessions.get(config_path)
        if session is None:
            server_key = self.layout.server_key(config_path)
            session = SessionActor(
                server_key,
                self.rpc,
                logger=logging.getLogger(client_logger_name(server_key)),
                policy=self.reconnect_policy,
            )
            logger.info("Starting session for `%s`", server_key)

        previous = session.enabled_modules
        modules: dict[Path, Module | None] = {}
        for bundle_path in self._wanted_bundles(config):
            if bundle_path not in self.module_paths:
                session.logger.warning("Module file `%s` not found", bundle_path)
                continue
            # Keep running instances so unrelated config edits preserve their state.
            module = previous.get(bundle_path)
            if module is None:
                module = self.runtime.instantiate(bundle_path, config_path)
            modules[bundle_path] = module

        for bundle_path in previous:
            if bundle_path not in modules:
                self.runtime.release(bundle_path, config_path)

        try:
            session.reconfigure(config, modules)
        except Exception:
            for bundle_path, module in modules.items():
                if previous.get(bundle_path) is not module:
                    self.runtime.release(bundle_path, config_path)
            # Retry on the next reconcile.
            self.last_modified.pop(config_path, None)
            raise
        self.sessions[config_path] = session

    def _wanted_bundles(self, config: SessionConfig) -> list[Path]:
        return [self.layout.module_file(name) for name in config.enabled_modules]

    def remove_session(self, config_path: Path) -> None:
        """Tear down the session for *config_path*, if there is one."""
        session = self.sessions.pop(config_path, None)
        if session is None:
            return

        self.bus.remove_server(self.layout.server_key(config_path))
        session.cleanup()
        for bundle_path in session.enabled_modules:
            self.stores.close(self.layout.database_file(config_path, bundle_path))

    # ── Main loop ──────────────────────────────────────────────────

    def run(self, stop_event: threading.Event) -> None:
        """Reconcile once, then on every change until *stop_event* is set."""
        self._safe_reconcile()

        watcher = DirectoryWatcher([self.layout.module_dir, self.layout.server_config_dir])
        try:
            watcher.start()
        except Exception as e:
            self._fall_back_to_polling(e, stop_event)
            return

        try:
            while not stop_event.is_set():
                if watcher.wait_for_change(timeout=WATCH_TIMEOUT_SEC):
                    self._safe_reconcile()
                elif not watcher.is_alive:
                    self._fall_back_to_polling("observer stopped", stop_event)
                    return
        finally:
            watcher.stop()

    def _fall_back_to_polling(self, reason: object, stop_event: threading.Event) -> None:
        logger.warning(
            "Watcher service threw %s. Falling back to checking for "
            "module/configuration changes every %g seconds",
            reason, self.poll_interval_sec,
        )
        while not stop_event.wait(self.poll_interval_sec):
            self._safe_reconcile()

    def shutdown(self) -> None:
        """Remove every session and close every database connection."""
        logger.info("Cleaning up active clients and shutting down...")
        for config_path in list(self.sessions):
            try:
                self.remove_session(config_path)
            except Exception:
                logger.warning("Cleaning up `%s` threw:", config_path, exc_info=True)
        self.stores.close_all()
