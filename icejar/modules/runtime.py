# icejar - Mumble Ice module supervisor
# Copyright (C) 2026 icejar Authors
# SPDX-License-Identifier: Apache-2.0
#
# This file is part of icejar, licensed under Apache-2.0.
# See LICENSE for the full license text.

"""Module runtime: bundle factories, instantiation and wiring.

Instances are created for one ``(server config, bundle)`` pair and wired in
a fixed order before ``setup()`` can ever run:

1. ``set_logger`` with ``icejar.client.{server}.module.{module}``
2. ``setup_message_passing`` with a coordinator bound to the pair
3. ``set_database_connection`` with ``{db_dir}/{server}/{module}/db.sqlite``

A failure in step 3 only skips that step.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from pathlib import Path

from icejar.exceptions import BundleError
from icejar.logging_config import BASE_LOGGER, module_logger_name
from icejar.messaging.bus import MessageBus
from icejar.modules.api import Module
from icejar.modules.loader import BundleLoader
from icejar.modules.store import StoreRegistry
from icejar.paths import Layout

logger = logging.getLogger(BASE_LOGGER)


class ModuleRuntime:
    """Factories for known bundles and the per-instance wiring sequence."""

    def __init__(
        self,
        layout: Layout,
        bus: MessageBus,
        stores: StoreRegistry,
        loader: BundleLoader | None = None,
    ) -> None:
        self.layout = layout
        self.bus = bus
        self.stores = stores
        self.loader = loader or BundleLoader()
        # bundle path -> module class; None means "seen, but no module class"
        self.factories: dict[Path, type[Module] | None] = {}

    # ── Factories ──────────────────────────────────────────────────

    def update_factories(self, changed_bundles: Iterable[Path]) -> None:
        """Rescan changed bundles; drop factories of bundles that are gone."""
        for bundle_path in changed_bundles:
            if not bundle_path.exists():
                self.factories.pop(bundle_path, None)
                self.loader.discard(bundle_path)
                logger.debug("Bundle `%s` removed", bundle_path)
                continue

            try:
                factory = self.loader.load(bundle_path)
            except BundleError as e:
                logger.warning("%s", e)
                factory = None
            except Exception as e:
                logger.warning("Reading bundle `%s` threw: %s", bundle_path, e)
                factory = None

            if factory is None:
                logger.warning("No `Module` class found in `%s`", bundle_path)
            self.factories[bundle_path] = factory

    def factory_for(self, bundle_path: Path) -> type[Module] | None:
        return self.factories.get(bundle_path)

    # ── Instances ──────────────────────────────────────────────────

    def instantiate(self, bundle_path: Path, config_path: Path) -> Module | None:
        """Create and wire a module instance for one session.

        Returns ``None`` when the bundle has no usable class or its
        constructor raises; the session keeps the bundle enabled and picks
        up a new instance when the bundle changes.
        """
        factory = self.factories.get(bundle_path)
        if factory is None:
            return None

        try:
            module = factory()
        except Exception:
            logger.warning(
                "Instantiating `Module` class %s from `%s` threw:",
                factory.__qualname__, bundle_path, exc_info=True,
            )
            return None

        server_key = self.layout.server_key(config_path)
        module_key = self.layout.module_key(bundle_path)

        try:
            module.set_logger(logging.getLogger(module_logger_name(server_key, module_key)))
            module.setup_message_passing(self.bus.coordinator(server_key, module_key))
        except Exception:
            logger.warning(
                "Wiring `Module` from `%s` for `%s` threw:",
                bundle_path, server_key, exc_info=True,
            )
            return None

        database_file = self.layout.database_file(config_path, bundle_path)
        try:
            connection = self.stores.open(database_file)
        except Exception as e:
            logger.warning(
                "Opening database connection for `%s` failed: %s", bundle_path, e,
            )
        else:
            try:
                module.set_database_connection(connection)
            except Exception:
                logger.warning(
                    "Call to `set_database_connection()` for `Module` from `%s` threw:",
                    bundle_path, exc_info=True,
                )

        return module

    def release(self, bundle_path: Path, config_path: Path) -> None:
        """Drop the messaging routes and database of one module instance."""
        self.bus.remove_module(
            self.layout.server_key(config_path),
            self.layout.module_key(bundle_path),
        )
        self.stores.close(self.layout.database_file(config_path, bundle_path))
