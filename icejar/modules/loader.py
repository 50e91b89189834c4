# icejar - Mumble Ice module supervisor
# Copyright (C) 2026 icejar Authors
# SPDX-License-Identifier: Apache-2.0

"""Bundle scanning.

A bundle is a zip archive of Python sources.  Each load gets a fresh,
uniquely named package whose ``__path__`` is the archive, so files inside a
bundle can import each other relatively and a rewritten bundle never sees
stale code from a previous load.
"""

from __future__ import annotations

import importlib
import inspect
import itertools
import logging
import sys
import types
import zipfile
import zipimport
from pathlib import Path

from icejar.exceptions import BundleError
from icejar.modules.api import Module

logger = logging.getLogger("icejar.modules.loader")

PACKAGE_PREFIX = "_icejar_bundle_"

_counter = itertools.count()


def _entry_module_name(entry: str) -> str | None:
    """Dotted module name for an archive entry, or ``None`` if not Python."""
    if not entry.endswith(".py"):
        return None
    parts = entry[: -len(".py")].split("/")
    if parts[-1] == "__init__":
        parts = parts[:-1]
    if not parts or not all(p.isidentifier() for p in parts):
        return None
    return ".".join(parts)


def _find_module_class(module: types.ModuleType) -> type[Module] | None:
    for obj in vars(module).values():
        if (
            isinstance(obj, type)
            and obj.__module__ == module.__name__
            and issubclass(obj, Module)
            and not inspect.isabstract(obj)
        ):
            return obj
    return None


class BundleLoader:
    """Turns bundle archives into module classes."""

    def __init__(self) -> None:
        self._packages: dict[Path, str] = {}

    def load(self, bundle_path: Path) -> type[Module] | None:
        """Return the first module class found in *bundle_path*.

        Entries that fail to import (for instance because a dependency is
        missing) are skipped so the rest of the bundle can still be tried.

        Raises:
            BundleError: The archive cannot be read.
        """
        self.discard(bundle_path)

        try:
            with zipfile.ZipFile(bundle_path) as archive:
                entries = [i.filename for i in archive.infolist() if not i.is_dir()]
        except (OSError, zipfile.BadZipFile) as e:
            raise BundleError(f"Reading bundle `{bundle_path}` threw: {e}") from e

        package_name = self._create_package(bundle_path)

        for entry in entries:
            name = _entry_module_name(entry)
            if name is None:
                continue
            try:
                module = importlib.import_module(f"{package_name}.{name}")
            except ImportError as e:
                logger.debug("Skipping `%s` in `%s`: %s", entry, bundle_path, e)
                continue
            except Exception as e:
                logger.debug(
                    "Importing `%s` from `%s` threw: %s", entry, bundle_path, e,
                )
                continue

            cls = _find_module_class(module)
            if cls is not None:
                logger.debug("Found module class %s in `%s`", cls.__qualname__, bundle_path)
                return cls

        return None

    def discard(self, bundle_path: Path) -> None:
        """Forget the package created by the previous load of *bundle_path*."""
        package_name = self._packages.pop(bundle_path, None)
        if package_name is None:
            return
        for name in [
            n for n in sys.modules
            if n == package_name or n.startswith(package_name + ".")
        ]:
            del sys.modules[name]

    def _create_package(self, bundle_path: Path) -> str:
        archive = str(bundle_path)
        # zipimport caches archive directories per path; a rewritten bundle
        # must be re-read.
        sys.path_importer_cache.pop(archive, None)
        zipimport.zipimporter(archive).invalidate_caches()

        package_name = f"{PACKAGE_PREFIX}{next(_counter)}"
        package = types.ModuleType(package_name)
        package.__path__ = [archive]
        package.__file__ = archive
        package.__package__ = package_name
        sys.modules[package_name] = package
        self._packages[bundle_path] = package_name
        return package_name
