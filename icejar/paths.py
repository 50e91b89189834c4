# icejar - Mumble Ice module supervisor
# Copyright (C) 2026 icejar Authors
# SPDX-License-Identifier: Apache-2.0
#
# This file is part of icejar, licensed under Apache-2.0.
# See LICENSE for the full license text.

"""Directory layout and key derivation.

Every path the supervisor tracks is built from one of three roots:

- ``server_config_dir``: one ``.toml`` file (or sub-directory) per session
- ``module_dir``: module bundles (``.zip``), scanned recursively
- ``db_dir``: ``{db_dir}/{server_key}/{module_key}/db.sqlite``

Keys are the tracked path with the root prefix and the extension stripped,
so ``servers/a.toml`` is server ``a`` and ``modules/tools/greeter.zip`` is
module ``tools/greeter``.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

SERVER_CONFIG_EXTENSION = ".toml"
MODULE_EXTENSION = ".zip"
DATABASE_FILE_NAME = "db.sqlite"


def strip_prefix_and_suffix(s: str, prefix: str, suffix: str) -> str:
    """Remove *prefix* and *suffix* from *s* when present."""
    if s.startswith(prefix):
        s = s[len(prefix):]
    if suffix and s.endswith(suffix):
        s = s[: -len(suffix)]
    return s


@dataclass(frozen=True)
class Layout:
    """The three directory roots used by a supervisor."""

    server_config_dir: Path = Path("servers")
    module_dir: Path = Path("modules")
    db_dir: Path = Path("data")

    def server_key(self, config_path: Path) -> str:
        return strip_prefix_and_suffix(
            Path(config_path).as_posix(),
            self.server_config_dir.as_posix() + "/",
            SERVER_CONFIG_EXTENSION,
        )

    def module_key(self, bundle_path: Path) -> str:
        return strip_prefix_and_suffix(
            Path(bundle_path).as_posix(),
            self.module_dir.as_posix() + "/",
            MODULE_EXTENSION,
        )

    def module_file(self, module_name: str) -> Path:
        """Bundle path for a name listed in ``enabled_modules``."""
        return self.module_dir / f"{module_name}{MODULE_EXTENSION}"

    def database_file(self, config_path: Path, bundle_path: Path) -> Path:
        return (
            self.db_dir
            / self.server_key(config_path)
            / self.module_key(bundle_path)
            / DATABASE_FILE_NAME
        )


def module_config_name(bundle_path: Path) -> str:
    """Name of the config table handed to a module: the bundle's base name."""
    name = Path(bundle_path).name
    stem, dot, _ext = name.rpartition(".")
    return stem if dot else name
