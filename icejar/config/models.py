# icejar - Mumble Ice module supervisor
# Copyright (C) 2026 icejar Authors
# SPDX-License-Identifier: Apache-2.0
#
# This file is part of icejar, licensed under Apache-2.0.
# See LICENSE for the full license text.

"""Per-server session configuration.

Each session is configured by a TOML document with a ``[server]`` table::

    [server]
    ice_host = "127.0.0.1"
    ice_port = 6502
    ice_secret = "hunter2"
    enabled_modules = ["greeter"]
    server_id = 1

    [greeter]
    message = "Welcome!"

Tables other than ``[server]`` are kept in :attr:`SessionConfig.raw` and
handed to the module whose bundle base name matches the table name.
"""

from __future__ import annotations

import logging
import tomllib
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, ValidationError

from icejar.exceptions import ConfigError
from icejar.paths import SERVER_CONFIG_EXTENSION

logger = logging.getLogger("icejar.config")

SERVER_TABLE_NAME = "server"


# ---------------------------------------------------------------------------
# Pydantic models
# ---------------------------------------------------------------------------


class ServerSection(BaseModel):
    """The ``[server]`` table as written by operators."""

    model_config = ConfigDict(extra="ignore")

    enabled: bool = True
    ice_args: list[str] = []
    ice_host: str = "127.0.0.1"
    ice_port: int = 6502
    ice_secret: str | None = None
    callback_host: str = "127.0.0.1"
    callback_port: int = -1  # ephemeral
    enabled_modules: list[str] = []
    server_name: str | None = None
    server_id: int | None = None


class SessionConfig(BaseModel):
    """Connection and module settings for one virtual server."""

    model_config = ConfigDict(frozen=True)

    enabled: bool = True
    rpc_args: list[str] = []
    rpc_host: str = "127.0.0.1"
    rpc_port: int = 6502
    callback_host: str = "127.0.0.1"
    callback_port: int = -1
    rpc_secret: str | None = None
    enabled_modules: list[str] = []
    server_name: str | None = None
    server_id: int | None = None
    raw: dict[str, Any] = {}

    @classmethod
    def from_document(cls, document: dict[str, Any]) -> SessionConfig:
        """Build a config from a parsed TOML document."""
        table = document.get(SERVER_TABLE_NAME)
        if not isinstance(table, dict):
            raise ConfigError(f"missing [{SERVER_TABLE_NAME}] table")

        try:
            section = ServerSection.model_validate(table)
        except ValidationError as e:
            raise ConfigError(str(e)) from e

        return cls(
            enabled=section.enabled,
            rpc_args=section.ice_args,
            rpc_host=section.ice_host,
            rpc_port=section.ice_port,
            callback_host=section.callback_host,
            callback_port=section.callback_port,
            rpc_secret=section.ice_secret,
            enabled_modules=section.enabled_modules,
            server_name=section.server_name,
            server_id=section.server_id,
            raw=document,
        )

    def module_config(self, module_name: str) -> dict[str, Any]:
        """The sub-table for *module_name*, or an empty mapping."""
        table = self.raw.get(module_name)
        return dict(table) if isinstance(table, dict) else {}


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------


def read_config_text(path: Path) -> str:
    """Read a config file, or concatenate every config file below a directory.

    Concatenation order inside a directory follows the filesystem listing
    and is therefore unspecified.
    """
    if path.is_dir():
        parts = [read_config_text(child) for child in path.iterdir()]
        return "\n".join(part for part in parts if part)
    if path.is_file() and path.name.endswith(SERVER_CONFIG_EXTENSION):
        return path.read_text(encoding="utf-8")
    return ""


def load_session_config(path: Path) -> SessionConfig:
    """Parse the session config stored at *path*.

    Raises:
        ConfigError: The file is unreadable, not valid TOML, or has an
            invalid ``[server]`` table.
    """
    try:
        text = read_config_text(path)
    except OSError as e:
        raise ConfigError(f"reading `{path}` failed: {e}") from e

    try:
        document = tomllib.loads(text)
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"invalid TOML in `{path}`: {e}") from e

    config = SessionConfig.from_document(document)
    logger.debug(
        "Loaded config %s (enabled=%s, modules=%s)",
        path, config.enabled, config.enabled_modules,
    )
    return config
