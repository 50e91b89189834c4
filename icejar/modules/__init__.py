# icejar - Mumble Ice module supervisor
# Copyright (C) 2026 icejar Authors
# SPDX-License-Identifier: Apache-2.0
"""
Module API and runtime.

Module authors only need :class:`Module` (and optionally
:func:`parse_config` and :class:`DefaultServerCallback`)::

    from icejar.modules import Module

    class Greeter(Module):
        def setup(self, config, meta, adapter, server):
            ...
"""

from __future__ import annotations

from icejar.modules.api import DefaultServerCallback, Module, parse_config

__all__ = [
    "DefaultServerCallback",
    "Module",
    "parse_config",
]
