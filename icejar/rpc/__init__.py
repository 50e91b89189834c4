# icejar - Mumble Ice module supervisor
# Copyright (C) 2026 icejar Authors
# SPDX-License-Identifier: Apache-2.0
"""
RPC layer.

:class:`RpcBackend` is the seam sessions use; :class:`IceBackend` implements
it with ZeroC Ice (optional dependency, imported on first use).
"""

from __future__ import annotations

from icejar.rpc.backend import RpcBackend
from icejar.rpc.ice import IceBackend, load_slice

__all__ = [
    "IceBackend",
    "RpcBackend",
    "load_slice",
]
