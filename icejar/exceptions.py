# icejar - Mumble Ice module supervisor
# Copyright (C) 2026 icejar Authors
# SPDX-License-Identifier: Apache-2.0
#
# This file is part of icejar, licensed under Apache-2.0.
# See LICENSE for the full license text.

"""Unified exception hierarchy for icejar.

All domain-specific exceptions derive from :class:`IcejarError`, so the
reconciliation boundaries can catch the whole family with one clause::

    try:
        ...
    except IcejarError as e:
        logger.warning("Reconcile step failed: %s", e)
"""


class IcejarError(Exception):
    """Base exception for all icejar errors."""


# ── Configuration ────────────────────────────────────────────


class ConfigError(IcejarError):
    """Server configuration could not be read or validated."""


# ── Bundles ──────────────────────────────────────────────────


class BundleError(IcejarError):
    """Module bundle archive could not be read."""


# ── Connection ───────────────────────────────────────────────


class ConnectError(IcejarError):
    """Transient connection failure; the session retries with backoff."""


class ProxyCastError(ConnectError):
    """The remote ``Meta`` object did not match the loaded slice definitions.

    Raised when the checked cast of the root proxy returns ``None``, which
    happens when the server was built against the old ``Murmur`` module
    name and the client against ``MumbleServer`` (or the reverse).
    """


class ServerSelectionError(ConnectError):
    """The configured virtual server could not be selected."""


class RpcUnavailableError(IcejarError):
    """The RPC client library or its slice definitions are unavailable."""


# ── Messaging ────────────────────────────────────────────────


class ConversionError(IcejarError):
    """A message could not be reconciled with a receiver's declared type."""
