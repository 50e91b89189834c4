# icejar - Mumble Ice module supervisor
# Copyright (C) 2026 icejar Authors
# SPDX-License-Identifier: Apache-2.0

"""Helpers for module authors working with the Mumble Ice interfaces.

Typical use inside ``Module.setup``::

    from icejar.rpc import helpers

    def setup(self, config, meta, adapter, server):
        self.callback = helpers.add_server_callback(server, adapter, MyCallback(self))
"""

from __future__ import annotations

from typing import Any

from icejar.rpc.ice import slice_module

SERVER_NAME_VAR = "registerName"


# ── Callback registration ──────────────────────────────────────────


def _register(adapter: Any, servant: Any, proxy_type: str) -> Any:
    prx_class = getattr(slice_module(), proxy_type)
    return prx_class.uncheckedCast(adapter.addWithUUID(servant))


def add_server_callback(server: Any, adapter: Any, callback: Any) -> Any:
    """Register *callback* for *server*'s events; return its proxy."""
    prx = _register(adapter, callback, "ServerCallbackPrx")
    server.addCallback(prx)
    return prx


def add_server_context_callback(
    server: Any,
    adapter: Any,
    session: int,
    action: str,
    text: str,
    callback: Any,
    ctx: int,
) -> Any:
    """Add a context menu action for the user with *session*.

    Args:
        action: Internal action name passed back to *callback*.
        text: Label shown in the user's client.
        ctx: Bitmask of contexts (server, channel, user) the action applies to.
    """
    prx = _register(adapter, callback, "ServerContextCallbackPrx")
    server.addContextCallback(session, action, text, prx, ctx)
    return prx


def set_server_authenticator(server: Any, adapter: Any, authenticator: Any) -> Any:
    prx = _register(adapter, authenticator, "ServerAuthenticatorPrx")
    server.setAuthenticator(prx)
    return prx


def add_meta_callback(meta: Any, adapter: Any, callback: Any) -> Any:
    """Register *callback* to hear about virtual servers starting and stopping."""
    prx = _register(adapter, callback, "MetaCallbackPrx")
    meta.addCallback(prx)
    return prx


# ── Messaging ──────────────────────────────────────────────────────


def send_message_same_destination(server: Any, message: Any, text: str) -> None:
    """Send *text* wherever the text message *message* was sent.

    Useful for commands that reply to the user, channel or channel tree the
    command came from.
    """
    for session in message.sessions:
        server.sendMessage(session, text)
    for channel in message.channels:
        server.sendMessageChannel(channel, False, text)
    for tree in message.trees:
        server.sendMessageChannel(tree, True, text)


# ── Users, groups and channels ─────────────────────────────────────


def get_group_members(server: Any, channel: int, group_name: str) -> set[int]:
    """Registration ids of the members of *group_name* in *channel*."""
    _acls, groups, _inherit = server.getACL(channel)
    for group in groups:
        if group.name == group_name:
            return set(group.members)
    return set()


def get_users_in_channel(server: Any, channel: int) -> dict[int, Any]:
    """Connected users in *channel*, keyed by session id."""
    return {
        session: user
        for session, user in server.getUsers().items()
        if user.channel == channel
    }


def get_users_in_group(server: Any, channel: int, group_name: str) -> dict[int, Any]:
    """Connected users in *channel* who also belong to *group_name* there."""
    members = get_group_members(server, channel, group_name)
    return {
        session: user
        for session, user in get_users_in_channel(server, channel).items()
        if user.userid in members
    }


def get_linked_channels(server: Any, channel: int) -> frozenset[int]:
    """*channel* and every channel reachable from it through links."""
    linked: set[int] = set()
    pending = [channel]
    while pending:
        current = pending.pop()
        if current in linked:
            continue
        linked.add(current)
        pending.extend(server.getChannelState(current).links)
    return frozenset(linked)


def get_server_name(server: Any) -> str:
    return server.getConf(SERVER_NAME_VAR)
