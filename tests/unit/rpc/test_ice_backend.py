# icejar - Mumble Ice module supervisor
# Copyright (C) 2026 icejar Authors
# SPDX-License-Identifier: Apache-2.0
"""Unit tests for the Ice backend's failure paths (no Ice required)."""

from __future__ import annotations

import sys
from types import SimpleNamespace

import pytest

from icejar.exceptions import ProxyCastError, RpcUnavailableError
from icejar.rpc import ice


def test_missing_ice_library(monkeypatch):
    monkeypatch.setitem(sys.modules, "Ice", None)

    with pytest.raises(RpcUnavailableError, match="not installed"):
        ice.IceBackend()


def test_slice_module_before_loading(monkeypatch):
    monkeypatch.setattr(ice, "_slice_module", None)

    with pytest.raises(RpcUnavailableError):
        ice.slice_module()


def test_missing_slice_file(monkeypatch, tmp_path):
    monkeypatch.setattr(ice, "_slice_module", None)
    monkeypatch.setattr(ice, "_import_ice", lambda: SimpleNamespace())

    with pytest.raises(RpcUnavailableError, match="not found"):
        ice.load_slice(tmp_path / "MumbleServer.ice")


def _backend_with(mumble):
    backend = ice.IceBackend.__new__(ice.IceBackend)
    backend.Ice = SimpleNamespace()
    backend.mumble = mumble
    return backend


def test_null_checked_cast_is_a_proxy_cast_error():
    mumble = SimpleNamespace(
        __name__="MumbleServer",
        MetaPrx=SimpleNamespace(checkedCast=lambda _proxy: None),
    )
    communicator = SimpleNamespace(stringToProxy=lambda s: s)

    with pytest.raises(ProxyCastError):
        _backend_with(mumble).connect_meta(communicator, "Meta:default -h x -p 1 ")


def test_is_fatal_matches_library_errors():
    class CommunicatorDestroyedException(Exception):
        pass

    class OperationInterruptedException(Exception):
        pass

    backend = _backend_with(SimpleNamespace())
    backend.Ice = SimpleNamespace(
        CommunicatorDestroyedException=CommunicatorDestroyedException,
        OperationInterruptedException=OperationInterruptedException,
    )

    assert backend.is_fatal(CommunicatorDestroyedException())
    assert backend.is_fatal(OperationInterruptedException())
    assert not backend.is_fatal(ConnectionError())
