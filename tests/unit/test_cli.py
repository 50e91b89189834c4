# icejar - Mumble Ice module supervisor
# Copyright (C) 2026 icejar Authors
# SPDX-License-Identifier: Apache-2.0
"""Unit tests for the icejar command line."""

from __future__ import annotations

import signal
from pathlib import Path

import pytest

from icejar import cli
from icejar.exceptions import RpcUnavailableError
from icejar.rpc import ice
from icejar.supervisor import manager
from tests.helpers.mocks import FakeRpcBackend


@pytest.fixture(autouse=True)
def _isolate(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("ICEJAR_SLICE", raising=False)
    monkeypatch.delenv("ICEJAR_TRACE", raising=False)
    monkeypatch.setattr(signal, "signal", lambda *_args: None)


def test_parser_defaults():
    args = cli.build_parser().parse_args([])

    assert args.server_config_dir == "servers"
    assert args.module_dir == "modules"
    assert args.db_dir == "data"
    assert args.verbose is False
    assert args.slice == "MumbleServer.ice"
    assert args.trace is False


def test_parser_flags():
    args = cli.build_parser().parse_args(
        ["-s", "cfg", "-m", "mods", "-d", "db", "-v", "--slice", "Murmur.ice", "--trace"],
    )

    assert (args.server_config_dir, args.module_dir, args.db_dir) == ("cfg", "mods", "db")
    assert args.verbose is True
    assert args.slice == "Murmur.ice"
    assert args.trace is True


def test_environment_defaults(monkeypatch):
    monkeypatch.setenv("ICEJAR_SLICE", "/etc/icejar/Murmur.ice")
    monkeypatch.setenv("ICEJAR_TRACE", "1")

    args = cli.build_parser().parse_args([])

    assert args.slice == "/etc/icejar/Murmur.ice"
    assert args.trace is True


def test_unavailable_rpc_library_exits_nonzero(monkeypatch):
    def _unavailable(_slice_path):
        raise RpcUnavailableError("ZeroC Ice is not installed")

    monkeypatch.setattr(ice, "IceBackend", _unavailable)

    assert cli.main([]) == 1


def test_orderly_run_exits_zero(monkeypatch, tmp_path):
    backend = FakeRpcBackend()
    monkeypatch.setattr(ice, "IceBackend", lambda _slice_path: backend)
    calls = []

    def _run(self, stop_event):
        calls.append(("run", self.layout))

    def _shutdown(self):
        calls.append(("shutdown", None))

    monkeypatch.setattr(manager.Supervisor, "run", _run)
    monkeypatch.setattr(manager.Supervisor, "shutdown", _shutdown)

    assert cli.main(["-s", "cfg", "-m", "mods", "-d", "db"]) == 0

    (_, layout), (name, _) = calls
    assert layout.server_config_dir == Path("cfg")
    assert layout.module_dir == Path("mods")
    assert layout.db_dir == Path("db")
    assert name == "shutdown"
