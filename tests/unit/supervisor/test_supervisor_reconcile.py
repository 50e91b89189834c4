# icejar - Mumble Ice module supervisor
# Copyright (C) 2026 icejar Authors
# SPDX-License-Identifier: Apache-2.0
"""
Unit tests for Supervisor reconciliation of sessions and modules.
"""

from __future__ import annotations

import os
import threading

import pytest

from icejar.supervisor.manager import Supervisor
from tests.helpers.filesystem import (
    bump_mtime,
    recording_module_source,
    write_bundle,
    write_server_config,
)
from tests.helpers.mocks import wait_for

GREETER_CONFIG = """
    [server]
    enabled_modules = ["greeter"]

    [greeter]
    message = "hi"
"""


@pytest.fixture
def supervisor(layout, rpc, fast_policy):
    supervisor = Supervisor(layout, rpc, reconnect_policy=fast_policy, poll_interval_sec=0.05)
    yield supervisor
    supervisor.shutdown()
    for path in list(supervisor.runtime.factories):
        supervisor.runtime.loader.discard(path)


@pytest.fixture
def greeter(layout):
    return write_bundle(
        layout.module_dir / "greeter.zip", {"greeter.py": recording_module_source()},
    )


@pytest.fixture
def two_servers(layout, supervisor, greeter):
    """Scenario: two servers sharing one module, both connected."""
    a = write_server_config(layout.server_config_dir / "a.toml", GREETER_CONFIG)
    b = write_server_config(layout.server_config_dir / "b.toml", GREETER_CONFIG)
    supervisor.reconcile()
    assert wait_for(lambda: all(s.is_connected for s in supervisor.sessions.values()))
    return a, b


def _setups(module) -> list[tuple]:
    return [e for e in module.events if e[0] == "setup"]


# ── Cold start ──────────────────────────────────────────────────


class TestColdStart:
    def test_one_session_per_config(self, supervisor, two_servers):
        a, b = two_servers

        assert set(supervisor.sessions) == {a, b}
        assert supervisor.sessions[a].logger.name == "icejar.client.a"
        assert supervisor.sessions[b].logger.name == "icejar.client.b"

    def test_module_instantiated_once_per_session(self, supervisor, two_servers, greeter):
        a, b = two_servers
        module_a = supervisor.sessions[a].get_module(greeter)
        module_b = supervisor.sessions[b].get_module(greeter)

        assert module_a is not None and module_b is not None
        assert module_a is not module_b
        assert module_a.logger.name == "icejar.client.a.module.greeter"
        assert module_b.logger.name == "icejar.client.b.module.greeter"

    def test_setup_called_once_after_wiring(self, supervisor, two_servers, greeter):
        a, _b = two_servers
        module = supervisor.sessions[a].get_module(greeter)

        assert [e[0] for e in module.events] == [
            "set_logger", "setup_message_passing", "set_database_connection", "setup",
        ]
        assert _setups(module)[0][1] == {"message": "hi"}

    def test_last_modified_matches_disk(self, supervisor, two_servers, greeter):
        a, b = two_servers
        for path in (a, b, greeter):
            assert supervisor.last_modified[path] == os.stat(path).st_mtime_ns

    def test_one_database_per_module_instance(self, supervisor, two_servers, layout):
        assert len(supervisor.stores) == 2
        assert supervisor.stores.is_open(layout.db_dir / "a" / "greeter" / "db.sqlite")
        assert supervisor.stores.is_open(layout.db_dir / "b" / "greeter" / "db.sqlite")

    def test_second_reconcile_without_changes_is_a_noop(self, supervisor, two_servers, rpc):
        attempts = rpc.attempt_count

        supervisor.reconcile()

        assert rpc.attempt_count == attempts


# ── Module edits ────────────────────────────────────────────────


class TestModuleChanges:
    def test_edited_bundle_is_reloaded_in_every_session(
        self, supervisor, two_servers, greeter,
    ):
        old = {p: s.get_module(greeter) for p, s in supervisor.sessions.items()}

        write_bundle(greeter, {"greeter.py": recording_module_source(version=2)})
        bump_mtime(greeter)
        supervisor.reconcile()

        for config_path, session in supervisor.sessions.items():
            new = session.get_module(greeter)
            assert new.VERSION == 2
            assert wait_for(lambda: len(_setups(new)) == 1)
            assert old[config_path].events[-1] == ("cleanup",)
        assert len(supervisor.stores) == 2

    def test_deleted_bundle_is_removed_from_sessions(self, supervisor, two_servers, greeter):
        old = [s.get_module(greeter) for s in supervisor.sessions.values()]

        greeter.unlink()
        supervisor.reconcile()

        for session in supervisor.sessions.values():
            assert not session.has_module_file(greeter)
        assert all(m.events[-1] == ("cleanup",) for m in old)
        assert greeter not in supervisor.last_modified
        assert len(supervisor.stores) == 0

    def test_bundle_appearing_later_is_picked_up(self, layout, supervisor):
        a = write_server_config(layout.server_config_dir / "a.toml", GREETER_CONFIG)
        supervisor.reconcile()
        session = supervisor.sessions[a]
        assert wait_for(lambda: session.is_connected)
        assert session.enabled_modules == {}

        greeter = write_bundle(
            layout.module_dir / "greeter.zip", {"greeter.py": recording_module_source()},
        )
        supervisor.reconcile()

        module = session.get_module(greeter)
        assert module is not None
        assert wait_for(lambda: len(_setups(module)) == 1)

    def test_session_modules_stay_within_known_bundles(self, supervisor, two_servers, greeter):
        greeter.unlink()
        supervisor.reconcile()

        for session in supervisor.sessions.values():
            assert set(session.enabled_modules) <= supervisor.module_paths


# ── Config edits ────────────────────────────────────────────────


class TestConfigChanges:
    def test_disabled_server_is_torn_down(self, supervisor, two_servers, greeter, layout):
        a, b = two_servers
        module_a = supervisor.sessions[a].get_module(greeter)
        module_b = supervisor.sessions[b].get_module(greeter)
        module_a.coordinator.receiver(object)
        module_b.coordinator.receiver(object)
        meta_b = supervisor.sessions[b].meta

        write_server_config(a, "[server]\nenabled = false\n")
        bump_mtime(a)
        supervisor.reconcile()

        assert a not in supervisor.sessions
        assert module_a.events[-1] == ("cleanup",)
        assert not supervisor.bus.has_server("a")
        assert not supervisor.stores.is_open(layout.db_dir / "a" / "greeter" / "db.sqlite")
        # b is untouched
        assert supervisor.bus.has_server("b")
        assert supervisor.sessions[b].meta is meta_b
        assert ("cleanup",) not in module_b.events

    def test_deleted_config_is_torn_down(self, supervisor, two_servers, greeter, layout):
        a, b = two_servers
        module_a = supervisor.sessions[a].get_module(greeter)
        module_a.coordinator.receiver(object)

        a.unlink()
        supervisor.reconcile()

        assert a not in supervisor.sessions
        assert b in supervisor.sessions
        assert module_a.events[-1] == ("cleanup",)
        assert not supervisor.bus.has_server("a")
        assert not supervisor.stores.is_open(layout.db_dir / "a" / "greeter" / "db.sqlite")
        assert a not in supervisor.last_modified

    def test_unrelated_edit_keeps_module_instance(self, supervisor, two_servers, greeter, rpc):
        a, _b = two_servers
        module = supervisor.sessions[a].get_module(greeter)

        write_server_config(a, GREETER_CONFIG + '\n[server_extra]\nnote = "x"\n')
        bump_mtime(a)
        supervisor.reconcile()

        assert supervisor.sessions[a].get_module(greeter) is module
        assert wait_for(lambda: len(_setups(module)) == 2)
        assert ("cleanup",) not in module.events

    def test_removing_module_from_config_unloads_it(
        self, supervisor, two_servers, greeter, layout,
    ):
        a, _b = two_servers
        module = supervisor.sessions[a].get_module(greeter)

        write_server_config(a, "[server]\nenabled_modules = []\n")
        bump_mtime(a)
        supervisor.reconcile()

        assert supervisor.sessions[a].enabled_modules == {}
        assert module.events[-1] == ("cleanup",)
        assert not supervisor.stores.is_open(layout.db_dir / "a" / "greeter" / "db.sqlite")

    def test_parse_failure_keeps_existing_session(self, supervisor, two_servers, greeter):
        a, _b = two_servers
        session = supervisor.sessions[a]
        module = session.get_module(greeter)

        write_server_config(a, "[server\n")
        bump_mtime(a)
        supervisor.reconcile()

        assert supervisor.sessions[a] is session
        assert session.get_module(greeter) is module
        assert session.is_connected

    def test_directory_config_is_one_session(self, supervisor, layout, greeter):
        config_dir = layout.server_config_dir / "c"
        write_server_config(config_dir / "server.toml", "[server]\nenabled_modules = [\"greeter\"]\n")
        write_server_config(config_dir / "greeter.toml", "[greeter]\nmessage = \"dir\"\n")

        supervisor.reconcile()

        session = supervisor.sessions[config_dir]
        module = session.get_module(greeter)
        assert wait_for(lambda: len(_setups(module)) == 1)
        assert _setups(module)[0][1] == {"message": "dir"}
        assert module.logger.name == "icejar.client.c.module.greeter"

    def test_missing_module_file_is_skipped(self, supervisor, layout):
        a = write_server_config(
            layout.server_config_dir / "a.toml", "[server]\nenabled_modules = [\"nope\"]\n",
        )

        supervisor.reconcile()

        assert supervisor.sessions[a].enabled_modules == {}


def test_unrelated_bundle_does_not_wait_for_connecting_session(
    supervisor, layout, rpc, greeter,
):
    rpc.gate = threading.Event()
    write_server_config(layout.server_config_dir / "a.toml", GREETER_CONFIG)
    supervisor.reconcile()
    assert rpc.connecting.wait(5)

    dice = write_bundle(
        layout.module_dir / "dice.zip", {"dice.py": recording_module_source("Dice")},
    )
    reconciling = threading.Thread(target=supervisor.reconcile, daemon=True)
    reconciling.start()
    reconciling.join(1.0)
    finished = not reconciling.is_alive()
    rpc.gate.set()
    reconciling.join(5)

    assert finished
    assert dice in supervisor.module_paths


def test_failed_session_start_is_released_and_retried(supervisor, layout, rpc, greeter):
    rpc.communicator_error = RuntimeError("no communicator")
    a = write_server_config(layout.server_config_dir / "a.toml", GREETER_CONFIG)

    supervisor.reconcile()

    assert a not in supervisor.sessions
    assert a not in supervisor.last_modified
    assert not supervisor.stores.is_open(layout.db_dir / "a" / "greeter" / "db.sqlite")

    rpc.communicator_error = None
    supervisor.reconcile()

    assert a in supervisor.sessions
    assert wait_for(lambda: supervisor.sessions[a].is_connected)


# ── Outage and shutdown ─────────────────────────────────────────


def test_remote_outage_sets_up_modules_again(supervisor, two_servers, greeter, rpc):
    a, _b = two_servers
    session = supervisor.sessions[a]
    module = session.get_module(greeter)

    rpc.failures = 2
    rpc.drop(session.meta)

    assert wait_for(lambda: len(_setups(module)) == 2)
    assert session.is_connected


def test_shutdown_removes_every_session(supervisor, two_servers, greeter):
    modules = [s.get_module(greeter) for s in supervisor.sessions.values()]

    supervisor.shutdown()

    assert supervisor.sessions == {}
    assert len(supervisor.stores) == 0
    assert all(m.events[-1] == ("cleanup",) for m in modules)


# ── Main loop ───────────────────────────────────────────────────


class TestRun:
    def _start(self, supervisor):
        stop = threading.Event()
        thread = threading.Thread(target=supervisor.run, args=(stop,), daemon=True)
        thread.start()
        return stop, thread

    def test_watcher_triggers_reconcile(self, supervisor, layout):
        stop, thread = self._start(supervisor)
        try:
            a = layout.server_config_dir / "a.toml"
            # Keep editing until the watcher is up and reports the change.
            for _ in range(20):
                write_server_config(a, "[server]\n")
                bump_mtime(a)
                if wait_for(lambda: a in supervisor.sessions, timeout=0.5):
                    break

            assert a in supervisor.sessions
        finally:
            stop.set()
            thread.join(5)
        assert not thread.is_alive()

    def test_falls_back_to_polling_without_watchable_directories(
        self, supervisor, layout, caplog,
    ):
        layout.module_dir.rmdir()
        stop, thread = self._start(supervisor)
        try:
            a = write_server_config(layout.server_config_dir / "a.toml", "[server]\n")

            assert wait_for(lambda: a in supervisor.sessions)
            assert "Falling back" in caplog.text
        finally:
            stop.set()
            thread.join(5)
        assert not thread.is_alive()
