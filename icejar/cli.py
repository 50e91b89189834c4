# icejar - Mumble Ice module supervisor
# Copyright (C) 2026 icejar Authors
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

import argparse
import logging
import os
import signal
import sys
import threading
from pathlib import Path

from icejar.logging_config import BASE_LOGGER

logger = logging.getLogger(BASE_LOGGER)

_TRUE_VALUES = ("1", "true", "yes", "on")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="icejar",
        description="icejar - run hot-reloadable modules against Mumble servers over Ice",
    )
    parser.add_argument(
        "-s", dest="server_config_dir", default="servers", metavar="DIR",
        help="Server configuration directory (default: servers)",
    )
    parser.add_argument(
        "-m", dest="module_dir", default="modules", metavar="DIR",
        help="Module bundle directory (default: modules)",
    )
    parser.add_argument(
        "-d", dest="db_dir", default="data", metavar="DIR",
        help="Root directory for module databases (default: data)",
    )
    parser.add_argument(
        "-v", dest="verbose", action="store_true",
        help="Log everything from icejar and its modules",
    )
    parser.add_argument(
        "--slice", default=os.environ.get("ICEJAR_SLICE", "MumbleServer.ice"),
        metavar="FILE",
        help="Mumble slice file (default: $ICEJAR_SLICE or MumbleServer.ice)",
    )
    parser.add_argument(
        "--trace", action="store_true",
        default=os.environ.get("ICEJAR_TRACE", "").lower() in _TRUE_VALUES,
        help="Print stack traces of logged exceptions",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    from dotenv import load_dotenv

    load_dotenv()

    args = build_parser().parse_args(argv)

    from icejar.logging_config import setup_logging

    setup_logging(
        level=os.environ.get("ICEJAR_LOG_LEVEL", "INFO"),
        verbose=args.verbose,
        show_tracebacks=args.trace,
    )

    from icejar.exceptions import IcejarError
    from icejar.paths import Layout
    from icejar.rpc.ice import IceBackend
    from icejar.supervisor.manager import Supervisor

    try:
        rpc = IceBackend(Path(args.slice))
    except IcejarError as e:
        logger.error("%s", e)
        return 1
    except Exception as e:
        logger.error("Loading slice file `%s` threw: %s", args.slice, e)
        return 1

    layout = Layout(
        server_config_dir=Path(args.server_config_dir),
        module_dir=Path(args.module_dir),
        db_dir=Path(args.db_dir),
    )
    supervisor = Supervisor(layout, rpc)
    stop_event = threading.Event()

    def _handle_signal(signum: int, _frame: object) -> None:
        logger.debug("Received %s", signal.Signals(signum).name)
        stop_event.set()

    signal.signal(signal.SIGINT, _handle_signal)
    signal.signal(signal.SIGTERM, _handle_signal)

    try:
        supervisor.run(stop_event)
    finally:
        supervisor.shutdown()
    return 0


def cli_main() -> None:
    sys.exit(main())
