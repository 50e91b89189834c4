# icejar - Mumble Ice module supervisor
# Copyright (C) 2026 icejar Authors
# SPDX-License-Identifier: Apache-2.0

from icejar.cli import cli_main

cli_main()
