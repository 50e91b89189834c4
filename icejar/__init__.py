# icejar - Mumble Ice module supervisor
# Copyright (C) 2026 icejar Authors
# SPDX-License-Identifier: Apache-2.0
"""icejar - run hot-reloadable modules against Mumble servers over Ice."""

__version__ = "0.1.0"
