# Copyright (C) 2026 Linuxfabrik <info@linuxfabrik.ch>
#
# This program is free software; you can redistribute it and/or modify
# it under the terms of the GNU General Public License as published by
# the Free Software Foundation; either version 2 of the License, or
# (at your option) any later version.
#
# On Debian systems, the complete text of the GNU General Public License
# version 2 can be found in /usr/share/common-licenses/GPL-2.
#
# SPDX-License-Identifier: GPL-2.0-or-later

"""Canonical option key definitions using StrEnum.

The keys are the names accepted in the ``options:`` section of a
network file. Using StrEnum ensures:

1. Typos are caught at import time (AttributeError)
2. Keys can be used directly as dict keys (StrEnum inherits from str)
3. A single source of truth for option key names

Example:
    from routerfabrik.core.options import ReconcilerOption

    opts[ReconcilerOption.HOOK_MODE] = 'polling'
"""

from enum import StrEnum


class ReconcilerOption(StrEnum):
    """Reconciler option keys."""

    # Generated artifacts
    NETPLAN_FILE = 'netplan_file'
    NFT_FILE = 'nft_file'
    HOOK_FILE = 'hook_file'
    WATCHER_SCRIPT = 'watcher_script'
    UNIT_DIR = 'unit_dir'
    CADDY_DIR = 'caddy_dir'
    LEASE_DIR = 'lease_dir'

    # Behaviour
    HOOK_MODE = 'hook_mode'
    COMMAND_TIMEOUT = 'command_timeout'
    FIRST_TABLE_ID = 'first_table_id'
    DEFAULT_INTERNET = 'default_internet'
    DRY_RUN = 'dry_run'

    # Reverse proxy
    HTTPS_PORT_BASE = 'https_port_base'
    HTTP_PORT_BASE = 'http_port_base'
    FAKE_LOOPBACK_IPV4 = 'fake_loopback_ipv4'
    FAKE_LOOPBACK_IPV6 = 'fake_loopback_ipv6'


class ToolOption(StrEnum):
    """Paths of the external commands, under ``options: tools:``."""

    NETPLAN = 'netplan'
    NFT = 'nft'
    SYSTEMCTL = 'systemctl'
    DNSMASQ = 'dnsmasq'
    CADDY = 'caddy'
    IP = 'ip'


class HookMode(StrEnum):
    """How DHCP-learned gateways are propagated into private tables."""

    EVENT = 'event'
    POLLING = 'polling'
