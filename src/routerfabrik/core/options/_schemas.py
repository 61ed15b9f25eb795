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

"""Typed option schemas with shared defaults.

This module provides dataclass schemas that define the typed structure
and default values of the reconciler options. These schemas serve as
the single source of truth for:

1. What options exist and their types
2. Default values shared between the CLI and the reconciler
3. Documentation of option semantics
"""

from __future__ import annotations

import pathlib
from collections.abc import Mapping
from dataclasses import dataclass, field, fields

from routerfabrik.core.options._keys import HookMode, ReconcilerOption, ToolOption

_TRUE_STRINGS = frozenset({'1', 'true', 'yes', 'on'})
_FALSE_STRINGS = frozenset({'0', 'false', 'no', 'off', ''})


def _coerce(current, value, key: str):
    """Coerce *value* to the type of the default *current*."""
    if isinstance(current, bool):
        if isinstance(value, bool):
            return value
        low = str(value).strip().lower()
        if low in _TRUE_STRINGS:
            return True
        if low in _FALSE_STRINGS:
            return False
        raise ValueError(f'Option {key}: expected a boolean, got {value!r}')
    if isinstance(current, (int, float)):
        try:
            return type(current)(value)
        except (TypeError, ValueError):
            raise ValueError(
                f'Option {key}: expected a number, got {value!r}'
            ) from None
    return '' if value is None else str(value)


@dataclass
class ToolPathDefaults:
    """Default paths of the external commands."""

    netplan: str = 'netplan'
    nft: str = 'nft'
    systemctl: str = 'systemctl'
    dnsmasq: str = '/usr/sbin/dnsmasq'
    caddy: str = '/usr/bin/caddy'
    ip: str = 'ip'

    @classmethod
    def from_mapping(cls, data: Mapping | None) -> ToolPathDefaults:
        tools = cls()
        for key, value in (data or {}).items():
            try:
                option = ToolOption(key)
            except ValueError:
                raise ValueError(f'Unknown tool option: {key}') from None
            setattr(tools, option.value, str(value))
        return tools


@dataclass
class ReconcilerOptions:
    """Options of one reconciler instance.

    File paths are the locations on the managed host. ``root`` is
    prepended when writing, so a dry run can render everything below a
    scratch directory while the generated files still reference the
    real system paths.
    """

    # Generated artifacts
    netplan_file: str = '/etc/netplan/01-routerfabrik.yaml'
    nft_file: str = '/etc/routerfabrik/routerfabrik.nft'
    hook_file: str = '/etc/networkd-dispatcher/routable.d/50-routerfabrik'
    watcher_script: str = '/usr/local/lib/routerfabrik/dhcp-watcher.sh'
    unit_dir: str = '/etc/systemd/system'
    caddy_dir: str = '/etc/routerfabrik/caddy'
    lease_dir: str = '/run/systemd/netif/leases'
    root: str = '/'

    # Behaviour
    hook_mode: str = HookMode.EVENT.value
    command_timeout: float = 30.0
    first_table_id: int = 100
    # id or name of the network whose gateway also becomes the main-table default
    default_internet: str = ''
    dry_run: bool = False

    # Reverse proxy
    https_port_base: int = 40443
    http_port_base: int = 40080
    fake_loopback_ipv4: str = '169.254.253.1'
    fake_loopback_ipv6: str = 'fd7f::1'

    tools: ToolPathDefaults = field(default_factory=ToolPathDefaults)

    @classmethod
    def from_mapping(cls, data: Mapping | None) -> ReconcilerOptions:
        """Build options from the ``options:`` section of a network file.

        Raises ValueError for unknown keys and uncoercible values.
        """
        options = cls()
        for key, value in (data or {}).items():
            if key == 'tools':
                options.tools = ToolPathDefaults.from_mapping(value)
                continue
            try:
                option = ReconcilerOption(key)
            except ValueError:
                raise ValueError(f'Unknown option: {key}') from None
            current = getattr(options, option.value)
            setattr(options, option.value, _coerce(current, value, key))
        try:
            HookMode(options.hook_mode)
        except ValueError:
            raise ValueError(
                f'Option hook_mode: expected one of '
                f'{", ".join(m.value for m in HookMode)}, got {options.hook_mode!r}'
            ) from None
        if options.first_table_id < 1:
            raise ValueError('Option first_table_id must be positive')
        return options

    def to_mapping(self) -> dict:
        """Return the options that differ from the defaults."""
        defaults = ReconcilerOptions()
        result = {}
        for f in fields(self):
            # root only relocates a single run and is never persisted
            if f.name in ('tools', 'root'):
                continue
            value = getattr(self, f.name)
            if value != getattr(defaults, f.name):
                result[f.name] = value
        tools = {
            f.name: getattr(self.tools, f.name)
            for f in fields(self.tools)
            if getattr(self.tools, f.name) != getattr(defaults.tools, f.name)
        }
        if tools:
            result['tools'] = tools
        return result

    def target(self, path: str) -> pathlib.Path:
        """Return where *path* is written, honouring ``root``."""
        return pathlib.Path(self.root) / path.lstrip('/')


# Instantiate default objects for easy access
TOOL_PATH_DEFAULTS = ToolPathDefaults()
RECONCILER_DEFAULTS = ReconcilerOptions()
