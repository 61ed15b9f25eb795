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

"""Choice lists offered when editing a network."""

from __future__ import annotations

from collections.abc import Iterable

from .objects import NetworkSettings, NetworkType

# Interfaces that never carry a logical network.
_VIRTUAL_PREFIXES = ('lo', 'docker', 'veth', 'virbr', 'br-', 'tun', 'tap')


def parent_interface_choices(os_interfaces: Iterable[str]) -> list[str]:
    """Return the physical interfaces usable as VLAN parents.

    VLAN sub-interfaces (``eth0.10``) and virtual devices are left out.
    """
    choices = {
        name
        for name in os_interfaces
        if name and '.' not in name and not name.startswith(_VIRTUAL_PREFIXES)
    }
    return sorted(choices)


def gateway_choices(
    networks: Iterable[NetworkSettings],
    exclude_id: str | None = None,
) -> list[tuple[str, str]]:
    """Return ``(id, label)`` of networks selectable as an internet gateway.

    Internet networks come first, followed by plain networks usable as
    a local interface. Bridges and incomplete networks are not offered.
    """
    internet = []
    local = []
    for network in networks:
        if network.id == exclude_id or network.interface_name is None:
            continue
        match network.network_type:
            case NetworkType.INTERNET:
                internet.append((network.id, network.label))
            case NetworkType.NETWORK:
                local.append((network.id, network.label))
    return internet + local
