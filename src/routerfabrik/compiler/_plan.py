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

"""Result types of a compiler pass."""

from __future__ import annotations

import dataclasses

from routerfabrik.compiler._base import CompilerStatus
from routerfabrik.core.objects import NetworkSettings, PortForwardSettings
from routerfabrik.platforms.netplan import NetplanDocument
from routerfabrik.platforms.nftables import NftRule


@dataclasses.dataclass(frozen=True, slots=True)
class HookTarget:
    """Default route the DHCP hook installs once the WAN lease is known."""

    wan_interface: str
    source_ip: str
    table: int


@dataclasses.dataclass(frozen=True, slots=True)
class ProxyPorts:
    """Local ports the reverse proxy of one Internet network listens on."""

    https: int
    http: int


@dataclasses.dataclass(frozen=True, slots=True)
class BringUp:
    """A network that compiled cleanly, with its resolved settings."""

    network: NetworkSettings
    interface_name: str
    table: int | None
    proxy_ports: ProxyPorts | None = None
    # http(s) forwards that passed validation, served by the reverse proxy
    proxy_forwards: tuple[PortForwardSettings, ...] = ()


@dataclasses.dataclass(slots=True)
class CompiledPlan:
    """Everything one pass produces. Written to disk as a whole."""

    document: NetplanDocument
    netplan_text: str
    nft_rules: list[NftRule]
    nft_text: str
    hook_targets: list[HookTarget]
    hook_text: str
    tables: dict[str, int]
    bring_up: list[BringUp]
    warnings: list[str]
    errors: list[str]
    status: CompilerStatus

    def bring_up_for(self, network_id: str) -> BringUp | None:
        for item in self.bring_up:
            if item.network.id == network_id:
                return item
        return None
