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

"""Resolved settings consumed by the plan compiler.

These are plain, immutable snapshots of the persisted objects. The
compiler only ever sees these dataclasses, so it does not care whether
the values came from the object database, a YAML file or a test.
"""

from __future__ import annotations

import dataclasses

from ._types import AddressMode, ForwardProtocol, NetworkType


def get_interface_name(parent_interface: str, vlan_id: int) -> str:
    """VLAN 1 is the untagged parent itself, everything else a sub-interface."""
    if vlan_id != 1:
        return f'{parent_interface}.{vlan_id}'
    return parent_interface


@dataclasses.dataclass(frozen=True, slots=True)
class GatewayDisabled:
    """No upstream gateway; the private table keeps its blackhole default."""


@dataclasses.dataclass(frozen=True, slots=True)
class GatewayViaNetwork:
    """Use another logical network as the internet gateway."""

    network_id: str


@dataclasses.dataclass(frozen=True, slots=True)
class GatewayManual:
    """Explicit gateway address per address family."""

    ipv4: str | None = None
    ipv6: str | None = None

    @property
    def is_empty(self) -> bool:
        return not self.ipv4 and not self.ipv6


GatewayConfig = GatewayDisabled | GatewayViaNetwork | GatewayManual


@dataclasses.dataclass(frozen=True, slots=True)
class DnsConfig:
    """DNS servers and search domains, or ``auto`` to inherit them."""

    auto: bool = False
    servers: tuple[str, ...] = ()
    search: tuple[str, ...] = ()


@dataclasses.dataclass(frozen=True, slots=True)
class DhcpServerConfig:
    """DHCP server role of a network.

    ``ranges`` holds ``"first,last"`` address pairs.
    """

    enabled: bool = False
    ranges: tuple[str, ...] = ()
    lease_time: str = '12h'


@dataclasses.dataclass(frozen=True, slots=True)
class ReservationSettings:
    id: str
    name: str = ''
    mac: str = ''
    ip: str = ''
    host: str = ''

    @property
    def hostname(self) -> str:
        """The reserved DNS host name, defaulting to the friendly name."""
        return self.host or self.name


@dataclasses.dataclass(frozen=True, slots=True)
class PortForwardSettings:
    id: str
    name: str = ''
    protocol: ForwardProtocol = ForwardProtocol.TCP
    src_port: str = ''
    dst_ip: str = ''
    dst_port: str = ''
    # reverse proxy only
    origin: str = ''
    domain: str = ''
    dns_provider: str = ''
    dns_provider_token: str = ''
    site_block: str = ''

    @property
    def description(self) -> str:
        protocol = self.protocol or 'unconfigured'
        src_port = self.src_port or 'unconfigured'
        dst_ip = self.dst_ip or 'unconfigured ip'
        dst_port = self.dst_port or 'unconfigured port'
        return f'{protocol} port {src_port} to {dst_ip}:{dst_port}'


@dataclasses.dataclass(frozen=True, slots=True)
class NetworkSettings:
    id: str
    name: str = ''
    vlan_id: int | None = None
    parent_interface: str | None = None
    network_type: NetworkType = NetworkType.NETWORK
    address_mode: AddressMode = AddressMode.MANUAL
    addresses: tuple[str, ...] = ()
    dhcp4: bool = True
    dhcp6: bool = False
    accept_ra: bool = False
    gateway: GatewayConfig = GatewayDisabled()
    dns: DnsConfig = DnsConfig()
    dhcp_server: DhcpServerConfig = DhcpServerConfig()
    reservations: tuple[ReservationSettings, ...] = ()
    port_forwards: tuple[PortForwardSettings, ...] = ()

    @property
    def label(self) -> str:
        """Human readable identification used in warnings."""
        return f'{self.name} ({self.id})' if self.name else self.id

    @property
    def interface_name(self) -> str | None:
        if self.vlan_id is None or not self.parent_interface:
            return None
        return get_interface_name(self.parent_interface, self.vlan_id)

    @property
    def is_auto(self) -> bool:
        return self.address_mode == AddressMode.AUTO

    @property
    def is_internet(self) -> bool:
        return self.network_type == NetworkType.INTERNET

    @property
    def static_addresses(self) -> tuple[str, ...]:
        """Addresses that apply, which are none at all in Auto mode."""
        if self.is_auto:
            return ()
        return self.addresses
