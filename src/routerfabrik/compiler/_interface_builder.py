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

"""InterfaceBuilder: netplan stanza, routes and policy rules of one network.

Every routed network gets a private routing table. Until a real gateway
route exists the table only holds a blackhole default, so traffic
sourced from the network can never leak out through the main table.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from routerfabrik.compiler._plan import HookTarget
from routerfabrik.core._util import is_ipv4, is_ipv6, network_of, parse_bare_address
from routerfabrik.core.objects import (
    GatewayManual,
    GatewayViaNetwork,
    NetworkSettings,
    NetworkType,
)
from routerfabrik.platforms.netplan import (
    DEFAULT_IPV4,
    DEFAULT_IPV6,
    InterfaceStanza,
    NetplanDocument,
    Route,
    RouteScope,
    RouteType,
    RoutingPolicy,
)

if TYPE_CHECKING:
    from routerfabrik.compiler._base import BaseCompiler
    from routerfabrik.compiler._table_allocator import TableAllocator

OWN_TABLE_PRIORITY = 1
GATEWAY_TABLE_PRIORITY = 2


class InterfaceBuilder:
    def __init__(
        self,
        compiler: BaseCompiler,
        document: NetplanDocument,
        tables: TableAllocator,
        default_internet_id: str | None = None,
    ) -> None:
        self._compiler = compiler
        self._document = document
        self._tables = tables
        self._default_internet_id = default_internet_id

    def stanza_for(self, network: NetworkSettings) -> InterfaceStanza:
        """Return the stanza of *network*, creating it on first use.

        VLAN 1 is the untagged parent and lives under ``ethernets``.
        """
        name = network.interface_name
        if network.vlan_id == 1:
            return self._document.ethernet(name)
        return self._document.vlan(name, network.parent_interface, network.vlan_id)

    def build(
        self,
        network: NetworkSettings,
        gateway_network: NetworkSettings | None = None,
    ) -> tuple[int | None, list[HookTarget]]:
        """Emit the stanza of a validated network.

        *gateway_network* is the resolved target of a ``GatewayViaNetwork``.
        Returns the private table (None for bridges) and the DHCP hook
        targets this network needs.
        """
        stanza = self.stanza_for(network)
        stanza.optional = True

        if network.network_type == NetworkType.BRIDGE:
            # Layer 2 only: no addresses, no table.
            stanza.dhcp4 = False
            stanza.dhcp6 = False
            return None, []

        self._build_addressing(network, stanza)

        table = self._tables.ensure_table(network.interface_name)
        addresses = network.static_addresses
        stanza.add_route(Route(to=DEFAULT_IPV4, table=table, type=RouteType.BLACKHOLE))
        if any(is_ipv6(a) for a in addresses):
            stanza.add_route(
                Route(to=DEFAULT_IPV6, table=table, type=RouteType.BLACKHOLE)
            )

        for address in addresses:
            bare = parse_bare_address(address)
            subnet = network_of(address)
            stanza.add_route(
                Route(to=subnet, from_=bare, table=table, scope=RouteScope.LINK)
            )
            stanza.add_policy(
                RoutingPolicy(from_=bare, table=table, priority=OWN_TABLE_PRIORITY)
            )
            stanza.add_policy(
                RoutingPolicy(to=subnet, table=table, priority=OWN_TABLE_PRIORITY)
            )

        hooks: list[HookTarget] = []
        match network.gateway:
            case GatewayViaNetwork():
                if gateway_network is not None:
                    hooks = self._route_via_network(
                        network, stanza, table, gateway_network
                    )
            case GatewayManual() as gateway:
                self._route_via_manual_gateway(network, stanza, table, gateway)
        return table, hooks

    def _build_addressing(
        self, network: NetworkSettings, stanza: InterfaceStanza
    ) -> None:
        if network.is_auto:
            stanza.dhcp4 = network.dhcp4
            stanza.dhcp6 = network.dhcp6
            stanza.accept_ra = network.accept_ra
            # Leased routes would land in the main table. Only the
            # default-internet network may put its default there.
            overrides = {'use-routes': False, 'use-domains': False}
            if network.id == self._default_internet_id:
                overrides = {'use-domains': False}
            if network.dhcp4:
                stanza.dhcp4_overrides = dict(overrides)
            if network.dhcp6:
                stanza.dhcp6_overrides = dict(overrides)
        else:
            stanza.dhcp4 = False
            stanza.dhcp6 = False
            for address in network.static_addresses:
                stanza.add_address(address)

        stanza.nameservers = list(network.dns.servers)
        stanza.search = list(network.dns.search)

    def _route_via_network(
        self,
        network: NetworkSettings,
        stanza: InterfaceStanza,
        table: int,
        gateway_network: NetworkSettings,
    ) -> list[HookTarget]:
        addresses = network.static_addresses
        if not addresses:
            self._compiler.warning(
                network,
                f'needs a static address to route through {gateway_network.label}, '
                'keeping the blackhole default',
            )
            return []

        gateway_table = self._tables.ensure_table(gateway_network.interface_name)
        for address in addresses:
            # Leases handed out by our own DHCP server share the subnet.
            if network.dhcp_server.enabled:
                source = network_of(address)
            else:
                source = parse_bare_address(address)
            stanza.add_policy(
                RoutingPolicy(
                    from_=source, table=gateway_table, priority=GATEWAY_TABLE_PRIORITY
                )
            )

        if gateway_network.is_auto:
            # The gateway is only known once the lease arrives.
            source_ip = next(
                (parse_bare_address(a) for a in addresses if is_ipv4(a)), None
            )
            if source_ip is None:
                self._compiler.warning(
                    network,
                    f'has no IPv4 address to source the default route through '
                    f'{gateway_network.label}',
                )
                return []
            # the hook only installs an IPv4 default into the gateway table
            stanza.remove_blackhole(table, DEFAULT_IPV4)
            return [
                HookTarget(
                    wan_interface=gateway_network.interface_name,
                    source_ip=source_ip,
                    table=gateway_table,
                )
            ]

        gateway = gateway_network.gateway
        if not isinstance(gateway, GatewayManual) or gateway.is_empty:
            self._compiler.warning(
                network, f'gateway network {gateway_network.label} has no gateway address'
            )
            return []
        # The next hop sits on the gateway network's link.
        gateway_stanza = self.stanza_for(gateway_network)
        for default, via in ((DEFAULT_IPV4, gateway.ipv4), (DEFAULT_IPV6, gateway.ipv6)):
            if not via:
                continue
            gateway_stanza.add_route(Route(to=default, via=via, table=table))
            stanza.remove_blackhole(table, default)
        return []

    def _route_via_manual_gateway(
        self,
        network: NetworkSettings,
        stanza: InterfaceStanza,
        table: int,
        gateway: GatewayManual,
    ) -> None:
        if gateway.is_empty:
            return
        is_default_internet = network.id == self._default_internet_id
        for default, via in ((DEFAULT_IPV4, gateway.ipv4), (DEFAULT_IPV6, gateway.ipv6)):
            if not via:
                continue
            stanza.add_route(Route(to=default, via=via, table=table))
            stanza.remove_blackhole(table, default)
            if is_default_internet:
                stanza.add_route(Route(to=default, via=via))
