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

"""PlanCompiler: compiles the logical networks into one CompiledPlan.

A pass runs these stages, strictly in order:

1. Flush the firewall rule collection.
2. Per network, in insertion order: validate (warn and skip), sanitize,
   resolve the gateway network and DNS inheritance, allocate the table,
   build the stanza with its routes and policy rules, and emit the NAT
   gateway rules for networks routed through another network.
3. Give parent interfaces that only carry tagged VLANs an unconfigured
   ``ethernets`` stanza.
4. Post-process Internet networks: reverse proxy ports, port forwards
   and hairpin policy rules for their LANs.

One incomplete or inconsistent network never stops the others from
compiling. Problems are recorded as warnings attributed to the network.
A PlanCompiler instance compiles exactly one pass.
"""

from __future__ import annotations

import dataclasses
import logging
import urllib.parse
from collections.abc import Sequence

from routerfabrik.compiler._base import BaseCompiler
from routerfabrik.compiler._interface_builder import InterfaceBuilder
from routerfabrik.compiler._plan import BringUp, CompiledPlan, HookTarget, ProxyPorts
from routerfabrik.compiler._table_allocator import TableAllocator
from routerfabrik.core._util import (
    AddressFamily,
    classify,
    is_valid_cidr,
    network_of,
)
from routerfabrik.core._validation import (
    MAX_VLAN_ID,
    MIN_VLAN_ID,
    is_valid_interface_name,
)
from routerfabrik.core.objects import (
    DnsConfig,
    ForwardProtocol,
    GatewayDisabled,
    GatewayManual,
    GatewayViaNetwork,
    NetworkSettings,
    NetworkType,
    PortForwardSettings,
)
from routerfabrik.core.options import ReconcilerOptions
from routerfabrik.platforms.linux import render_dhcp_hook
from routerfabrik.platforms.netplan import MAIN_TABLE, NetplanDocument, RoutingPolicy
from routerfabrik.platforms.nftables import Family, RuleEmitter

logger = logging.getLogger(__name__)

HAIRPIN_PRIORITY = 1


class PlanCompiler(BaseCompiler):
    def __init__(self, options: ReconcilerOptions | None = None) -> None:
        super().__init__()
        self.options: ReconcilerOptions = options or ReconcilerOptions()
        self.tables = TableAllocator(self.options.first_table_id)
        self.document = NetplanDocument()
        self.emitter = RuleEmitter()
        self._networks: dict[str, NetworkSettings] = {}
        self._bring_up: dict[str, BringUp] = {}
        self._hooks: dict[HookTarget, None] = {}
        self._default_internet_id: str | None = None
        self._builder: InterfaceBuilder | None = None

    def compile(self, networks: Sequence[NetworkSettings]) -> CompiledPlan:
        # Stage 1
        self.emitter.flush()

        # Stage 2
        for network in networks:
            sanitized = self._validate(network)
            if sanitized is not None:
                self._networks[sanitized.id] = sanitized
        self._default_internet_id = self._resolve_default_internet()
        self._builder = InterfaceBuilder(
            self, self.document, self.tables, self._default_internet_id
        )
        for network in list(self._networks.values()):
            self._compile_network(network)

        # Stage 3
        self._complete_parent_interfaces()

        # Stage 4
        proxy_index = 0
        for network in self._networks.values():
            if network.is_internet:
                proxy_index = self._post_process_internet(network, proxy_index)

        logger.info(
            'Compiled %d of %d networks into %d routing tables',
            len(self._bring_up),
            len(networks),
            len(self.tables.items()),
        )
        hook_targets = list(self._hooks)
        return CompiledPlan(
            document=self.document,
            netplan_text=self.document.render(),
            nft_rules=self.emitter.rules,
            nft_text=self.emitter.render(),
            hook_targets=hook_targets,
            hook_text=render_dhcp_hook(hook_targets, self.options),
            tables=dict(self.tables.items()),
            bring_up=list(self._bring_up.values()),
            warnings=self.get_warnings(),
            errors=self.get_errors(),
            status=self.status,
        )

    # -- Stage 2 --

    def _validate(self, network: NetworkSettings) -> NetworkSettings | None:
        """Return the sanitized network, or None if it has to be skipped."""
        if network.vlan_id is None:
            self.warning(network, 'VLAN ID is required, skipped')
            return None
        if not MIN_VLAN_ID <= network.vlan_id <= MAX_VLAN_ID:
            self.warning(network, f'invalid VLAN ID {network.vlan_id}, skipped')
            return None
        if not network.parent_interface:
            self.warning(network, 'parent interface is required, skipped')
            return None
        if not is_valid_interface_name(network.interface_name):
            self.warning(
                network, f'invalid interface name {network.interface_name!r}, skipped'
            )
            return None

        interface_name = network.interface_name
        for other in self._networks.values():
            if other.interface_name == interface_name:
                self.warning(
                    network,
                    f'interface {interface_name} is already used by {other.label}, skipped',
                )
                return None

        addresses = []
        for address in network.static_addresses:
            if is_valid_cidr(address):
                addresses.append(address.strip())
            else:
                self.warning(network, f'ignoring malformed address {address!r}')

        gateway = network.gateway
        if network.network_type == NetworkType.BRIDGE:
            if not isinstance(gateway, GatewayDisabled):
                self.warning(network, 'bridges carry no gateway, ignoring it')
            gateway = GatewayDisabled()
        elif not network.is_auto and not addresses:
            self.warning(
                network, 'an address is required unless the address mode is Auto, skipped'
            )
            return None

        if network.is_internet and not isinstance(gateway, GatewayManual):
            if isinstance(gateway, GatewayViaNetwork):
                self.warning(
                    network,
                    'Internet networks cannot route through another network, '
                    'using a manual gateway',
                )
            gateway = GatewayManual()

        if isinstance(gateway, GatewayManual):
            gateway = self._sanitize_manual_gateway(network, gateway)

        port_forwards = network.port_forwards
        if port_forwards and not network.is_internet:
            self.warning(
                network,
                f'ignoring {len(port_forwards)} port forwards, '
                'they only apply to Internet networks',
            )
            port_forwards = ()

        return dataclasses.replace(
            network,
            addresses=tuple(addresses) if not network.is_auto else network.addresses,
            gateway=gateway,
            port_forwards=port_forwards,
        )

    def _sanitize_manual_gateway(
        self, network: NetworkSettings, gateway: GatewayManual
    ) -> GatewayManual:
        ipv4, ipv6 = gateway.ipv4, gateway.ipv6
        if ipv4 and classify(ipv4) != AddressFamily.IPV4:
            self.warning(network, f'ignoring malformed IPv4 gateway {ipv4!r}')
            ipv4 = None
        if ipv6 and classify(ipv6) != AddressFamily.IPV6:
            self.warning(network, f'ignoring malformed IPv6 gateway {ipv6!r}')
            ipv6 = None
        return GatewayManual(ipv4=ipv4, ipv6=ipv6)

    def _resolve_default_internet(self) -> str | None:
        wanted = self.options.default_internet
        if wanted:
            for network in self._networks.values():
                if wanted in (network.id, network.name):
                    return network.id
            self.warning(f'Default internet network {wanted!r} is not configured')
            return None
        for network in self._networks.values():
            if network.is_internet:
                return network.id
        return None

    def _resolve_gateway(self, network: NetworkSettings) -> NetworkSettings | None:
        gateway = network.gateway
        if not isinstance(gateway, GatewayViaNetwork):
            return None
        target = self._networks.get(gateway.network_id)
        if target is None:
            self.warning(
                network,
                f'gateway network {gateway.network_id} is not configured, '
                'keeping the blackhole default',
            )
            return None
        if target.id == network.id:
            self.warning(network, 'a network cannot be its own gateway')
            return None
        if target.network_type == NetworkType.BRIDGE:
            self.warning(network, f'bridge {target.label} cannot be a gateway')
            return None
        return target

    def _resolve_dns(
        self, network: NetworkSettings, gateway_network: NetworkSettings | None
    ) -> NetworkSettings:
        """Fill in the DNS servers of a network whose DNS is Auto."""
        if not network.dns.auto:
            return network
        source = gateway_network
        if source is None and self._default_internet_id != network.id:
            source = self._networks.get(self._default_internet_id or '')
        if source is None:
            if not network.is_auto:
                self.warning(network, 'DNS is Auto but there is no gateway to inherit from')
            return network
        if source.dns.auto or not source.dns.servers:
            if source.is_auto:
                self.warning(
                    network,
                    f'DNS is Auto but {source.label} is DHCP-addressed and has '
                    'no static DNS servers to inherit',
                )
            else:
                self.warning(
                    network, f'DNS is Auto but {source.label} has no DNS servers'
                )
            return network
        return dataclasses.replace(
            network,
            dns=DnsConfig(
                auto=True, servers=source.dns.servers, search=source.dns.search
            ),
        )

    def _compile_network(self, network: NetworkSettings) -> None:
        gateway_network = self._resolve_gateway(network)
        network = self._resolve_dns(network, gateway_network)
        self._networks[network.id] = network

        table, hooks = self._builder.build(network, gateway_network)
        for hook in hooks:
            self._hooks.setdefault(hook, None)

        if gateway_network is not None and table is not None and network.static_addresses:
            for family in Family:
                self.emitter.add_wan_gateway(
                    family, gateway_network.interface_name, network.interface_name
                )

        self._bring_up[network.id] = BringUp(
            network=network,
            interface_name=network.interface_name,
            table=table,
        )

    # -- Stage 3 --

    def _complete_parent_interfaces(self) -> None:
        parents = dict.fromkeys(
            n.parent_interface for n in self._networks.values() if n.vlan_id != 1
        )
        for parent in parents:
            if parent in self.document.ethernets:
                continue
            stanza = self.document.ethernet(parent)
            stanza.dhcp4 = False
            stanza.dhcp6 = False
            stanza.optional = True

    # -- Stage 4 --

    def _post_process_internet(self, network: NetworkSettings, proxy_index: int) -> int:
        lans = [
            n
            for n in self._networks.values()
            if isinstance(n.gateway, GatewayViaNetwork)
            and n.gateway.network_id == network.id
            and n.network_type != NetworkType.BRIDGE
        ]
        lan_interfaces = [n.interface_name for n in lans]

        proxied = tuple(
            pf
            for pf in network.port_forwards
            if pf.protocol.is_proxied and self._validate_proxy_forward(network, pf)
        )
        if proxied:
            ports = ProxyPorts(
                https=self.options.https_port_base + proxy_index,
                http=self.options.http_port_base + proxy_index,
            )
            proxy_index += 1
            self._forward_to_proxy(network, lan_interfaces, ports)
            self._bring_up[network.id] = dataclasses.replace(
                self._bring_up[network.id], proxy_ports=ports, proxy_forwards=proxied
            )

        forwarded = []
        for port_forward in network.port_forwards:
            if port_forward.protocol.is_proxied:
                continue
            if self._emit_port_forward(network, port_forward, lan_interfaces):
                forwarded.append(port_forward)

        # LAN clients reach forwarded hosts directly instead of through
        # the gateway's table.
        for lan in lans:
            stanza = self._builder.stanza_for(lan)
            for address in lan.static_addresses:
                family = classify(address)
                for port_forward in forwarded:
                    if classify(port_forward.dst_ip) != family:
                        continue
                    stanza.add_policy(
                        RoutingPolicy(
                            from_=network_of(address),
                            to=port_forward.dst_ip,
                            table=MAIN_TABLE,
                            priority=HAIRPIN_PRIORITY,
                        )
                    )
        return proxy_index

    def _forward_to_proxy(
        self, network: NetworkSettings, lan_interfaces: list[str], ports: ProxyPorts
    ) -> None:
        loopbacks = (
            (Family.IP, self.options.fake_loopback_ipv4, 32),
            (Family.IP6, self.options.fake_loopback_ipv6, 128),
        )
        lo = self.document.ethernet('lo')
        for family, loopback, prefix in loopbacks:
            if not loopback:
                continue
            try:
                for public, local in (('443', ports.https), ('80', ports.http)):
                    self.emitter.add_port_forward(
                        family,
                        network.interface_name,
                        network.static_addresses,
                        lan_interfaces,
                        ForwardProtocol.TCP,
                        public,
                        loopback,
                        str(local),
                    )
            except ValueError as e:
                self.error(network, f'reverse proxy loopback {loopback!r}: {e}')
                continue
            lo.add_address(f'{loopback}/{prefix}')

    def _emit_port_forward(
        self,
        network: NetworkSettings,
        port_forward: PortForwardSettings,
        lan_interfaces: list[str],
    ) -> bool:
        family = Family.of(port_forward.dst_ip)
        if family is None:
            self.warning(
                network,
                f'port forward {port_forward.description}: invalid destination '
                'address, skipped',
            )
            return False
        try:
            self.emitter.add_port_forward(
                family,
                network.interface_name,
                network.static_addresses,
                lan_interfaces,
                port_forward.protocol,
                port_forward.src_port,
                port_forward.dst_ip,
                port_forward.dst_port,
            )
        except ValueError as e:
            self.warning(
                network, f'port forward {port_forward.description}: {e}, skipped'
            )
            return False
        return True

    def _validate_proxy_forward(
        self, network: NetworkSettings, port_forward: PortForwardSettings
    ) -> bool:
        label = port_forward.name or port_forward.domain or port_forward.id
        if port_forward.site_block.strip():
            return True
        if not port_forward.domain:
            self.warning(network, f'reverse proxy {label}: domain is required, skipped')
            return False
        origin = port_forward.origin.strip()
        try:
            parsed = urllib.parse.urlsplit(origin if '://' in origin else f'http://{origin}')
            port = parsed.port  # ValueError when out of range
            valid = (
                bool(origin)
                and parsed.scheme in ('http', 'https')
                and bool(parsed.hostname)
                and port != 0
            )
        except ValueError:
            valid = False
        if not valid:
            self.warning(
                network, f'reverse proxy {label}: malformed origin {origin!r}, skipped'
            )
            return False
        return True
