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

"""Netplan document model.

The interface document is built up stanza by stanza during a compiler
pass and serialized once at the end. Routes and routing-policy rules
are kept in insertion order without duplicates, so adding the same
route twice is harmless.
"""

from __future__ import annotations

import dataclasses
import enum

import yaml

HEADER = '# Generated by routerfabrik. Local changes are overwritten.\n'

DEFAULT_IPV4 = '0.0.0.0/0'
DEFAULT_IPV6 = '::/0'
MAIN_TABLE = 254


class RouteType(enum.StrEnum):
    UNICAST = 'unicast'
    BLACKHOLE = 'blackhole'


class RouteScope(enum.StrEnum):
    HOST = 'host'
    LINK = 'link'
    GLOBAL = 'global'


def _compact(items) -> dict:
    return {k: v for k, v in items if v is not None and v is not False}


@dataclasses.dataclass(frozen=True, slots=True)
class Route:
    to: str
    via: str | None = None
    from_: str | None = None
    table: int | None = None
    metric: int | None = None
    type: RouteType | None = None
    scope: RouteScope | None = None
    on_link: bool = False

    @property
    def is_default(self) -> bool:
        return self.to in (DEFAULT_IPV4, DEFAULT_IPV6, 'default')

    @property
    def is_blackhole(self) -> bool:
        return self.type == RouteType.BLACKHOLE

    def to_dict(self) -> dict:
        return _compact(
            (
                ('to', self.to),
                ('via', self.via),
                ('from', self.from_),
                ('table', self.table),
                ('metric', self.metric),
                ('type', self.type.value if self.type else None),
                ('scope', self.scope.value if self.scope else None),
                ('on-link', self.on_link),
            )
        )


@dataclasses.dataclass(frozen=True, slots=True)
class RoutingPolicy:
    from_: str | None = None
    to: str | None = None
    table: int | None = None
    priority: int | None = None
    iif: str | None = None
    oif: str | None = None
    mark: int | None = None
    tos: int | None = None
    ipproto: str | None = None
    sport: int | None = None
    dport: int | None = None

    def to_dict(self) -> dict:
        return _compact(
            (
                ('from', self.from_),
                ('to', self.to),
                ('table', self.table),
                ('priority', self.priority),
                ('iif', self.iif),
                ('oif', self.oif),
                ('mark', self.mark),
                ('type-of-service', self.tos),
                ('ipproto', self.ipproto),
                ('sport', self.sport),
                ('dport', self.dport),
            )
        )


@dataclasses.dataclass(slots=True)
class InterfaceStanza:
    """One ``ethernets`` or ``vlans`` entry."""

    vlan_id: int | None = None
    link: str | None = None
    addresses: list[str] = dataclasses.field(default_factory=list)
    nameservers: list[str] = dataclasses.field(default_factory=list)
    search: list[str] = dataclasses.field(default_factory=list)
    dhcp4: bool | None = None
    dhcp6: bool | None = None
    accept_ra: bool | None = None
    optional: bool | None = None
    routes: list[Route] = dataclasses.field(default_factory=list)
    routing_policy: list[RoutingPolicy] = dataclasses.field(default_factory=list)
    dhcp4_overrides: dict = dataclasses.field(default_factory=dict)
    dhcp6_overrides: dict = dataclasses.field(default_factory=dict)

    def add_address(self, address: str) -> None:
        if address not in self.addresses:
            self.addresses.append(address)

    def add_route(self, route: Route) -> None:
        if route not in self.routes:
            self.routes.append(route)

    def remove_blackhole(self, table: int, to: str) -> None:
        """Drop the blackhole *to* of *table* once a real default replaces it.

        Blackholes are per address family, so an IPv4 gateway leaves the
        IPv6 blackhole in place.
        """
        self.routes = [
            r
            for r in self.routes
            if not (r.is_blackhole and r.table == table and r.to == to)
        ]

    def add_policy(self, rule: RoutingPolicy) -> None:
        if rule not in self.routing_policy:
            self.routing_policy.append(rule)

    def to_dict(self) -> dict:
        d = {}
        if self.vlan_id is not None:
            d['id'] = self.vlan_id
            d['link'] = self.link
        if self.dhcp4 is not None:
            d['dhcp4'] = self.dhcp4
        if self.dhcp6 is not None:
            d['dhcp6'] = self.dhcp6
        if self.accept_ra is not None:
            d['accept-ra'] = self.accept_ra
        if self.optional is not None:
            d['optional'] = self.optional
        if self.addresses:
            d['addresses'] = list(self.addresses)
        if self.nameservers or self.search:
            nameservers = {}
            if self.nameservers:
                nameservers['addresses'] = list(self.nameservers)
            if self.search:
                nameservers['search'] = list(self.search)
            d['nameservers'] = nameservers
        if self.routes:
            d['routes'] = [r.to_dict() for r in self.routes]
        if self.routing_policy:
            d['routing-policy'] = [r.to_dict() for r in self.routing_policy]
        if self.dhcp4_overrides:
            d['dhcp4-overrides'] = dict(self.dhcp4_overrides)
        if self.dhcp6_overrides:
            d['dhcp6-overrides'] = dict(self.dhcp6_overrides)
        return d


@dataclasses.dataclass(slots=True)
class NetplanDocument:
    ethernets: dict[str, InterfaceStanza] = dataclasses.field(default_factory=dict)
    vlans: dict[str, InterfaceStanza] = dataclasses.field(default_factory=dict)

    def ethernet(self, name: str) -> InterfaceStanza:
        """Return the ethernet stanza *name*, creating it on first use."""
        stanza = self.ethernets.get(name)
        if stanza is None:
            stanza = self.ethernets[name] = InterfaceStanza()
        return stanza

    def vlan(self, name: str, link: str, vlan_id: int) -> InterfaceStanza:
        stanza = self.vlans.get(name)
        if stanza is None:
            stanza = self.vlans[name] = InterfaceStanza(vlan_id=vlan_id, link=link)
        return stanza

    def to_dict(self) -> dict:
        network: dict = {'version': 2}
        if self.ethernets:
            network['ethernets'] = {k: v.to_dict() for k, v in self.ethernets.items()}
        if self.vlans:
            network['vlans'] = {k: v.to_dict() for k, v in self.vlans.items()}
        return {'network': network}

    def render(self) -> str:
        return HEADER + yaml.safe_dump(
            self.to_dict(), default_flow_style=False, sort_keys=False
        )
