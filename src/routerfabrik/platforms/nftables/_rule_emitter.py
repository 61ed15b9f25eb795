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

"""RuleEmitter: NAT and forwarding rules for the nftables backend.

Rules are collected as structured records and rendered at the end of a
pass. The collection is ordered and duplicate free, so emitting the
masquerade for a WAN shared by several LANs yields a single rule.

All rules live in dedicated base chains that are declared and flushed
at the top of the generated file. Loading the file with ``nft -f``
therefore replaces the previous state of these chains atomically and
leaves every other table and chain on the host alone.
"""

from __future__ import annotations

import dataclasses
import enum
import io
from collections.abc import Iterable

from routerfabrik.core._util import AddressFamily, classify, parse_bare_address
from routerfabrik.core.objects import ForwardProtocol

HEADER = '#!/usr/sbin/nft -f\n# Generated by routerfabrik. Local changes are overwritten.\n'


class Family(enum.StrEnum):
    IP = 'ip'
    IP6 = 'ip6'

    @classmethod
    def of(cls, address: str) -> Family | None:
        """Return the family of a bare or CIDR address, None if malformed."""
        match classify(address):
            case AddressFamily.IPV4:
                return cls.IP
            case AddressFamily.IPV6:
                return cls.IP6
        return None

    @property
    def daddr(self) -> str:
        return 'ip daddr' if self is Family.IP else 'ip6 daddr'


class Table(enum.StrEnum):
    NAT = 'nat'
    FILTER = 'filter'


class Chain(enum.StrEnum):
    PREROUTING = 'prerouting_routerfabrik'
    POSTROUTING = 'postrouting_routerfabrik'
    FORWARD = 'forward_routerfabrik'


# (table, chain, base chain declaration)
_CHAINS = (
    (Table.NAT, Chain.PREROUTING, 'type nat hook prerouting priority dstnat;'),
    (Table.NAT, Chain.POSTROUTING, 'type nat hook postrouting priority srcnat;'),
    (Table.FILTER, Chain.FORWARD, 'type filter hook forward priority filter; policy accept;'),
)


@dataclasses.dataclass(frozen=True, slots=True)
class NftRule:
    family: Family
    table: Table
    chain: Chain
    statement: str


def _quote(interface: str) -> str:
    return f'"{interface}"'


def _l4_match(protocol: ForwardProtocol | str) -> str:
    """Return the layer 4 prefix that precedes ``dport``."""
    match protocol:
        case ForwardProtocol.TCP:
            return 'tcp'
        case ForwardProtocol.UDP:
            return 'udp'
        case ForwardProtocol.TCP_UDP:
            return 'meta l4proto { tcp, udp } th'
        case ForwardProtocol.HTTPS:
            raise ValueError(
                'http(s) forwards are served by the reverse proxy, not by DNAT'
            )
    raise ValueError(f'Unsupported port forward protocol: {protocol!r}')


def _dnat_target(family: Family, dst_ip: str, dst_port: str) -> str:
    if family is Family.IP6:
        return f'[{dst_ip}]:{dst_port}'
    return f'{dst_ip}:{dst_port}'


class RuleEmitter:
    """Collects the nftables rules of one compiler pass."""

    def __init__(self) -> None:
        self._rules: dict[NftRule, None] = {}
        self._flushed = False

    @property
    def rules(self) -> list[NftRule]:
        return list(self._rules)

    def flush(self) -> None:
        """Start a pass: forget collected rules and flush the dedicated chains."""
        self._rules.clear()
        self._flushed = True

    def _add(self, family: Family, table: Table, chain: Chain, statement: str) -> None:
        self._rules.setdefault(NftRule(Family(family), table, chain, statement), None)

    def add_masquerade(self, family: Family, wan: str) -> None:
        self._add(family, Table.NAT, Chain.POSTROUTING, f'oif {_quote(wan)} masquerade')

    def add_wan_gateway(self, family: Family, wan: str, lan: str) -> None:
        """Masquerade *lan* behind *wan* and allow replies back in."""
        if Family(family) is Family.IP6 and wan == lan:
            return
        self.add_masquerade(family, wan)
        self._add(
            family,
            Table.FILTER,
            Chain.FORWARD,
            f'iif {_quote(lan)} oif {_quote(wan)} accept',
        )
        self._add(
            family,
            Table.FILTER,
            Chain.FORWARD,
            f'iif {_quote(wan)} oif {_quote(lan)} ct state established,related accept',
        )

    def add_port_forward(
        self,
        family: Family,
        wan: str,
        wan_addresses: Iterable[str],
        lan_interfaces: Iterable[str],
        protocol: ForwardProtocol | str,
        src_port: str,
        dst_ip: str,
        dst_port: str,
    ) -> None:
        """Forward *src_port* on *wan* to ``dst_ip:dst_port``.

        Each LAN interface additionally gets a hairpin variant keyed on
        ``fib daddr type local``, so LAN clients can use the public
        mapping too.

        Raises ValueError for ``http(s)``, unknown protocols and
        incomplete or mismatching addresses.
        """
        family = Family(family)
        l4 = _l4_match(protocol)
        if not src_port or not dst_port:
            raise ValueError('Port forward needs a source and a destination port')
        if Family.of(dst_ip) is not family or '/' in dst_ip:
            raise ValueError(f'Invalid {family} destination address: {dst_ip!r}')

        daddr = f'{family.daddr} {dst_ip}'
        target = _dnat_target(family, dst_ip, dst_port)
        own = sorted(
            {
                parse_bare_address(a)
                for a in wan_addresses
                if Family.of(a) is family
            }
        )

        self._add(
            family,
            Table.FILTER,
            Chain.FORWARD,
            f'iif {_quote(wan)} {daddr} {l4} dport {dst_port} accept',
        )
        if own:
            match_own = own[0] if len(own) == 1 else '{ ' + ', '.join(own) + ' }'
            dnat_match = f'iif {_quote(wan)} {family.daddr} {match_own}'
        else:
            dnat_match = f'iif {_quote(wan)}'
        self._add(
            family,
            Table.NAT,
            Chain.PREROUTING,
            f'{dnat_match} {l4} dport {src_port} dnat to {target}',
        )

        for lan in lan_interfaces:
            self._add(
                family,
                Table.FILTER,
                Chain.FORWARD,
                f'iif {_quote(lan)} {daddr} {l4} dport {dst_port} accept',
            )
            self._add(
                family,
                Table.NAT,
                Chain.PREROUTING,
                f'iif {_quote(lan)} fib daddr type local {l4} dport {src_port} '
                f'dnat to {target}',
            )
            self._add(
                family,
                Table.NAT,
                Chain.POSTROUTING,
                f'iif {_quote(lan)} {daddr} {l4} dport {dst_port} ct status dnat masquerade',
            )

    def render(self) -> str:
        """Render the collected rules as an ``nft -f`` script."""
        out = io.StringIO()
        out.write(HEADER)
        out.write('\n')

        if self._flushed:
            for family in Family:
                for table, chain, declaration in _CHAINS:
                    out.write(f'add table {family} {table}\n')
                    out.write(
                        f'add chain {family} {table} {chain} {{ {declaration} }}\n'
                    )
            for family in Family:
                for table, chain, _ in _CHAINS:
                    out.write(f'flush chain {family} {table} {chain}\n')

        # Group by (family, table) and then chain, in first-seen order.
        grouped: dict[tuple[Family, Table], dict[Chain, list[str]]] = {}
        for rule in self._rules:
            chains = grouped.setdefault((rule.family, rule.table), {})
            chains.setdefault(rule.chain, []).append(rule.statement)

        for (family, table), chains in grouped.items():
            out.write('\n')
            out.write(f'table {family} {table} {{\n')
            for index, (chain, statements) in enumerate(chains.items()):
                if index:
                    out.write('\n')
                out.write(f'    chain {chain} {{\n')
                for statement in statements:
                    out.write(f'        {statement}\n')
                out.write('    }\n')
            out.write('}\n')

        return out.getvalue()
