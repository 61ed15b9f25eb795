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

"""Helpers shared by the compiler, the readers and the validators.

The address functions here are total: malformed user input degrades to
``AddressFamily.INVALID`` or ``None`` instead of raising, so callers can
turn it into a warning.
"""

import dataclasses
import enum
import ipaddress
import secrets
from collections.abc import Container


class AddressFamily(enum.Enum):
    """Address family of a bare address or CIDR string."""

    INVALID = 0
    IPV4 = 4
    IPV6 = 6


def parse_bare_address(cidr: str) -> str:
    """Return the address part of ``address/prefix``.

    Strings without a ``/`` are returned unchanged, so bare addresses
    pass through.
    """
    return cidr.split('/', 1)[0]


def classify(address: str | None) -> AddressFamily:
    """Classify a bare address or a CIDR string."""
    if not address:
        return AddressFamily.INVALID
    try:
        parsed = ipaddress.ip_address(parse_bare_address(address.strip()))
    except ValueError:
        return AddressFamily.INVALID
    if parsed.version == 4:
        return AddressFamily.IPV4
    return AddressFamily.IPV6


def is_ipv4(address: str | None) -> bool:
    return classify(address) == AddressFamily.IPV4


def is_ipv6(address: str | None) -> bool:
    return classify(address) == AddressFamily.IPV6


def network_of(cidr: str) -> str | None:
    """Return the network a CIDR address belongs to, e.g. ``192.168.10.0/24``.

    A bare address yields its host network (``/32`` or ``/128``).
    Returns None for malformed input.
    """
    try:
        return str(ipaddress.ip_interface(cidr.strip()).network)
    except ValueError:
        return None


def is_valid_cidr(cidr: str | None) -> bool:
    if not cidr or '/' not in cidr:
        return False
    return network_of(cidr) is not None


def default_dhcp_range(cidr: str) -> tuple[str, str] | None:
    """Return a (first, last) host range inside an IPv4 network.

    Mirrors the historical ``.10`` - ``.200`` default, clipped to the
    size of the network. Returns None for IPv6 or networks too small to
    hold a range.
    """
    try:
        network = ipaddress.ip_interface(cidr.strip()).network
    except ValueError:
        return None
    if network.version != 4 or network.num_addresses < 4:
        return None
    last_host = network.num_addresses - 2
    first = min(10, last_host)
    last = min(200, last_host)
    return str(network.network_address + first), str(network.network_address + last)


NETWORK_ID_PREFIX = 'sv'
PORT_FORWARD_ID_PREFIX = 'pf'
RESERVATION_ID_PREFIX = 'ar'


def generate_id(prefix: str, taken: Container[str] = ()) -> str:
    """Return a short opaque id such as ``sv1a2b`` not contained in *taken*."""
    while True:
        candidate = f'{prefix}{secrets.token_hex(2)}'
        if candidate not in taken:
            return candidate


@dataclasses.dataclass
class ParseResult:
    """Holds the parsed options and network objects of one network file."""

    options: dict
    networks: list
