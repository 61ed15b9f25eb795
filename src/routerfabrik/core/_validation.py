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

"""Validation run before a network change is committed.

The compiler tolerates incomplete networks (it warns and skips them),
but conflicting ones are rejected here, at mutation time.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable

from ._util import AddressFamily, classify, is_valid_cidr

logger = logging.getLogger(__name__)

MIN_VLAN_ID = 1
MAX_VLAN_ID = 4095

# IFNAMSIZ minus the terminating NUL
MAX_INTERFACE_NAME_LENGTH = 15
_INTERFACE_NAME = re.compile(r'[A-Za-z0-9_.:-]+')


class NetworkConflictError(ValueError):
    """Another network already uses the same parent interface and VLAN id."""


def validate_vlan_id(vlan_id) -> int:
    """Return *vlan_id* as int, raising ValueError outside 1..4095."""
    if isinstance(vlan_id, bool):
        raise ValueError('Invalid VLAN ID')
    try:
        value = int(vlan_id)
    except (TypeError, ValueError):
        raise ValueError('Invalid VLAN ID') from None
    if not MIN_VLAN_ID <= value <= MAX_VLAN_ID:
        raise ValueError('Invalid VLAN ID')
    return value


def is_valid_interface_name(name: str | None) -> bool:
    """Check a name against the rules the kernel applies to interface names.

    The names end up in shell scripts and nftables rules, so only
    characters that need no quoting are accepted.
    """
    if not name or len(name) > MAX_INTERFACE_NAME_LENGTH or name in ('.', '..'):
        return False
    return _INTERFACE_NAME.fullmatch(name) is not None


def validate_interface_name(name) -> str | None:
    """Return *name*, or None if empty. Raises ValueError for invalid names."""
    if not name:
        return None
    name = str(name)
    if not is_valid_interface_name(name):
        raise ValueError(f'Invalid interface name: {name!r}')
    return name


def validate_network_unused(
    existing: Iterable,
    parent_interface: str | None,
    vlan_id: int | None,
    network_id: str | None = None,
) -> None:
    """Raise NetworkConflictError if (parent, vlan) is taken by another network.

    *existing* is any iterable of objects with ``id``, ``parent_interface``
    and ``vlan_id`` attributes, persisted models and settings alike.
    Re-saving the network *network_id* itself is not a conflict.
    """
    if not parent_interface or vlan_id is None:
        return
    for other in existing:
        if network_id is not None and other.id == network_id:
            continue
        if other.parent_interface == parent_interface and other.vlan_id == vlan_id:
            logger.debug(
                'VLAN %s on %s is taken by network %s', vlan_id, parent_interface, other.id
            )
            raise NetworkConflictError(
                f'VLAN ID {vlan_id} already in use on {parent_interface}.'
            )


def validate_addresses(addresses: Iterable[str]) -> list[str]:
    """Return the addresses, raising ValueError for any malformed CIDR."""
    result = []
    for address in addresses:
        address = str(address).strip()
        if not is_valid_cidr(address):
            raise ValueError(f'Invalid address: {address!r} (expected address/prefix)')
        result.append(address)
    return result


def validate_gateway_address(address: str | None, family: AddressFamily) -> str | None:
    """Return a bare gateway address of the expected family, or None if empty."""
    if not address:
        return None
    address = str(address).strip()
    if '/' in address or classify(address) != family:
        raise ValueError(f'Invalid IPv{family.value} gateway: {address!r}')
    return address
