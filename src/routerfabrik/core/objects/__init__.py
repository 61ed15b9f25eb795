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

from ._base import Base, enable_sqlite_fks
from ._networks import (
    DEFAULT_DNS_SERVERS,
    AddressReservation,
    Network,
    PortForward,
)
from ._settings import (
    DhcpServerConfig,
    DnsConfig,
    GatewayConfig,
    GatewayDisabled,
    GatewayManual,
    GatewayViaNetwork,
    NetworkSettings,
    PortForwardSettings,
    ReservationSettings,
    get_interface_name,
)
from ._types import AddressMode, ForwardProtocol, GatewayMode, NetworkType

__all__ = [
    'DEFAULT_DNS_SERVERS',
    'AddressMode',
    'AddressReservation',
    'Base',
    'DhcpServerConfig',
    'DnsConfig',
    'ForwardProtocol',
    'GatewayConfig',
    'GatewayDisabled',
    'GatewayManual',
    'GatewayMode',
    'GatewayViaNetwork',
    'Network',
    'NetworkSettings',
    'NetworkType',
    'PortForward',
    'PortForwardSettings',
    'ReservationSettings',
    'enable_sqlite_fks',
    'get_interface_name',
]
