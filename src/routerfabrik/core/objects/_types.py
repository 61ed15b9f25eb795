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

"""Enumerations stored in the object database and the YAML network files."""

import enum


class NetworkType(enum.StrEnum):
    """Role of a logical network."""

    NETWORK = 'Network'
    BRIDGE = 'Bridge'
    INTERNET = 'Internet'


class AddressMode(enum.StrEnum):
    """How a logical network obtains its addresses."""

    AUTO = 'Auto'
    MANUAL = 'Manual'


class GatewayMode(enum.StrEnum):
    """Stored discriminator of the gateway variant."""

    DISABLED = 'Disabled'
    NETWORK = 'Network'
    MANUAL = 'Manual'


class ForwardProtocol(enum.StrEnum):
    """Protocols a port forward can match."""

    TCP = 'tcp'
    UDP = 'udp'
    TCP_UDP = 'tcp + udp'
    HTTPS = 'http(s)'

    @property
    def is_proxied(self) -> bool:
        """True for protocols handled by the reverse proxy instead of DNAT."""
        return self is ForwardProtocol.HTTPS
