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

from ._document import (
    DEFAULT_IPV4,
    DEFAULT_IPV6,
    HEADER,
    MAIN_TABLE,
    InterfaceStanza,
    NetplanDocument,
    Route,
    RouteScope,
    RouteType,
    RoutingPolicy,
)

__all__ = [
    'DEFAULT_IPV4',
    'DEFAULT_IPV6',
    'HEADER',
    'MAIN_TABLE',
    'InterfaceStanza',
    'NetplanDocument',
    'Route',
    'RouteScope',
    'RouteType',
    'RoutingPolicy',
]
