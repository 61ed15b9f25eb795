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

from ._units import (
    UNIT_PREFIX,
    WATCHER_UNIT,
    UnitSuffix,
    dnsmasq_args,
    network_id_of,
    render_caddy_unit,
    render_dnsmasq_unit,
    render_watcher_unit,
    unit_name,
    unit_path,
)

__all__ = [
    'UNIT_PREFIX',
    'WATCHER_UNIT',
    'UnitSuffix',
    'dnsmasq_args',
    'network_id_of',
    'render_caddy_unit',
    'render_dnsmasq_unit',
    'render_watcher_unit',
    'unit_name',
    'unit_path',
]
