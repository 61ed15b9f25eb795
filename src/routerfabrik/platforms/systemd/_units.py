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

"""systemd unit files of the per-network services.

Units are named ``routerfabrik-<suffix>-<network id>.service`` so that
stale units of deleted networks can be found by their prefix.
"""

from __future__ import annotations

import enum
import pathlib
from typing import TYPE_CHECKING

from routerfabrik.core._util import default_dhcp_range, is_ipv4, parse_bare_address

if TYPE_CHECKING:
    from routerfabrik.compiler._plan import BringUp
    from routerfabrik.core.options import ReconcilerOptions

UNIT_PREFIX = 'routerfabrik'
WATCHER_UNIT = f'{UNIT_PREFIX}-dhcp-watcher.service'


class UnitSuffix(enum.StrEnum):
    VLAN = 'vlan'
    CADDY = 'caddy'


def unit_name(suffix: UnitSuffix | str, network_id: str) -> str:
    return f'{UNIT_PREFIX}-{suffix}-{network_id}.service'


def unit_path(unit_dir: str, suffix: UnitSuffix | str, network_id: str) -> str:
    return str(pathlib.PurePosixPath(unit_dir) / unit_name(suffix, network_id))


def network_id_of(suffix: UnitSuffix | str, filename: str) -> str | None:
    """Return the network id encoded in a unit file name, or None."""
    prefix = f'{UNIT_PREFIX}-{suffix}-'
    if not filename.startswith(prefix) or not filename.endswith('.service'):
        return None
    return filename[len(prefix) : -len('.service')] or None


def dnsmasq_args(bring_up: BringUp) -> list[str]:
    """Return the dnsmasq arguments serving DHCP on one network.

    Raises ValueError when no range is configured and none can be
    derived from an IPv4 address of the network.
    """
    network = bring_up.network
    dhcp = network.dhcp_server
    router = next(
        (parse_bare_address(a) for a in network.static_addresses if is_ipv4(a)), None
    )

    ranges = [r.strip() for r in dhcp.ranges if r.strip()]
    if not ranges:
        default = next(
            (
                default_dhcp_range(a)
                for a in network.static_addresses
                if is_ipv4(a) and default_dhcp_range(a)
            ),
            None,
        )
        if default is None:
            raise ValueError('no DHCP range configured and no IPv4 network to derive one')
        ranges = [','.join(default)]

    args = ['-d', '-R', '-i', bring_up.interface_name, '-z']
    args.extend(f'--dhcp-range={r},{dhcp.lease_time}' for r in ranges)
    if router is not None:
        args.append(f'--dhcp-option=6,{router}')
    for server in network.dns.servers:
        args.extend(['-S', server])
    for reservation in network.reservations:
        if not reservation.mac or not reservation.ip:
            continue
        host = ','.join(
            v for v in (reservation.mac, reservation.ip, reservation.hostname) if v
        )
        args.append(f'--dhcp-host={host}')
    return args


def render_dnsmasq_unit(bring_up: BringUp, options: ReconcilerOptions) -> str:
    from routerfabrik.driver._jinja2_template import Jinja2Template

    template = Jinja2Template('systemd', 'dnsmasq.service.j2')
    return template.render(
        {
            'description': f'DHCP for {bring_up.network.label} on {bring_up.interface_name}',
            'command': [options.tools.dnsmasq, *dnsmasq_args(bring_up)],
        }
    )


def render_caddy_unit(
    bring_up: BringUp, caddyfile: str, options: ReconcilerOptions
) -> str:
    from routerfabrik.driver._jinja2_template import Jinja2Template

    template = Jinja2Template('systemd', 'caddy.service.j2')
    return template.render(
        {
            'description': f'Reverse proxy for {bring_up.network.label}',
            'command': [
                options.tools.caddy,
                'run',
                '--config',
                caddyfile,
                '--adapter',
                'caddyfile',
            ],
        }
    )


def render_watcher_unit(options: ReconcilerOptions) -> str:
    from routerfabrik.driver._jinja2_template import Jinja2Template

    template = Jinja2Template('systemd', 'dhcp-watcher.service.j2')
    return template.render({'command': ['/bin/bash', options.watcher_script]})
