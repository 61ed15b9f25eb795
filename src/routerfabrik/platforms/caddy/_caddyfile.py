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

"""Caddyfile of the reverse proxy serving an Internet network's http(s) forwards.

Public ports 443 and 80 are DNATed to a loopback-only address pair,
where Caddy listens on the per-network ports allocated by the compiler.
"""

from __future__ import annotations

import pathlib
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from routerfabrik.compiler._plan import BringUp
    from routerfabrik.core.options import ReconcilerOptions


def caddyfile_path(options: ReconcilerOptions, network_id: str) -> str:
    return str(pathlib.PurePosixPath(options.caddy_dir) / f'{network_id}.Caddyfile')


def render_caddyfile(bring_up: BringUp, options: ReconcilerOptions) -> str:
    from routerfabrik.driver._jinja2_template import Jinja2Template

    if bring_up.proxy_ports is None:
        raise ValueError(f'Network {bring_up.network.label} has no reverse proxy ports')
    binds = [a for a in (options.fake_loopback_ipv4, options.fake_loopback_ipv6) if a]
    template = Jinja2Template('caddy', 'Caddyfile.j2')
    return template.render(
        {
            'network': bring_up.network,
            'ports': bring_up.proxy_ports,
            'binds': binds,
            'forwards': bring_up.proxy_forwards,
        }
    )
