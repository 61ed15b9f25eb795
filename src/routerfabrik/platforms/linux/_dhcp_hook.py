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

"""DHCP hook generator.

Networks routed through a DHCP-addressed network cannot get their
default route at compile time: the next hop is only known once the
lease arrives. The compiler pre-allocates the table and the source
address and leaves the rest to a small script rendered here.

Two variants render the same routes:

``event``
    A networkd-dispatcher hook in ``routable.d``, run whenever a WAN
    interface becomes routable. This is the default.
``polling``
    A watcher daemon that checks the lease files every few seconds.
    It runs as its own systemd unit.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import TYPE_CHECKING

from routerfabrik.core.options import HookMode

if TYPE_CHECKING:
    from routerfabrik.compiler._plan import HookTarget
    from routerfabrik.core.options import ReconcilerOptions

_TEMPLATES = {
    HookMode.EVENT: 'dhcp_hook_event.sh.j2',
    HookMode.POLLING: 'dhcp_hook_polling.sh.j2',
}

POLL_INTERVAL = 5


def group_targets(targets: Iterable[HookTarget]) -> dict[str, list[HookTarget]]:
    """Group hook targets by WAN interface, keeping first-seen order."""
    groups: dict[str, list[HookTarget]] = {}
    for target in targets:
        entries = groups.setdefault(target.wan_interface, [])
        if target not in entries:
            entries.append(target)
    return groups


def render_dhcp_hook(
    targets: Iterable[HookTarget],
    options: ReconcilerOptions,
    mode: HookMode | str | None = None,
) -> str:
    """Render the hook script for *targets* in the configured mode."""
    from routerfabrik.driver._jinja2_template import Jinja2Template

    mode = HookMode(mode or options.hook_mode)
    template = Jinja2Template('linux', _TEMPLATES[mode])
    return template.render(
        {
            'groups': group_targets(targets),
            'lease_dir': options.lease_dir,
            'ip': options.tools.ip,
            'poll_interval': POLL_INTERVAL,
        }
    )
