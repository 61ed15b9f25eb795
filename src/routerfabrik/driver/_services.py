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

"""Per-network helper services: the DHCP server and the reverse proxy.

Every network that runs a DHCP server gets its own dnsmasq unit and
every Internet network with http(s) forwards its own Caddy unit. Units
of networks that no longer need them, or no longer exist, are stopped,
disabled and removed.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from routerfabrik.core.objects import NetworkType
from routerfabrik.driver._apply import ApplyReport, write_atomic
from routerfabrik.driver._runner import CommandRunner
from routerfabrik.platforms.caddy import caddyfile_path, render_caddyfile
from routerfabrik.platforms.systemd import (
    UNIT_PREFIX,
    UnitSuffix,
    network_id_of,
    render_caddy_unit,
    render_dnsmasq_unit,
    unit_name,
    unit_path,
)

if TYPE_CHECKING:
    from routerfabrik.compiler import BringUp, CompiledPlan
    from routerfabrik.core.options import ReconcilerOptions

logger = logging.getLogger(__name__)


class ServiceManager:
    def __init__(self, options: ReconcilerOptions, runner: CommandRunner) -> None:
        self.options = options
        self.runner = runner

    async def _systemctl(self, report: ApplyReport, *args: str) -> bool:
        result = report.record(
            await self.runner.run(self.options.tools.systemctl, *args)
        )
        return result.ok

    async def sync(self, plan: CompiledPlan, report: ApplyReport | None = None) -> ApplyReport:
        """Bring the helper services in line with *plan*."""
        report = report or ApplyReport()
        for bring_up in plan.bring_up:
            try:
                await self.sync_network(bring_up, report)
            except (OSError, ValueError) as e:
                report.warning(f'Network {bring_up.network.label}: {e}')
        keep = {b.network.id for b in plan.bring_up}
        await self.remove_stale(keep, report)
        return report

    async def sync_network(self, bring_up: BringUp, report: ApplyReport) -> None:
        network = bring_up.network
        if network.dhcp_server.enabled and network.network_type != NetworkType.BRIDGE:
            await self._install(
                report,
                UnitSuffix.VLAN,
                network.id,
                render_dnsmasq_unit(bring_up, self.options),
            )
        else:
            await self.remove_unit(report, UnitSuffix.VLAN, network.id)

        if bring_up.proxy_ports is not None:
            caddyfile = caddyfile_path(self.options, network.id)
            write_atomic(
                self.options.target(caddyfile),
                render_caddyfile(bring_up, self.options),
                0o600,
            )
            report.written.append(str(self.options.target(caddyfile)))
            await self._install(
                report,
                UnitSuffix.CADDY,
                network.id,
                render_caddy_unit(bring_up, caddyfile, self.options),
            )
        else:
            await self.remove_unit(report, UnitSuffix.CADDY, network.id)

    async def _install(
        self, report: ApplyReport, suffix: UnitSuffix, network_id: str, text: str
    ) -> None:
        target = self.options.target(unit_path(self.options.unit_dir, suffix, network_id))
        write_atomic(target, text)
        report.written.append(str(target))
        name = unit_name(suffix, network_id)
        logger.info('Starting %s', name)
        await self._systemctl(report, 'daemon-reload')
        await self._systemctl(report, 'enable', name)
        await self._systemctl(report, 'restart', name)

    async def remove_unit(
        self, report: ApplyReport, suffix: UnitSuffix, network_id: str
    ) -> bool:
        """Stop, disable and delete one unit. Returns False if none was installed."""
        target = self.options.target(unit_path(self.options.unit_dir, suffix, network_id))
        if not target.exists():
            return False
        name = unit_name(suffix, network_id)
        logger.info('Removing %s', name)
        await self._systemctl(report, 'stop', name)
        await self._systemctl(report, 'disable', name)
        try:
            target.unlink()
        except OSError as e:
            report.warning(f'Cannot remove {target}: {e}')
        if suffix == UnitSuffix.CADDY:
            self.options.target(caddyfile_path(self.options, network_id)).unlink(
                missing_ok=True
            )
        await self._systemctl(report, 'daemon-reload')
        return True

    def installed(self, suffix: UnitSuffix) -> list[str]:
        """Return the network ids that have a unit of *suffix* installed."""
        unit_dir = self.options.target(self.options.unit_dir)
        if not unit_dir.is_dir():
            return []
        ids = []
        for path in sorted(unit_dir.glob(f'{UNIT_PREFIX}-{suffix}-*.service')):
            network_id = network_id_of(suffix, path.name)
            if network_id is not None:
                ids.append(network_id)
        return ids

    async def remove_stale(self, keep: set[str], report: ApplyReport) -> None:
        for suffix in UnitSuffix:
            for network_id in self.installed(suffix):
                if network_id in keep:
                    continue
                try:
                    await self.remove_unit(report, suffix, network_id)
                except OSError as e:
                    report.warning(f'Cannot remove stale unit of {network_id}: {e}')
