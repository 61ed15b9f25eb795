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

"""External apply step: writes the artifacts of a plan and activates them.

Order matters: the interfaces and routing tables come first, then the
DHCP hook that fills the tables, then the firewall rules. Each artifact
fully replaces its previous version. A failing step is logged and
reported, and the following steps still run. Nothing is rolled back.
"""

from __future__ import annotations

import dataclasses
import logging
import os
import pathlib
from typing import TYPE_CHECKING

from routerfabrik.core.options import HookMode, ReconcilerOptions
from routerfabrik.driver._runner import CommandResult, CommandRunner
from routerfabrik.platforms.systemd import WATCHER_UNIT, render_watcher_unit

if TYPE_CHECKING:
    from routerfabrik.compiler import CompiledPlan

logger = logging.getLogger(__name__)

NETWORKD_DISPATCHER = 'networkd-dispatcher.service'


def write_atomic(path: pathlib.Path, text: str, mode: int = 0o644) -> None:
    """Write *text* to *path* atomically with the given permissions."""
    path = pathlib.Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_name(path.name + '.tmp')
    fd = os.open(tmp_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, mode)
    with os.fdopen(fd, 'w', encoding='utf-8') as f:
        f.write(text)
        f.flush()
        os.fsync(f.fileno())
    # umask may have narrowed the mode passed to open()
    os.chmod(tmp_path, mode)
    tmp_path.replace(path)


@dataclasses.dataclass
class ApplyReport:
    results: list[CommandResult] = dataclasses.field(default_factory=list)
    written: list[str] = dataclasses.field(default_factory=list)
    warnings: list[str] = dataclasses.field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.warnings and all(r.ok for r in self.results)

    def warning(self, msg: str) -> None:
        logger.warning('%s', msg)
        self.warnings.append(msg)

    def record(self, result: CommandResult) -> CommandResult:
        self.results.append(result)
        if not result.ok:
            self.warnings.append(result.describe())
        return result


class ApplyStep:
    def __init__(self, options: ReconcilerOptions, runner: CommandRunner) -> None:
        self.options = options
        self.runner = runner

    def _write(
        self, report: ApplyReport, path: str, text: str, mode: int = 0o644
    ) -> pathlib.Path | None:
        target = self.options.target(path)
        try:
            write_atomic(target, text, mode)
        except OSError as e:
            report.warning(f'Cannot write {target}: {e}')
            return None
        logger.debug('Wrote %s', target)
        report.written.append(str(target))
        return target

    def _remove(self, report: ApplyReport, path: str) -> bool:
        """Remove a generated file, returning True if it existed."""
        target = self.options.target(path)
        try:
            target.unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            report.warning(f'Cannot remove {target}: {e}')
            return False
        logger.debug('Removed %s', target)
        return True

    def _unchanged(self, path: str, text: str) -> bool:
        try:
            return self.options.target(path).read_text(encoding='utf-8') == text
        except (OSError, UnicodeDecodeError):
            return False

    async def _systemctl(self, report: ApplyReport, *args: str) -> CommandResult:
        return report.record(await self.runner.run(self.options.tools.systemctl, *args))

    async def apply(self, plan: CompiledPlan, report: ApplyReport | None = None) -> ApplyReport:
        report = report or ApplyReport()
        await self.apply_netplan(plan, report)
        await self.apply_hook(plan, report)
        await self.apply_nftables(plan, report)
        return report

    async def apply_netplan(self, plan: CompiledPlan, report: ApplyReport) -> None:
        # netplan refuses world readable configuration files
        if self._write(report, self.options.netplan_file, plan.netplan_text, 0o600):
            report.record(await self.runner.run(self.options.tools.netplan, 'apply'))

    async def apply_hook(self, plan: CompiledPlan, report: ApplyReport) -> None:
        match HookMode(self.options.hook_mode):
            case HookMode.EVENT:
                await self._remove_watcher(report)
                if not plan.hook_targets:
                    self._remove(report, self.options.hook_file)
                    return
                if self._unchanged(self.options.hook_file, plan.hook_text):
                    logger.debug('DHCP hook unchanged, not restarting')
                    return
                if self._write(report, self.options.hook_file, plan.hook_text, 0o755):
                    await self._systemctl(report, 'restart', NETWORKD_DISPATCHER)
            case HookMode.POLLING:
                self._remove(report, self.options.hook_file)
                if not plan.hook_targets:
                    await self._remove_watcher(report)
                    return
                unit_file = f'{self.options.unit_dir}/{WATCHER_UNIT}'
                if self._write(
                    report, self.options.watcher_script, plan.hook_text, 0o755
                ) and self._write(report, unit_file, render_watcher_unit(self.options)):
                    await self._systemctl(report, 'daemon-reload')
                    await self._systemctl(report, 'enable', WATCHER_UNIT)
                    await self._systemctl(report, 'restart', WATCHER_UNIT)

    async def _remove_watcher(self, report: ApplyReport) -> None:
        unit_file = f'{self.options.unit_dir}/{WATCHER_UNIT}'
        if not self.options.target(unit_file).exists():
            return
        await self._systemctl(report, 'stop', WATCHER_UNIT)
        await self._systemctl(report, 'disable', WATCHER_UNIT)
        self._remove(report, unit_file)
        self._remove(report, self.options.watcher_script)
        await self._systemctl(report, 'daemon-reload')

    async def apply_nftables(self, plan: CompiledPlan, report: ApplyReport) -> None:
        target = self._write(report, self.options.nft_file, plan.nft_text, 0o600)
        if target is not None:
            report.record(await self.runner.run(self.options.tools.nft, '-f', str(target)))
