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

"""CompilerDriver: one full reconcile pass.

Takes a snapshot of the object database, compiles it with a fresh
PlanCompiler, applies the artifacts and brings the per-network services
in line. Compiler warnings and apply failures end up in one result.
"""

from __future__ import annotations

import dataclasses
import logging
from typing import TYPE_CHECKING

from routerfabrik.compiler import CompiledPlan, CompilerStatus, PlanCompiler
from routerfabrik.core import NetworkRepository
from routerfabrik.driver._apply import ApplyReport, ApplyStep
from routerfabrik.driver._runner import CommandRunner
from routerfabrik.driver._services import ServiceManager

if TYPE_CHECKING:
    from routerfabrik.core._database import DatabaseManager
    from routerfabrik.core.objects import NetworkSettings
    from routerfabrik.core.options import ReconcilerOptions

logger = logging.getLogger(__name__)


@dataclasses.dataclass(slots=True)
class ReconcileResult:
    plan: CompiledPlan
    report: ApplyReport

    @property
    def warnings(self) -> list[str]:
        return [*self.plan.warnings, *self.report.warnings]

    @property
    def status(self) -> CompilerStatus:
        if self.plan.status == CompilerStatus.ERROR:
            return CompilerStatus.ERROR
        if self.warnings:
            return CompilerStatus.WARNING
        return CompilerStatus.SUCCESS


class CompilerDriver:
    """Orchestrates compile, apply and bring-up of one pass."""

    def __init__(
        self,
        db: DatabaseManager,
        options: ReconcilerOptions | None = None,
        runner: CommandRunner | None = None,
    ) -> None:
        self.db = db
        self.options: ReconcilerOptions = options or db.options
        self.runner = runner or CommandRunner(
            timeout=self.options.command_timeout,
            dry_run=self.options.dry_run,
        )
        self.repository = NetworkRepository(db)
        self.apply_step = ApplyStep(self.options, self.runner)
        self.services = ServiceManager(self.options, self.runner)

    def compile(self, networks: list[NetworkSettings] | None = None) -> CompiledPlan:
        if networks is None:
            networks = self.repository.snapshot()
        return PlanCompiler(self.options).compile(networks)

    async def run(self) -> ReconcileResult:
        plan = self.compile()
        report = ApplyReport()
        await self.apply_step.apply(plan, report)
        await self.services.sync(plan, report)
        result = ReconcileResult(plan, report)
        logger.info(
            'Reconcile pass finished with %d warnings, %d networks up',
            len(result.warnings),
            len(plan.bring_up),
        )
        return result
