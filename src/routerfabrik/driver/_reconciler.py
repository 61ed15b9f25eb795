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

"""Reconciler: serializes reconcile passes.

Only one pass runs at a time. Requests arriving while a pass is running
are coalesced into exactly one follow-up pass, which compiles the state
as it is when that pass starts. Every request made during the running
pass resolves to the follow-up's result.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from routerfabrik.driver._compiler_driver import CompilerDriver, ReconcileResult

logger = logging.getLogger(__name__)


class Reconciler:
    def __init__(self, driver: CompilerDriver) -> None:
        self.driver = driver
        self.passes = 0
        self._pending: asyncio.Future | None = None
        self._worker: asyncio.Task | None = None

    @property
    def busy(self) -> bool:
        return self._worker is not None and not self._worker.done()

    async def request_apply(self) -> ReconcileResult:
        """Request a pass and wait for the pass that covers this request."""
        if self._pending is None:
            self._pending = asyncio.get_running_loop().create_future()
            if self.busy:
                logger.debug('Pass running, scheduling a follow-up pass')
        future = self._pending
        if not self.busy:
            self._worker = asyncio.create_task(self._drain())
        # one waiter being cancelled must not cancel the shared pass
        return await asyncio.shield(future)

    async def _drain(self) -> None:
        while self._pending is not None:
            future, self._pending = self._pending, None
            self.passes += 1
            logger.debug('Starting reconcile pass %d', self.passes)
            try:
                result = await self.driver.run()
            except asyncio.CancelledError:
                future.cancel()
                raise
            except Exception as e:
                logger.exception('Reconcile pass %d failed', self.passes)
                future.set_exception(e)
            else:
                future.set_result(result)
