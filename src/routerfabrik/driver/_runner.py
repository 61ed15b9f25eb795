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

"""Runs the external commands of a reconcile pass.

Commands run without a shell, one at a time, each bounded by a timeout.
A failing command never raises: the outcome is returned as a
CommandResult and logged with the captured output.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
import shlex

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0


@dataclasses.dataclass(frozen=True, slots=True)
class CommandResult:
    argv: tuple[str, ...]
    returncode: int
    stdout: str = ''
    stderr: str = ''
    timed_out: bool = False

    @property
    def ok(self) -> bool:
        return self.returncode == 0 and not self.timed_out

    @property
    def command(self) -> str:
        return shlex.join(self.argv)

    def describe(self) -> str:
        """One line summary used in warnings."""
        if self.timed_out:
            return f'{self.command}: timed out'
        if self.ok:
            return f'{self.command}: ok'
        detail = self.stderr.strip() or self.stdout.strip() or f'exit code {self.returncode}'
        return f'{self.command}: {detail}'


class CommandRunner:
    """Run commands with ``asyncio.create_subprocess_exec``.

    With *dry_run* set, commands are only logged and reported as
    successful.
    """

    def __init__(self, timeout: float = DEFAULT_TIMEOUT, dry_run: bool = False) -> None:
        self.timeout = timeout
        self.dry_run = dry_run

    async def run(self, *argv: str) -> CommandResult:
        argv = tuple(str(a) for a in argv)
        if self.dry_run:
            logger.info('Dry run, not running: %s', shlex.join(argv))
            return CommandResult(argv, 0)

        logger.debug('Running: %s', shlex.join(argv))
        try:
            process = await asyncio.create_subprocess_exec(
                *argv,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            logger.error('Cannot run %s: %s', shlex.join(argv), e)
            return CommandResult(argv, -1, stderr=str(e))

        try:
            stdout, stderr = await asyncio.wait_for(
                process.communicate(), timeout=self.timeout
            )
        except TimeoutError:
            process.kill()
            await process.wait()
            logger.warning(
                'Command timed out after %ss: %s', self.timeout, shlex.join(argv)
            )
            return CommandResult(argv, -1, timed_out=True)

        result = CommandResult(
            argv,
            process.returncode,
            stdout.decode(errors='replace'),
            stderr.decode(errors='replace'),
        )
        if not result.ok:
            logger.error('Command failed: %s', result.describe())
        return result
