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

"""Shared pytest fixtures for the compiler, repository and driver tests."""

import asyncio
from pathlib import Path

import pytest

import routerfabrik.core
from routerfabrik.core.objects import (
    AddressMode,
    GatewayViaNetwork,
    NetworkSettings,
    NetworkType,
)
from routerfabrik.core.options import ReconcilerOptions
from routerfabrik.driver import CommandResult

FIXTURES_DIR = Path(__file__).parent / 'fixtures'


def make_network(network_id, **kwargs) -> NetworkSettings:
    """Return a Manual network on eth0, overridden by *kwargs*."""
    kwargs.setdefault('name', network_id)
    kwargs.setdefault('parent_interface', 'eth0')
    return NetworkSettings(id=network_id, **kwargs)


def eth0_scenario() -> list[NetworkSettings]:
    """DHCP-addressed WAN on eth0 plus a static LAN on eth0.10 behind it."""
    wan = make_network(
        'wan',
        vlan_id=1,
        network_type=NetworkType.INTERNET,
        address_mode=AddressMode.AUTO,
        dhcp4=True,
    )
    lan = make_network(
        'lan',
        vlan_id=10,
        addresses=('192.168.10.1/24',),
        gateway=GatewayViaNetwork('wan'),
    )
    return [wan, lan]


class FakeRunner:
    """Records commands instead of running them.

    Commands whose text contains one of *failing* return exit code 1.
    *delay* makes every command yield to the event loop for a while.
    """

    def __init__(self, failing=(), delay=0.0):
        self.commands = []
        self.failing = tuple(failing)
        self.delay = delay

    async def run(self, *argv):
        argv = tuple(str(a) for a in argv)
        self.commands.append(' '.join(argv))
        if self.delay:
            await asyncio.sleep(self.delay)
        if any(f in ' '.join(argv) for f in self.failing):
            return CommandResult(argv, 1, stderr='boom')
        return CommandResult(argv, 0)


@pytest.fixture()
def db():
    return routerfabrik.core.DatabaseManager()


@pytest.fixture()
def repository(db):
    return routerfabrik.core.NetworkRepository(db)


@pytest.fixture()
def options(tmp_path):
    """Options writing below a scratch root."""
    return ReconcilerOptions(root=str(tmp_path))


@pytest.fixture()
def runner():
    return FakeRunner()
