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

"""Tests for the apply step, the service manager and the reconciler."""

import asyncio
import types

import pytest

from routerfabrik.compiler import BringUp, CompilerStatus, PlanCompiler, ProxyPorts
from routerfabrik.core.objects import (
    DhcpServerConfig,
    ForwardProtocol,
    NetworkType,
    PortForwardSettings,
)
from routerfabrik.driver import (
    ApplyReport,
    ApplyStep,
    CompilerDriver,
    Reconciler,
    ReconcileResult,
    ServiceManager,
    write_atomic,
)

from .conftest import FakeRunner, eth0_scenario, make_network

_WATCHER_UNIT = 'etc/systemd/system/routerfabrik-dhcp-watcher.service'
_WATCHER_SCRIPT = 'usr/local/lib/routerfabrik/dhcp-watcher.sh'


def _mode(path):
    return path.stat().st_mode & 0o777


def _plan(options, networks):
    return PlanCompiler(options).compile(networks)


def _dhcp_bring_up(network_id='svlan'):
    network = make_network(
        network_id,
        vlan_id=10,
        addresses=('192.168.10.1/24',),
        dhcp_server=DhcpServerConfig(enabled=True),
    )
    return BringUp(network=network, interface_name='eth0.10', table=100)


class TestWriteAtomic:
    def test_creates_parents_and_sets_mode(self, tmp_path):
        path = tmp_path / 'a' / 'b' / 'file'
        write_atomic(path, 'content\n', 0o600)
        assert path.read_text() == 'content\n'
        assert _mode(path) == 0o600
        assert list(path.parent.iterdir()) == [path]

    def test_replaces_existing(self, tmp_path):
        path = tmp_path / 'file'
        path.write_text('old')
        write_atomic(path, 'new')
        assert path.read_text() == 'new'
        assert _mode(path) == 0o644


class TestApplyStep:
    def test_artifacts_and_command_order(self, options, runner, tmp_path):
        plan = _plan(options, eth0_scenario())
        report = asyncio.run(ApplyStep(options, runner).apply(plan))

        netplan = tmp_path / 'etc/netplan/01-routerfabrik.yaml'
        nft = tmp_path / 'etc/routerfabrik/routerfabrik.nft'
        hook = tmp_path / 'etc/networkd-dispatcher/routable.d/50-routerfabrik'
        assert netplan.read_text() == plan.netplan_text
        assert nft.read_text() == plan.nft_text
        assert hook.read_text() == plan.hook_text
        assert _mode(netplan) == 0o600
        assert _mode(hook) == 0o755
        assert runner.commands == [
            'netplan apply',
            'systemctl restart networkd-dispatcher.service',
            f'nft -f {nft}',
        ]
        assert report.ok
        assert report.written == [str(netplan), str(hook), str(nft)]

    def test_failure_does_not_stop_later_steps(self, options, tmp_path):
        runner = FakeRunner(failing=('netplan',))
        plan = _plan(options, eth0_scenario())
        report = asyncio.run(ApplyStep(options, runner).apply(plan))
        assert len(runner.commands) == 3
        assert report.warnings == ['netplan apply: boom']
        assert not report.ok

    def test_unwritable_root(self, options, runner, tmp_path):
        (tmp_path / 'etc').write_text('not a directory')
        plan = _plan(options, eth0_scenario())
        report = asyncio.run(ApplyStep(options, runner).apply(plan))
        assert runner.commands == []
        assert len(report.warnings) == 3
        assert all(w.startswith('Cannot write') for w in report.warnings)

    def test_polling_installs_watcher(self, options, runner, tmp_path):
        options.hook_mode = 'polling'
        hook = tmp_path / 'etc/networkd-dispatcher/routable.d/50-routerfabrik'
        hook.parent.mkdir(parents=True)
        hook.write_text('stale')

        plan = _plan(options, eth0_scenario())
        asyncio.run(ApplyStep(options, runner).apply_hook(plan, ApplyReport()))

        assert not hook.exists()
        assert (tmp_path / _WATCHER_SCRIPT).read_text() == plan.hook_text
        assert 'ExecStart=/bin/bash' in (tmp_path / _WATCHER_UNIT).read_text()
        assert runner.commands == [
            'systemctl daemon-reload',
            'systemctl enable routerfabrik-dhcp-watcher.service',
            'systemctl restart routerfabrik-dhcp-watcher.service',
        ]

    def test_polling_without_targets_removes_watcher(self, options, runner, tmp_path):
        options.hook_mode = 'polling'
        for path in (_WATCHER_UNIT, _WATCHER_SCRIPT):
            (tmp_path / path).parent.mkdir(parents=True, exist_ok=True)
            (tmp_path / path).write_text('old')

        plan = _plan(options, eth0_scenario()[:1])
        assert plan.hook_targets == []
        asyncio.run(ApplyStep(options, runner).apply_hook(plan, ApplyReport()))

        assert not (tmp_path / _WATCHER_UNIT).exists()
        assert not (tmp_path / _WATCHER_SCRIPT).exists()
        assert runner.commands == [
            'systemctl stop routerfabrik-dhcp-watcher.service',
            'systemctl disable routerfabrik-dhcp-watcher.service',
            'systemctl daemon-reload',
        ]

    def test_event_mode_replaces_watcher(self, options, runner, tmp_path):
        (tmp_path / _WATCHER_UNIT).parent.mkdir(parents=True)
        (tmp_path / _WATCHER_UNIT).write_text('old')

        plan = _plan(options, eth0_scenario())
        asyncio.run(ApplyStep(options, runner).apply_hook(plan, ApplyReport()))

        assert not (tmp_path / _WATCHER_UNIT).exists()
        assert runner.commands[0] == 'systemctl stop routerfabrik-dhcp-watcher.service'
        assert runner.commands[-1] == 'systemctl restart networkd-dispatcher.service'

    def test_event_mode_unchanged_hook_is_not_restarted(self, options, runner, tmp_path):
        plan = _plan(options, eth0_scenario())
        step = ApplyStep(options, runner)
        asyncio.run(step.apply_hook(plan, ApplyReport()))
        report = ApplyReport()
        asyncio.run(step.apply_hook(plan, report))

        assert runner.commands == ['systemctl restart networkd-dispatcher.service']
        assert report.written == []
        assert report.ok

    def test_event_mode_without_targets_removes_hook(self, options, runner, tmp_path):
        hook = tmp_path / 'etc/networkd-dispatcher/routable.d/50-routerfabrik'
        hook.parent.mkdir(parents=True)
        hook.write_text('old')

        plan = _plan(options, eth0_scenario()[:1])
        assert plan.hook_targets == []
        asyncio.run(ApplyStep(options, runner).apply_hook(plan, ApplyReport()))

        assert not hook.exists()
        assert runner.commands == []


class TestServiceManager:
    def _unit(self, tmp_path, name):
        return tmp_path / 'etc/systemd/system' / name

    def test_installs_dnsmasq(self, options, runner, tmp_path):
        plan = types.SimpleNamespace(bring_up=[_dhcp_bring_up()])
        report = asyncio.run(ServiceManager(options, runner).sync(plan))

        unit = self._unit(tmp_path, 'routerfabrik-vlan-svlan.service')
        assert 'ExecStart=/usr/sbin/dnsmasq -d -R -i eth0.10 -z' in unit.read_text()
        assert runner.commands == [
            'systemctl daemon-reload',
            'systemctl enable routerfabrik-vlan-svlan.service',
            'systemctl restart routerfabrik-vlan-svlan.service',
        ]
        assert report.ok

    def test_bridge_gets_no_dhcp_server(self, options, runner):
        bring_up = BringUp(
            network=make_network(
                'br',
                vlan_id=20,
                network_type=NetworkType.BRIDGE,
                dhcp_server=DhcpServerConfig(enabled=True),
            ),
            interface_name='eth0.20',
            table=None,
        )
        plan = types.SimpleNamespace(bring_up=[bring_up])
        asyncio.run(ServiceManager(options, runner).sync(plan))
        assert runner.commands == []

    def test_disabled_dhcp_removes_unit(self, options, runner, tmp_path):
        unit = self._unit(tmp_path, 'routerfabrik-vlan-svlan.service')
        unit.parent.mkdir(parents=True)
        unit.write_text('old')
        bring_up = BringUp(
            network=make_network('svlan', vlan_id=10, addresses=('192.168.10.1/24',)),
            interface_name='eth0.10',
            table=100,
        )
        asyncio.run(
            ServiceManager(options, runner).sync(types.SimpleNamespace(bring_up=[bring_up]))
        )
        assert not unit.exists()
        assert runner.commands == [
            'systemctl stop routerfabrik-vlan-svlan.service',
            'systemctl disable routerfabrik-vlan-svlan.service',
            'systemctl daemon-reload',
        ]

    def test_removes_stale_units(self, options, runner, tmp_path):
        stale = self._unit(tmp_path, 'routerfabrik-caddy-old.service')
        stale.parent.mkdir(parents=True)
        stale.write_text('old')
        caddyfile = tmp_path / 'etc/routerfabrik/caddy/old.Caddyfile'
        caddyfile.parent.mkdir(parents=True)
        caddyfile.write_text('old')
        unrelated = self._unit(tmp_path, 'sshd.service')
        unrelated.write_text('keep')

        manager = ServiceManager(options, runner)
        asyncio.run(manager.sync(types.SimpleNamespace(bring_up=[])))

        assert not stale.exists()
        assert not caddyfile.exists()
        assert unrelated.exists()
        assert 'systemctl stop routerfabrik-caddy-old.service' in runner.commands
        assert manager.installed('caddy') == []

    def test_installs_reverse_proxy(self, options, runner, tmp_path):
        forward = PortForwardSettings(
            id='pf1',
            protocol=ForwardProtocol.HTTPS,
            domain='cloud.example.com',
            origin='http://192.168.10.20:8080',
        )
        bring_up = BringUp(
            network=make_network('svwan', vlan_id=1, network_type=NetworkType.INTERNET),
            interface_name='eth0',
            table=100,
            proxy_ports=ProxyPorts(https=40443, http=40080),
            proxy_forwards=(forward,),
        )
        asyncio.run(
            ServiceManager(options, runner).sync(types.SimpleNamespace(bring_up=[bring_up]))
        )
        caddyfile = tmp_path / 'etc/routerfabrik/caddy/svwan.Caddyfile'
        assert 'reverse_proxy http://192.168.10.20:8080' in caddyfile.read_text()
        assert _mode(caddyfile) == 0o600
        assert self._unit(tmp_path, 'routerfabrik-caddy-svwan.service').exists()
        assert 'systemctl restart routerfabrik-caddy-svwan.service' in runner.commands

    def test_render_error_becomes_warning(self, options, runner):
        network = make_network(
            'v6', vlan_id=10, addresses=('fd00::1/64',), dhcp_server=DhcpServerConfig(enabled=True)
        )
        bring_up = BringUp(network=network, interface_name='eth0.10', table=100)
        report = asyncio.run(
            ServiceManager(options, runner).sync(types.SimpleNamespace(bring_up=[bring_up]))
        )
        assert report.warnings == [
            'Network v6 (v6): no DHCP range configured and no IPv4 network to derive one'
        ]
        assert runner.commands == []


class TestCompilerDriver:
    def test_run(self, db, repository, options, runner, tmp_path):
        for network in eth0_scenario():
            repository.create(None, network)
        result = asyncio.run(CompilerDriver(db, options, runner).run())

        assert result.status == CompilerStatus.SUCCESS
        assert result.warnings == []
        assert [b.network.id for b in result.plan.bring_up] == ['wan', 'lan']
        assert (tmp_path / 'etc/netplan/01-routerfabrik.yaml').exists()
        assert runner.commands[0] == 'netplan apply'

    def test_empty_database(self, db, options, runner):
        result = asyncio.run(CompilerDriver(db, options, runner).run())
        assert result.plan.bring_up == []
        assert result.status == CompilerStatus.SUCCESS

    def test_apply_failure_is_a_warning(self, db, repository, options):
        for network in eth0_scenario():
            repository.create(None, network)
        runner = FakeRunner(failing=('nft',))
        result = asyncio.run(CompilerDriver(db, options, runner).run())
        assert result.status == CompilerStatus.WARNING
        assert result.warnings[0].endswith(': boom')

    def test_default_runner_follows_options(self, db, options):
        options.dry_run = True
        options.command_timeout = 5.0
        driver = CompilerDriver(db, options)
        assert driver.runner.dry_run
        assert driver.runner.timeout == 5.0


class _CountingDriver:
    """Stands in for CompilerDriver, returning the pass number."""

    def __init__(self, delay=0.01, fail=False):
        self.calls = 0
        self.delay = delay
        self.fail = fail

    async def run(self):
        self.calls += 1
        number = self.calls
        await asyncio.sleep(self.delay)
        if self.fail:
            raise RuntimeError(f'pass {number} failed')
        return number


async def _wait_for_pass(driver, number):
    while driver.calls < number:
        await asyncio.sleep(0)


class TestReconciler:
    def test_single_request(self):
        driver = _CountingDriver()
        reconciler = Reconciler(driver)
        assert asyncio.run(reconciler.request_apply()) == 1
        assert reconciler.passes == 1
        assert not reconciler.busy

    def test_requests_during_a_pass_coalesce(self):
        driver = _CountingDriver()
        reconciler = Reconciler(driver)

        async def scenario():
            first = asyncio.create_task(reconciler.request_apply())
            await _wait_for_pass(driver, 1)
            later = await asyncio.gather(*(reconciler.request_apply() for _ in range(3)))
            return await first, later

        first, later = asyncio.run(scenario())
        assert first == 1
        assert later == [2, 2, 2]
        assert reconciler.passes == 2

    def test_sequential_requests_each_run(self):
        driver = _CountingDriver(delay=0)
        reconciler = Reconciler(driver)

        async def scenario():
            return [await reconciler.request_apply() for _ in range(3)]

        assert asyncio.run(scenario()) == [1, 2, 3]

    def test_failure_reaches_waiters(self):
        driver = _CountingDriver(fail=True)
        reconciler = Reconciler(driver)

        async def scenario():
            with pytest.raises(RuntimeError, match='pass 1 failed'):
                await reconciler.request_apply()
            driver.fail = False
            return await reconciler.request_apply()

        assert asyncio.run(scenario()) == 2

    def test_cancelled_waiter_keeps_pass_running(self):
        driver = _CountingDriver()
        reconciler = Reconciler(driver)

        async def scenario():
            waiter = asyncio.create_task(reconciler.request_apply())
            await _wait_for_pass(driver, 1)
            waiter.cancel()
            result = await reconciler.request_apply()
            return waiter.cancelled(), result

        assert asyncio.run(scenario()) == (True, 2)
        assert reconciler.passes == 2


class TestReconcileResult:
    def _plan(self, status=CompilerStatus.SUCCESS, warnings=()):
        return types.SimpleNamespace(status=status, warnings=list(warnings))

    def test_status(self):
        assert ReconcileResult(self._plan(), ApplyReport()).status == CompilerStatus.SUCCESS
        report = ApplyReport(warnings=['nft -f x: boom'])
        result = ReconcileResult(self._plan(warnings=['a']), report)
        assert result.status == CompilerStatus.WARNING
        assert result.warnings == ['a', 'nft -f x: boom']
        error = ReconcileResult(self._plan(CompilerStatus.ERROR), ApplyReport())
        assert error.status == CompilerStatus.ERROR
