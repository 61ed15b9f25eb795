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

"""Tests for the plan compiler: routes, policy rules, NAT and bring-up."""

import dataclasses

import pytest

from routerfabrik.compiler import (
    CompilerStatus,
    HookTarget,
    PlanCompiler,
    ProxyPorts,
    TableAllocator,
)
from routerfabrik.core.objects import (
    AddressMode,
    DhcpServerConfig,
    DnsConfig,
    ForwardProtocol,
    GatewayManual,
    GatewayViaNetwork,
    NetworkType,
    PortForwardSettings,
)
from routerfabrik.core.options import ReconcilerOptions
from routerfabrik.platforms.netplan import (
    DEFAULT_IPV4,
    DEFAULT_IPV6,
    MAIN_TABLE,
    Route,
    RouteScope,
    RouteType,
    RoutingPolicy,
)
from routerfabrik.platforms.nftables import Chain, Family, Table

from .conftest import eth0_scenario, make_network


def _compile(networks, **options):
    compiler = PlanCompiler(ReconcilerOptions(**options))
    return compiler, compiler.compile(networks)


def _defaults(stanza, table):
    return [r for r in stanza.routes if r.table == table and r.is_default]


def _static_wan(**kwargs):
    """Internet network on eth1 with a static address and gateway."""
    kwargs.setdefault('port_forwards', ())
    return make_network(
        'wan',
        parent_interface='eth1',
        vlan_id=1,
        network_type=NetworkType.INTERNET,
        addresses=('203.0.113.2/24',),
        gateway=GatewayManual(ipv4='203.0.113.1'),
        **kwargs,
    )


def _lan_behind(gateway_id, parent='eth1', vlan_id=10, **kwargs):
    return make_network(
        'lan',
        parent_interface=parent,
        vlan_id=vlan_id,
        addresses=('192.168.10.1/24',),
        gateway=GatewayViaNetwork(gateway_id),
        **kwargs,
    )


class TestBlackholeFallback:
    def test_only_default_is_blackhole(self):
        net = make_network('a', vlan_id=20, addresses=('10.0.0.1/24',))
        _, plan = _compile([net])
        table = plan.tables['eth0.20']
        stanza = plan.document.vlans['eth0.20']
        assert _defaults(stanza, table) == [
            Route(to=DEFAULT_IPV4, table=table, type=RouteType.BLACKHOLE)
        ]
        assert not any(r.via for r in stanza.routes)

    def test_link_route_and_own_table_policies(self):
        net = make_network('a', vlan_id=20, addresses=('10.0.0.1/24',))
        _, plan = _compile([net])
        stanza = plan.document.vlans['eth0.20']
        assert Route(
            to='10.0.0.0/24', from_='10.0.0.1', table=100, scope=RouteScope.LINK
        ) in stanza.routes
        assert stanza.routing_policy == [
            RoutingPolicy(from_='10.0.0.1', table=100, priority=1),
            RoutingPolicy(to='10.0.0.0/24', table=100, priority=1),
        ]

    def test_ipv6_blackhole_when_ipv6_addressed(self):
        net = make_network('a', vlan_id=20, addresses=('10.0.0.1/24', 'fd00::1/64'))
        _, plan = _compile([net])
        stanza = plan.document.vlans['eth0.20']
        assert {r.to for r in _defaults(stanza, 100)} == {'0.0.0.0/0', '::/0'}
        assert all(r.is_blackhole for r in _defaults(stanza, 100))


class TestGatewayPromotion:
    def test_manual_gateway_replaces_blackhole(self):
        net = make_network(
            'a',
            vlan_id=20,
            addresses=('10.0.0.1/24',),
            gateway=GatewayManual(ipv4='10.0.0.254'),
        )
        _, plan = _compile([net])
        stanza = plan.document.vlans['eth0.20']
        assert _defaults(stanza, 100) == [
            Route(to=DEFAULT_IPV4, via='10.0.0.254', table=100)
        ]
        assert not any(r.is_blackhole for r in stanza.routes)
        # not the default internet network, the main table stays untouched
        assert not any(r.table is None for r in stanza.routes)

    def test_default_internet_also_sets_main_default(self):
        _, plan = _compile([_static_wan()])
        stanza = plan.document.ethernets['eth1']
        assert Route(to=DEFAULT_IPV4, via='203.0.113.1') in stanza.routes
        assert Route(to=DEFAULT_IPV4, via='203.0.113.1', table=100) in stanza.routes

    def test_malformed_gateway_is_dropped(self):
        net = make_network(
            'a',
            vlan_id=20,
            addresses=('10.0.0.1/24',),
            gateway=GatewayManual(ipv4='fd00::1'),
        )
        compiler, plan = _compile([net])
        assert any('malformed IPv4 gateway' in w for w in compiler.get_warnings_for('a'))
        assert _defaults(plan.document.vlans['eth0.20'], 100)[0].is_blackhole

    def test_ipv4_gateway_keeps_ipv6_blackhole(self):
        net = make_network(
            'a',
            vlan_id=10,
            addresses=('192.168.10.1/24', 'fd00:10::1/64'),
            gateway=GatewayManual(ipv4='192.168.10.254'),
        )
        _, plan = _compile([net])
        assert _defaults(plan.document.vlans['eth0.10'], 100) == [
            Route(to=DEFAULT_IPV6, table=100, type=RouteType.BLACKHOLE),
            Route(to=DEFAULT_IPV4, via='192.168.10.254', table=100),
        ]

    def test_ipv4_gateway_network_keeps_ipv6_blackhole(self):
        lan = make_network(
            'lan',
            vlan_id=10,
            addresses=('192.168.10.1/24', 'fd00:10::1/64'),
            gateway=GatewayViaNetwork('wan'),
        )
        _, plan = _compile([_static_wan(), lan])
        lan_table = plan.tables['eth0.10']
        assert _defaults(plan.document.vlans['eth0.10'], lan_table) == [
            Route(to=DEFAULT_IPV6, table=lan_table, type=RouteType.BLACKHOLE)
        ]
        assert Route(to=DEFAULT_IPV4, via='203.0.113.1', table=lan_table) in (
            plan.document.ethernets['eth1'].routes
        )

    def test_dhcp_gateway_network_keeps_ipv6_blackhole(self):
        wan, lan = eth0_scenario()
        lan = dataclasses.replace(lan, addresses=(*lan.addresses, 'fd00:10::1/64'))
        _, plan = _compile([wan, lan])
        assert _defaults(plan.document.vlans['eth0.10'], 101) == [
            Route(to=DEFAULT_IPV6, table=101, type=RouteType.BLACKHOLE)
        ]

    def test_gateway_network_without_address_keeps_blackhole(self):
        wan = dataclasses.replace(_static_wan(), gateway=GatewayManual())
        lan = make_network(
            'lan',
            vlan_id=10,
            addresses=('192.168.10.1/24',),
            gateway=GatewayViaNetwork('wan'),
        )
        compiler, plan = _compile([wan, lan])
        assert 'has no gateway address' in compiler.get_warnings_for('lan')[0]
        assert _defaults(plan.document.vlans['eth0.10'], 101)[0].is_blackhole


class TestSkipOnIncomplete:
    def test_port_forwards_outside_internet_are_ignored(self):
        forward = PortForwardSettings(
            id='pf1', src_port='22', dst_ip='192.168.10.5', dst_port='22'
        )
        lan = make_network(
            'lan', vlan_id=10, addresses=('192.168.10.1/24',), port_forwards=(forward,)
        )
        compiler, plan = _compile([lan])
        assert compiler.get_warnings_for('lan') == [
            'Network lan (lan): ignoring 1 port forwards, they only apply to Internet networks'
        ]
        assert plan.bring_up_for('lan').network.port_forwards == ()
        assert 'dnat' not in plan.nft_text

    def test_unsafe_interface_name(self):
        wan, lan = eth0_scenario()
        bad = 'eth0"; touch /tmp/x; echo "'
        wan = dataclasses.replace(wan, parent_interface=bad)
        compiler, plan = _compile([wan, lan])
        assert 'invalid interface name' in compiler.get_warnings_for('wan')[0]
        assert [b.network.id for b in plan.bring_up] == ['lan']
        for text in (plan.netplan_text, plan.nft_text, plan.hook_text):
            assert 'touch' not in text

    def test_missing_vlan_id(self):
        broken = make_network(
            'broken', vlan_id=None, parent_interface='eth1', addresses=('10.1.0.1/24',)
        )
        ok = make_network('ok', vlan_id=10, addresses=('192.168.10.1/24',))
        compiler, plan = _compile([broken, ok])
        assert 'eth1' not in plan.document.ethernets
        assert not any(name.startswith('eth1') for name in plan.document.vlans)
        assert [b.network.id for b in plan.bring_up] == ['ok']
        assert plan.tables == {'eth0.10': 100}
        assert compiler.get_warnings_for('broken') == [
            'Network broken (broken): VLAN ID is required, skipped'
        ]
        assert plan.status == CompilerStatus.WARNING

    def test_missing_parent_interface(self):
        net = make_network('a', vlan_id=10, parent_interface=None)
        compiler, plan = _compile([net])
        assert plan.bring_up == []
        assert 'parent interface is required' in compiler.get_warnings_for('a')[0]

    def test_vlan_out_of_range(self):
        compiler, plan = _compile(
            [make_network('a', vlan_id=4096, addresses=('10.0.0.1/24',))]
        )
        assert plan.bring_up == []
        assert 'invalid VLAN ID 4096' in compiler.get_warnings_for('a')[0]

    def test_manual_without_address(self):
        compiler, plan = _compile([make_network('a', vlan_id=10)])
        assert plan.document.vlans == {}
        assert 'an address is required' in compiler.get_warnings_for('a')[0]

    def test_duplicate_interface_keeps_first(self):
        first = make_network('a', vlan_id=10, addresses=('10.0.0.1/24',))
        second = make_network('b', vlan_id=10, addresses=('10.9.0.1/24',))
        compiler, plan = _compile([first, second])
        assert plan.document.vlans['eth0.10'].addresses == ['10.0.0.1/24']
        assert 'already used by a (a)' in compiler.get_warnings_for('b')[0]

    def test_malformed_address_is_skipped(self):
        net = make_network('a', vlan_id=10, addresses=('10.0.0.1/24', 'garbage'))
        compiler, plan = _compile([net])
        assert plan.document.vlans['eth0.10'].addresses == ['10.0.0.1/24']
        assert "ignoring malformed address 'garbage'" in compiler.get_warnings_for('a')[0]


class TestTableAllocation:
    def test_same_input_same_tables(self):
        _, first = _compile(eth0_scenario())
        _, second = _compile(eth0_scenario())
        assert first.tables == second.tables == {'eth0': 100, 'eth0.10': 101}

    def test_first_table_option(self):
        _, plan = _compile(eth0_scenario(), first_table_id=200)
        assert plan.tables == {'eth0': 200, 'eth0.10': 201}

    def test_bridge_has_no_table(self):
        bridge = make_network('br', vlan_id=30, network_type=NetworkType.BRIDGE)
        _, plan = _compile([bridge])
        assert plan.tables == {}
        assert plan.bring_up_for('br').table is None

    def test_allocator_lookup_is_explicit(self):
        tables = TableAllocator()
        assert tables.get_table('eth0') is None
        assert tables.ensure_table('eth0') == 100
        assert tables.ensure_table('eth0.10') == 101
        assert tables.ensure_table('eth0') == 100
        assert tables.get_table('eth0.10') == 101
        assert tables.items() == [('eth0', 100), ('eth0.10', 101)]

    @pytest.mark.parametrize('first', [0, -1])
    def test_allocator_never_hands_out_zero(self, first):
        with pytest.raises(ValueError, match='start at 1'):
            TableAllocator(first)

    def test_lowest_table_is_one(self):
        tables = TableAllocator(1)
        assert tables.ensure_table('eth0') == 1


class TestIdempotentRefresh:
    def test_two_passes_render_identical_rules(self):
        _, first = _compile(eth0_scenario())
        _, second = _compile(eth0_scenario())
        assert first.nft_text == second.nft_text
        assert first.nft_rules == second.nft_rules

    def test_rules_start_with_flush(self):
        _, plan = _compile(eth0_scenario())
        assert plan.nft_text.index('flush chain ip nat postrouting_routerfabrik') < (
            plan.nft_text.index('masquerade')
        )


class TestEth0Scenario:
    def test_wan_stanza(self):
        _, plan = _compile(eth0_scenario())
        assert 'eth0' not in plan.document.vlans
        assert plan.document.ethernets['eth0'].to_dict() == {
            'dhcp4': True,
            'dhcp6': False,
            'accept-ra': False,
            'optional': True,
            'routes': [{'to': '0.0.0.0/0', 'table': 100, 'type': 'blackhole'}],
            'dhcp4-overrides': {'use-domains': False},
        }

    def test_lan_stanza(self):
        _, plan = _compile(eth0_scenario())
        assert plan.document.vlans['eth0.10'].to_dict() == {
            'id': 10,
            'link': 'eth0',
            'dhcp4': False,
            'dhcp6': False,
            'optional': True,
            'addresses': ['192.168.10.1/24'],
            'routes': [
                {
                    'to': '192.168.10.0/24',
                    'from': '192.168.10.1',
                    'table': 101,
                    'scope': 'link',
                }
            ],
            'routing-policy': [
                {'from': '192.168.10.1', 'table': 101, 'priority': 1},
                {'to': '192.168.10.0/24', 'table': 101, 'priority': 1},
                {'from': '192.168.10.1', 'table': 100, 'priority': 2},
            ],
        }

    def test_nat_gateway_rules(self):
        _, plan = _compile(eth0_scenario())
        ip_rules = {
            (r.table, r.chain, r.statement)
            for r in plan.nft_rules
            if r.family == Family.IP
        }
        assert (Table.NAT, Chain.POSTROUTING, 'oif "eth0" masquerade') in ip_rules
        assert (Table.FILTER, Chain.FORWARD, 'iif "eth0.10" oif "eth0" accept') in ip_rules

    def test_hook_target(self):
        _, plan = _compile(eth0_scenario())
        assert plan.hook_targets == [HookTarget('eth0', '192.168.10.1', 100)]
        assert 'add_or_replace_route "eth0" "192.168.10.1" 100 "$router"' in plan.hook_text

    def test_clean_pass(self):
        _, plan = _compile(eth0_scenario())
        assert plan.warnings == []
        assert plan.status == CompilerStatus.SUCCESS
        assert [b.interface_name for b in plan.bring_up] == ['eth0', 'eth0.10']


class TestGatewayResolution:
    def test_unresolved_gateway_keeps_blackhole(self):
        lan = _lan_behind('missing', parent='eth0')
        compiler, plan = _compile([lan])
        assert _defaults(plan.document.vlans['eth0.10'], 100)[0].is_blackhole
        assert 'is not configured' in compiler.get_warnings_for('lan')[0]
        assert plan.nft_rules == []

    def test_bridge_is_no_gateway(self):
        bridge = make_network('br', vlan_id=30, network_type=NetworkType.BRIDGE)
        lan = _lan_behind('br', parent='eth0')
        compiler, plan = _compile([bridge, lan])
        assert 'cannot be a gateway' in compiler.get_warnings_for('lan')[0]
        table = plan.tables['eth0.10']
        assert _defaults(plan.document.vlans['eth0.10'], table)[0].is_blackhole

    def test_static_gateway_routes_on_gateway_link(self):
        _, plan = _compile([_static_wan(), _lan_behind('wan')])
        lan_table = plan.tables['eth1.10']
        assert Route(to=DEFAULT_IPV4, via='203.0.113.1', table=lan_table) in (
            plan.document.ethernets['eth1'].routes
        )
        assert not any(r.is_blackhole for r in plan.document.vlans['eth1.10'].routes)
        assert plan.hook_targets == []

    def test_dhcp_server_policy_covers_subnet(self):
        lan = _lan_behind('wan', dhcp_server=DhcpServerConfig(enabled=True))
        _, plan = _compile([_static_wan(), lan])
        assert RoutingPolicy(from_='192.168.10.0/24', table=100, priority=2) in (
            plan.document.vlans['eth1.10'].routing_policy
        )

    def test_internet_cannot_route_via_network(self):
        wan = make_network(
            'wan',
            vlan_id=1,
            network_type=NetworkType.INTERNET,
            address_mode=AddressMode.AUTO,
            gateway=GatewayViaNetwork('other'),
        )
        compiler, _ = _compile([wan])
        assert 'cannot route through another network' in compiler.get_warnings_for('wan')[0]

    def test_default_internet_by_name(self):
        first = make_network(
            'w1', vlan_id=1, network_type=NetworkType.INTERNET, address_mode=AddressMode.AUTO
        )
        second = make_network(
            'w2',
            name='uplink',
            parent_interface='eth1',
            vlan_id=1,
            network_type=NetworkType.INTERNET,
            address_mode=AddressMode.AUTO,
        )
        _, plan = _compile([first, second], default_internet='uplink')
        assert plan.document.ethernets['eth0'].dhcp4_overrides == {
            'use-routes': False,
            'use-domains': False,
        }
        assert plan.document.ethernets['eth1'].dhcp4_overrides == {'use-domains': False}

    def test_unknown_default_internet(self):
        _, plan = _compile(eth0_scenario(), default_internet='nosuch')
        assert "Default internet network 'nosuch' is not configured" in plan.warnings


class TestDnsInheritance:
    def test_inherits_gateway_servers(self):
        wan = _static_wan(dns=DnsConfig(servers=('9.9.9.9',), search=('example.com',)))
        lan = _lan_behind('wan', dns=DnsConfig(auto=True))
        _, plan = _compile([wan, lan])
        stanza = plan.document.vlans['eth1.10']
        assert stanza.nameservers == ['9.9.9.9']
        assert stanza.search == ['example.com']

    def test_dhcp_gateway_has_nothing_to_inherit(self):
        wan = eth0_scenario()[0]
        lan = _lan_behind('wan', parent='eth0', dns=DnsConfig(auto=True))
        compiler, plan = _compile([wan, lan])
        assert 'DHCP-addressed' in compiler.get_warnings_for('lan')[0]
        assert plan.document.vlans['eth0.10'].nameservers == []


class TestParentInterfaces:
    def test_parent_of_tagged_vlans_is_completed(self):
        net = make_network(
            'a', parent_interface='eth2', vlan_id=5, addresses=('10.5.0.1/24',)
        )
        _, plan = _compile([net])
        assert plan.document.ethernets['eth2'].to_dict() == {
            'dhcp4': False,
            'dhcp6': False,
            'optional': True,
        }

    def test_configured_parent_is_kept(self):
        _, plan = _compile(eth0_scenario())
        assert plan.document.ethernets['eth0'].dhcp4 is True


class TestBridge:
    def test_layer2_only(self):
        bridge = make_network(
            'br',
            vlan_id=30,
            network_type=NetworkType.BRIDGE,
            addresses=('10.30.0.1/24',),
            gateway=GatewayManual(ipv4='10.30.0.254'),
        )
        compiler, plan = _compile([bridge])
        assert plan.document.vlans['eth0.30'].to_dict() == {
            'id': 30,
            'link': 'eth0',
            'dhcp4': False,
            'dhcp6': False,
            'optional': True,
        }
        assert 'bridges carry no gateway' in compiler.get_warnings_for('br')[0]


class TestInternetPostProcessing:
    def test_port_forward_with_hairpin_policy(self):
        forward = PortForwardSettings(
            id='pf1',
            protocol=ForwardProtocol.TCP,
            src_port='80',
            dst_ip='192.168.10.5',
            dst_port='8080',
        )
        _, plan = _compile([_static_wan(port_forwards=(forward,)), _lan_behind('wan')])
        prerouting = [
            r.statement
            for r in plan.nft_rules
            if r.family == Family.IP and r.chain == Chain.PREROUTING
        ]
        assert prerouting == [
            'iif "eth1" ip daddr 203.0.113.2 tcp dport 80 dnat to 192.168.10.5:8080',
            'iif "eth1.10" fib daddr type local tcp dport 80 dnat to 192.168.10.5:8080',
        ]
        assert RoutingPolicy(
            from_='192.168.10.0/24', to='192.168.10.5', table=MAIN_TABLE, priority=1
        ) in plan.document.vlans['eth1.10'].routing_policy

    def test_invalid_destination_is_skipped(self):
        forward = PortForwardSettings(
            id='pf1',
            protocol=ForwardProtocol.UDP,
            src_port='53',
            dst_ip='nonsense',
            dst_port='53',
        )
        compiler, plan = _compile([_static_wan(port_forwards=(forward,))])
        warnings = compiler.get_warnings_for('wan')
        assert any('invalid destination address' in w for w in warnings)
        assert not any(r.chain == Chain.PREROUTING for r in plan.nft_rules)

    def test_reverse_proxy(self):
        forward = PortForwardSettings(
            id='pf1',
            protocol=ForwardProtocol.HTTPS,
            domain='cloud.example.com',
            origin='http://192.168.10.20:8080',
        )
        _, plan = _compile([_static_wan(port_forwards=(forward,)), _lan_behind('wan')])
        bring_up = plan.bring_up_for('wan')
        assert bring_up.proxy_ports == ProxyPorts(https=40443, http=40080)
        assert bring_up.proxy_forwards == (forward,)
        assert plan.document.ethernets['lo'].addresses == ['169.254.253.1/32', 'fd7f::1/128']
        statements = {r.statement for r in plan.nft_rules if r.chain == Chain.PREROUTING}
        assert (
            'iif "eth1" ip daddr 203.0.113.2 tcp dport 443 dnat to 169.254.253.1:40443'
            in statements
        )
        assert 'iif "eth1" tcp dport 80 dnat to [fd7f::1]:40080' in statements

    def test_reverse_proxy_malformed_origin(self):
        forward = PortForwardSettings(
            id='pf1', protocol=ForwardProtocol.HTTPS, domain='a.example.com', origin='ftp://x'
        )
        compiler, plan = _compile([_static_wan(port_forwards=(forward,))])
        assert plan.bring_up_for('wan').proxy_ports is None
        assert any('malformed origin' in w for w in compiler.get_warnings_for('wan'))
