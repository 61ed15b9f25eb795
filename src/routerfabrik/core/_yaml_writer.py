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

"""YAML writer for serializing the networks to a single network file."""

import logging
import os
import pathlib

import sqlalchemy
import yaml

from . import objects

logger = logging.getLogger(__name__)


class _QuotedValueDumper(yaml.SafeDumper):
    def increase_indent(self, flow=False, indentless=False):
        return super().increase_indent(flow, False)


def _quoted_str(dumper, data):
    return dumper.represent_scalar('tag:yaml.org,2002:str', data, style="'")


_QuotedValueDumper.add_representer(str, _quoted_str)

_orig_represent_mapping = yaml.SafeDumper.represent_mapping


def _represent_mapping(self, tag, mapping, flow_style=None):
    node = _orig_represent_mapping(self, tag, mapping, flow_style)
    for key_node, _ in node.value:
        if key_node.tag == 'tag:yaml.org,2002:str':
            key_node.style = None
    return node


_QuotedValueDumper.represent_mapping = _represent_mapping


def _is_default(value):
    """Return True if value is a default that should be omitted."""
    if value is None:
        return True
    if isinstance(value, str) and value == '':
        return True
    return bool(isinstance(value, dict | list | tuple) and not value)


def _compact(d):
    return {k: v for k, v in d.items() if not _is_default(v)}


def _serialize_gateway(gateway):
    match gateway:
        case objects.GatewayViaNetwork(network_id=network_id):
            return {'mode': objects.GatewayMode.NETWORK.value, 'network': network_id}
        case objects.GatewayManual(ipv4=ipv4, ipv6=ipv6):
            return _compact(
                {'mode': objects.GatewayMode.MANUAL.value, 'ipv4': ipv4, 'ipv6': ipv6}
            )
        case _:
            return None


def _serialize_dns(dns):
    if dns.auto:
        return 'auto'
    return {'servers': list(dns.servers), 'search': list(dns.search)}


def _serialize_dhcp_server(dhcp_server):
    if not dhcp_server.enabled:
        return False
    if not dhcp_server.ranges and dhcp_server.lease_time == '12h':
        return True
    return _compact(
        {
            'enabled': True,
            'ranges': list(dhcp_server.ranges),
            'lease_time': dhcp_server.lease_time,
        }
    )


def serialize_network(settings):
    """Serialize one NetworkSettings to the mapping used in network files."""
    d = {
        'id': settings.id,
        'name': settings.name,
        'parent_interface': settings.parent_interface,
        'vlan_id': settings.vlan_id,
        'type': settings.network_type.value,
        'address_mode': settings.address_mode.value,
        'addresses': list(settings.addresses),
    }
    if settings.is_auto:
        d['dhcp4'] = settings.dhcp4
        d['dhcp6'] = settings.dhcp6
        d['accept_ra'] = settings.accept_ra
    d = _compact(d)
    # vlan_id null marks an incomplete network and must survive a round trip
    d.setdefault('vlan_id', settings.vlan_id)
    gateway = _serialize_gateway(settings.gateway)
    if gateway is not None:
        d['gateway'] = gateway
    d['dns'] = _serialize_dns(settings.dns)
    d['dhcp_server'] = _serialize_dhcp_server(settings.dhcp_server)
    if settings.reservations:
        d['reservations'] = [
            _compact(
                {'id': r.id, 'name': r.name, 'mac': r.mac, 'ip': r.ip, 'host': r.host}
            )
            for r in settings.reservations
        ]
    if settings.port_forwards:
        d['port_forwards'] = [
            _compact(
                {
                    'id': p.id,
                    'name': p.name,
                    'protocol': p.protocol.value,
                    'src_port': p.src_port,
                    'dst_ip': p.dst_ip,
                    'dst_port': p.dst_port,
                    'origin': p.origin,
                    'domain': p.domain,
                    'dns_provider': p.dns_provider,
                    'dns_provider_token': p.dns_provider_token,
                    'site_block': p.site_block,
                }
            )
            for p in settings.port_forwards
        ]
    return d


class YamlWriter:
    """Serializes the networks and options to a single YAML file."""

    def write(self, session, options, output_path):
        output_path = pathlib.Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)

        networks = session.scalars(
            sqlalchemy.select(objects.Network).order_by(objects.Network.position),
        ).all()
        doc = {}
        option_values = options.to_mapping()
        if option_values:
            doc['options'] = option_values
        doc['networks'] = [serialize_network(n.to_settings()) for n in networks]
        logger.debug('Writing %d networks to %s', len(networks), output_path)
        self._write_yaml(output_path, doc)

    @staticmethod
    def _write_yaml(path, data):
        """Write the provided data as YAML atomically to the file."""
        path = pathlib.Path(path)
        tmp_path = path.with_suffix(path.suffix + '.tmp')
        with pathlib.Path.open(tmp_path, 'w', encoding='utf-8') as f:
            yaml.dump(
                data,
                f,
                Dumper=_QuotedValueDumper,
                default_flow_style=False,
                sort_keys=False,
                allow_unicode=True,
            )
            f.flush()
            os.fsync(f.fileno())
        tmp_path.replace(path)
