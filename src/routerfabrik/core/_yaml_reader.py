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

"""YAML reader for loading a network file into the database model.

A network file looks like::

    options:
      hook_mode: event
      default_internet: wan
    networks:
      - id: sv0a1b
        name: wan
        parent_interface: eth0
        vlan_id: 1
        type: Internet
        address_mode: Auto
        port_forwards:
          - {protocol: tcp, src_port: 80, dst_ip: 192.168.10.5, dst_port: 8080}
      - name: lan
        parent_interface: eth0
        vlan_id: 10
        addresses: [192.168.10.1/24]
        gateway: {mode: Network, network: wan}
        dhcp_server: true

Gateway references may use the id or the name of another network.
"""

import dataclasses
import logging
import pathlib

import yaml

from . import objects
from ._util import (
    NETWORK_ID_PREFIX,
    PORT_FORWARD_ID_PREFIX,
    RESERVATION_ID_PREFIX,
    AddressFamily,
    ParseResult,
    generate_id,
)
from ._validation import (
    validate_gateway_address,
    validate_interface_name,
    validate_network_unused,
    validate_vlan_id,
)

logger = logging.getLogger(__name__)

_UNSET = object()


def _coerce_bool(value, key):
    """Coerce string booleans to Python bools.

    YAML normally handles this, but quoted values like ``"true"`` remain
    strings.
    """
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        low = value.strip().lower()
        if low in {'true', 'yes', 'on', '1'}:
            return True
        if low in {'false', 'no', 'off', '0', ''}:
            return False
    if isinstance(value, int):
        return bool(value)
    raise ValueError(f'{key}: expected a boolean, got {value!r}')


def _as_list(value, key):
    if value is None:
        return []
    if isinstance(value, (str, int)):
        return [str(value)]
    if isinstance(value, list):
        return [str(v) for v in value]
    raise ValueError(f'{key}: expected a list, got {value!r}')


def _enum(enum_cls, value, key):
    try:
        return enum_cls(value)
    except ValueError:
        choices = ', '.join(m.value for m in enum_cls)
        raise ValueError(f'{key}: expected one of {choices}, got {value!r}') from None


class YamlReader:
    """Parses a network file into a ParseResult compatible with DatabaseManager.load()."""

    def __init__(self):
        self._taken_ids = set()
        self._name_index = {}  # name -> network id
        self._deferred_gateways = []  # (network index, reference)

    def parse(self, input_path):
        input_path = pathlib.Path(input_path)
        with pathlib.Path.open(input_path, encoding='utf-8') as f:
            data = yaml.safe_load(f)
        try:
            return self.parse_data(data)
        except ValueError as e:
            raise ValueError(f'{input_path}: {e}') from e

    def parse_data(self, data):
        """Parse an already loaded document."""
        self._taken_ids.clear()
        self._name_index.clear()
        self._deferred_gateways.clear()

        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ValueError('expected a mapping with "options" and "networks"')
        options = data.get('options') or {}
        if not isinstance(options, dict):
            raise ValueError('options: expected a mapping')
        entries = data.get('networks') or []
        if not isinstance(entries, list):
            raise ValueError('networks: expected a list')

        # Phase 1: Parse networks, gateway references stay unresolved
        settings = []
        for index, entry in enumerate(entries):
            if not isinstance(entry, dict):
                raise ValueError(f'networks[{index}]: expected a mapping')
            settings.append(self._parse_network(index, entry))

        # Phase 2: Resolve gateway references to ids
        for index, reference in self._deferred_gateways:
            settings[index] = self._resolve_gateway(settings[index], reference)

        # Phase 3: Reject duplicate parent/VLAN pairs
        for network in settings:
            validate_network_unused(
                settings, network.parent_interface, network.vlan_id, network.id
            )

        networks = [
            objects.Network.from_settings(network, position)
            for position, network in enumerate(settings)
        ]
        logger.debug('Parsed %d networks', len(networks))
        return ParseResult(options=options, networks=networks)

    def _take_id(self, value, prefix, key):
        if value:
            value = str(value)
            if value in self._taken_ids:
                raise ValueError(f'{key}: duplicate id {value!r}')
        else:
            value = generate_id(prefix, self._taken_ids)
        self._taken_ids.add(value)
        return value

    def _parse_network(self, index, entry):
        key = f'networks[{index}]'
        network_id = self._take_id(entry.get('id'), NETWORK_ID_PREFIX, f'{key}.id')

        vlan_id = entry.get('vlan_id', 1)
        if vlan_id is not None:
            try:
                vlan_id = validate_vlan_id(vlan_id)
            except ValueError as e:
                raise ValueError(f'{key}.vlan_id: {e}') from None

        try:
            parent_interface = validate_interface_name(entry.get('parent_interface'))
        except ValueError as e:
            raise ValueError(f'{key}.parent_interface: {e}') from None

        name = entry.get('name')
        if not name:
            name = f'VLAN {vlan_id}' if vlan_id is not None else ''
        name = str(name)
        if name in self._name_index:
            logger.warning('Network name %r is used more than once', name)
        else:
            self._name_index[name] = network_id

        network_type = _enum(
            objects.NetworkType,
            entry.get('type', objects.NetworkType.NETWORK.value),
            f'{key}.type',
        )
        if entry.get('port_forwards') and network_type != objects.NetworkType.INTERNET:
            raise ValueError(
                f'{key}.port_forwards: port forwards belong to Internet networks'
            )

        gateway = self._parse_gateway(index, entry.get('gateway', _UNSET), key)
        return objects.NetworkSettings(
            id=network_id,
            name=name,
            vlan_id=vlan_id,
            parent_interface=parent_interface,
            network_type=network_type,
            address_mode=_enum(
                objects.AddressMode,
                entry.get('address_mode', objects.AddressMode.MANUAL.value),
                f'{key}.address_mode',
            ),
            addresses=tuple(_as_list(entry.get('addresses'), f'{key}.addresses')),
            dhcp4=_coerce_bool(entry.get('dhcp4', True), f'{key}.dhcp4'),
            dhcp6=_coerce_bool(entry.get('dhcp6', False), f'{key}.dhcp6'),
            accept_ra=_coerce_bool(entry.get('accept_ra', False), f'{key}.accept_ra'),
            gateway=gateway,
            dns=self._parse_dns(entry.get('dns', _UNSET), f'{key}.dns'),
            dhcp_server=self._parse_dhcp_server(
                entry.get('dhcp_server', False), f'{key}.dhcp_server'
            ),
            reservations=tuple(
                self._parse_reservation(r, f'{key}.reservations[{i}]')
                for i, r in enumerate(entry.get('reservations') or [])
            ),
            port_forwards=tuple(
                self._parse_port_forward(p, f'{key}.port_forwards[{i}]')
                for i, p in enumerate(entry.get('port_forwards') or [])
            ),
        )

    def _parse_gateway(self, index, value, key):
        if value is _UNSET or value is None:
            return objects.GatewayDisabled()
        if isinstance(value, str):
            value = {'mode': value}
        if not isinstance(value, dict):
            raise ValueError(f'{key}.gateway: expected a mapping')
        mode = _enum(
            objects.GatewayMode,
            value.get('mode', objects.GatewayMode.DISABLED.value),
            f'{key}.gateway.mode',
        )
        match mode:
            case objects.GatewayMode.NETWORK:
                reference = value.get('network')
                if not reference:
                    raise ValueError(f'{key}.gateway.network: missing')
                self._deferred_gateways.append((index, str(reference)))
                return objects.GatewayViaNetwork(str(reference))
            case objects.GatewayMode.MANUAL:
                try:
                    return objects.GatewayManual(
                        ipv4=validate_gateway_address(
                            value.get('ipv4'), AddressFamily.IPV4
                        ),
                        ipv6=validate_gateway_address(
                            value.get('ipv6'), AddressFamily.IPV6
                        ),
                    )
                except ValueError as e:
                    raise ValueError(f'{key}.gateway: {e}') from None
            case _:
                return objects.GatewayDisabled()

    def _resolve_gateway(self, settings, reference):
        if reference in self._taken_ids:
            network_id = reference
        else:
            network_id = self._name_index.get(reference)
        if network_id is None:
            # Kept as is, the compiler reports the dangling reference.
            logger.warning(
                'Network %s: gateway network %r not found', settings.label, reference
            )
            return settings
        return dataclasses.replace(
            settings, gateway=objects.GatewayViaNetwork(network_id)
        )

    @staticmethod
    def _parse_dns(value, key):
        if value is _UNSET:
            return objects.DnsConfig(servers=tuple(objects.DEFAULT_DNS_SERVERS))
        if value is None:
            return objects.DnsConfig()
        if isinstance(value, str):
            if value.strip().lower() == 'auto':
                return objects.DnsConfig(auto=True)
            raise ValueError(f'{key}: expected "auto" or a mapping, got {value!r}')
        if not isinstance(value, dict):
            raise ValueError(f'{key}: expected "auto" or a mapping')
        return objects.DnsConfig(
            auto=_coerce_bool(value.get('auto', False), f'{key}.auto'),
            servers=tuple(_as_list(value.get('servers'), f'{key}.servers')),
            search=tuple(_as_list(value.get('search'), f'{key}.search')),
        )

    @staticmethod
    def _parse_dhcp_server(value, key):
        if not isinstance(value, dict):
            return objects.DhcpServerConfig(enabled=_coerce_bool(value, key))
        return objects.DhcpServerConfig(
            enabled=_coerce_bool(value.get('enabled', True), f'{key}.enabled'),
            ranges=tuple(_as_list(value.get('ranges'), f'{key}.ranges')),
            lease_time=str(value.get('lease_time') or '12h'),
        )

    def _parse_reservation(self, entry, key):
        if not isinstance(entry, dict):
            raise ValueError(f'{key}: expected a mapping')
        return objects.ReservationSettings(
            id=self._take_id(entry.get('id'), RESERVATION_ID_PREFIX, f'{key}.id'),
            name=str(entry.get('name') or ''),
            mac=str(entry.get('mac') or ''),
            ip=str(entry.get('ip') or ''),
            host=str(entry.get('host') or ''),
        )

    def _parse_port_forward(self, entry, key):
        if not isinstance(entry, dict):
            raise ValueError(f'{key}: expected a mapping')
        protocol = entry.get('protocol', objects.ForwardProtocol.TCP.value)
        # The reverse proxy protocol is also spelled plain "https".
        if protocol == 'https':
            protocol = objects.ForwardProtocol.HTTPS.value
        return objects.PortForwardSettings(
            id=self._take_id(entry.get('id'), PORT_FORWARD_ID_PREFIX, f'{key}.id'),
            name=str(entry.get('name') or ''),
            protocol=_enum(objects.ForwardProtocol, protocol, f'{key}.protocol'),
            src_port=str(entry.get('src_port') or ''),
            dst_ip=str(entry.get('dst_ip') or ''),
            dst_port=str(entry.get('dst_port') or ''),
            origin=str(entry.get('origin') or ''),
            domain=str(entry.get('domain') or ''),
            dns_provider=str(entry.get('dns_provider') or ''),
            dns_provider_token=str(entry.get('dns_provider_token') or ''),
            site_block=str(entry.get('site_block') or ''),
        )
