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

"""Persisted models: Network, PortForward and AddressReservation."""

from __future__ import (
    annotations,  # This is needed since SQLAlchemy does not support forward references yet
)

import sqlalchemy
import sqlalchemy.orm

from ._base import Base
from ._settings import (
    DhcpServerConfig,
    DnsConfig,
    GatewayConfig,
    GatewayDisabled,
    GatewayManual,
    GatewayViaNetwork,
    NetworkSettings,
    PortForwardSettings,
    ReservationSettings,
)
from ._types import AddressMode, ForwardProtocol, GatewayMode, NetworkType

DEFAULT_DNS_SERVERS = ['1.1.1.1', '1.0.0.1']


class Network(Base):
    """A logical network (VLAN) bound to a parent interface."""

    __tablename__ = 'networks'

    id: sqlalchemy.orm.Mapped[str] = sqlalchemy.orm.mapped_column(
        sqlalchemy.String(16),
        primary_key=True,
    )
    position: sqlalchemy.orm.Mapped[int] = sqlalchemy.orm.mapped_column(
        sqlalchemy.Integer,
        default=0,
    )
    name: sqlalchemy.orm.Mapped[str] = sqlalchemy.orm.mapped_column(
        sqlalchemy.String,
        default='',
    )
    vlan_id: sqlalchemy.orm.Mapped[int | None] = sqlalchemy.orm.mapped_column(
        sqlalchemy.Integer,
        nullable=True,
    )
    parent_interface: sqlalchemy.orm.Mapped[str | None] = sqlalchemy.orm.mapped_column(
        sqlalchemy.String,
        nullable=True,
        default=None,
    )
    network_type: sqlalchemy.orm.Mapped[str] = sqlalchemy.orm.mapped_column(
        sqlalchemy.String(16),
        default=NetworkType.NETWORK.value,
    )
    address_mode: sqlalchemy.orm.Mapped[str] = sqlalchemy.orm.mapped_column(
        sqlalchemy.String(16),
        default=AddressMode.MANUAL.value,
    )
    addresses: sqlalchemy.orm.Mapped[list | None] = sqlalchemy.orm.mapped_column(
        sqlalchemy.JSON,
        default=list,
    )
    dhcp4: sqlalchemy.orm.Mapped[bool] = sqlalchemy.orm.mapped_column(
        sqlalchemy.Boolean,
        default=True,
    )
    dhcp6: sqlalchemy.orm.Mapped[bool] = sqlalchemy.orm.mapped_column(
        sqlalchemy.Boolean,
        default=False,
    )
    accept_ra: sqlalchemy.orm.Mapped[bool] = sqlalchemy.orm.mapped_column(
        sqlalchemy.Boolean,
        default=False,
    )
    gateway_mode: sqlalchemy.orm.Mapped[str] = sqlalchemy.orm.mapped_column(
        sqlalchemy.String(16),
        default=GatewayMode.DISABLED.value,
    )
    gateway_network_id: sqlalchemy.orm.Mapped[str | None] = sqlalchemy.orm.mapped_column(
        sqlalchemy.String(16),
        nullable=True,
        default=None,
    )
    gateway4: sqlalchemy.orm.Mapped[str | None] = sqlalchemy.orm.mapped_column(
        sqlalchemy.String,
        nullable=True,
        default=None,
    )
    gateway6: sqlalchemy.orm.Mapped[str | None] = sqlalchemy.orm.mapped_column(
        sqlalchemy.String,
        nullable=True,
        default=None,
    )
    dns_auto: sqlalchemy.orm.Mapped[bool] = sqlalchemy.orm.mapped_column(
        sqlalchemy.Boolean,
        default=False,
    )
    dns_servers: sqlalchemy.orm.Mapped[list | None] = sqlalchemy.orm.mapped_column(
        sqlalchemy.JSON,
        default=lambda: list(DEFAULT_DNS_SERVERS),
    )
    dns_search: sqlalchemy.orm.Mapped[list | None] = sqlalchemy.orm.mapped_column(
        sqlalchemy.JSON,
        default=list,
    )
    dhcp_server: sqlalchemy.orm.Mapped[bool] = sqlalchemy.orm.mapped_column(
        sqlalchemy.Boolean,
        default=False,
    )
    dhcp_ranges: sqlalchemy.orm.Mapped[list | None] = sqlalchemy.orm.mapped_column(
        sqlalchemy.JSON,
        default=list,
    )
    dhcp_lease_time: sqlalchemy.orm.Mapped[str] = sqlalchemy.orm.mapped_column(
        sqlalchemy.String(16),
        default='12h',
    )

    port_forwards: sqlalchemy.orm.Mapped[list[PortForward]] = sqlalchemy.orm.relationship(
        'PortForward',
        back_populates='network',
        cascade='all, delete-orphan',
        order_by='PortForward.position',
    )
    reservations: sqlalchemy.orm.Mapped[list[AddressReservation]] = (
        sqlalchemy.orm.relationship(
            'AddressReservation',
            back_populates='network',
            cascade='all, delete-orphan',
            order_by='AddressReservation.position',
        )
    )

    __table_args__ = (
        sqlalchemy.UniqueConstraint(
            'parent_interface', 'vlan_id', name='uq_networks_parent_vlan'
        ),
        sqlalchemy.Index('ix_networks_position', 'position'),
    )

    @property
    def gateway(self) -> GatewayConfig:
        """The stored gateway columns folded into the tagged variant."""
        match self.gateway_mode:
            case GatewayMode.NETWORK if self.gateway_network_id:
                return GatewayViaNetwork(self.gateway_network_id)
            case GatewayMode.MANUAL:
                return GatewayManual(self.gateway4 or None, self.gateway6 or None)
            case _:
                return GatewayDisabled()

    @gateway.setter
    def gateway(self, value: GatewayConfig) -> None:
        # Columns not used by the variant are cleared so that no stale
        # combination survives in the database.
        self.gateway_network_id = None
        self.gateway4 = None
        self.gateway6 = None
        match value:
            case GatewayViaNetwork(network_id=network_id):
                self.gateway_mode = GatewayMode.NETWORK.value
                self.gateway_network_id = network_id
            case GatewayManual(ipv4=ipv4, ipv6=ipv6):
                self.gateway_mode = GatewayMode.MANUAL.value
                self.gateway4 = ipv4
                self.gateway6 = ipv6
            case _:
                self.gateway_mode = GatewayMode.DISABLED.value

    @classmethod
    def from_settings(cls, settings: NetworkSettings, position: int = 0) -> Network:
        network = cls(id=settings.id, position=position)
        network.update_from(settings)
        network.port_forwards = [
            PortForward.from_settings(pf, i) for i, pf in enumerate(settings.port_forwards)
        ]
        network.reservations = [
            AddressReservation.from_settings(r, i)
            for i, r in enumerate(settings.reservations)
        ]
        return network

    def update_from(self, settings: NetworkSettings) -> None:
        """Copy the scalar fields of *settings*, leaving the children untouched."""
        self.name = settings.name
        self.vlan_id = settings.vlan_id
        self.parent_interface = settings.parent_interface
        self.network_type = settings.network_type.value
        self.address_mode = settings.address_mode.value
        self.addresses = list(settings.addresses)
        self.dhcp4 = settings.dhcp4
        self.dhcp6 = settings.dhcp6
        self.accept_ra = settings.accept_ra
        self.gateway = settings.gateway
        self.dns_auto = settings.dns.auto
        self.dns_servers = list(settings.dns.servers)
        self.dns_search = list(settings.dns.search)
        self.dhcp_server = settings.dhcp_server.enabled
        self.dhcp_ranges = list(settings.dhcp_server.ranges)
        self.dhcp_lease_time = settings.dhcp_server.lease_time

    def to_settings(self) -> NetworkSettings:
        return NetworkSettings(
            id=self.id,
            name=self.name or '',
            vlan_id=self.vlan_id,
            parent_interface=self.parent_interface or None,
            network_type=NetworkType(self.network_type or NetworkType.NETWORK),
            address_mode=AddressMode(self.address_mode or AddressMode.MANUAL),
            addresses=tuple(self.addresses or ()),
            dhcp4=bool(self.dhcp4),
            dhcp6=bool(self.dhcp6),
            accept_ra=bool(self.accept_ra),
            gateway=self.gateway,
            dns=DnsConfig(
                auto=bool(self.dns_auto),
                servers=tuple(self.dns_servers or ()),
                search=tuple(self.dns_search or ()),
            ),
            dhcp_server=DhcpServerConfig(
                enabled=bool(self.dhcp_server),
                ranges=tuple(self.dhcp_ranges or ()),
                lease_time=self.dhcp_lease_time or '12h',
            ),
            reservations=tuple(r.to_settings() for r in self.reservations),
            port_forwards=tuple(p.to_settings() for p in self.port_forwards),
        )


class PortForward(Base):
    """A port forward (or reverse proxy entry) under an Internet network."""

    __tablename__ = 'port_forwards'

    id: sqlalchemy.orm.Mapped[str] = sqlalchemy.orm.mapped_column(
        sqlalchemy.String(16),
        primary_key=True,
    )
    network_id: sqlalchemy.orm.Mapped[str] = sqlalchemy.orm.mapped_column(
        sqlalchemy.String(16),
        sqlalchemy.ForeignKey('networks.id', ondelete='CASCADE'),
        nullable=False,
    )
    position: sqlalchemy.orm.Mapped[int] = sqlalchemy.orm.mapped_column(
        sqlalchemy.Integer,
        default=0,
    )
    name: sqlalchemy.orm.Mapped[str] = sqlalchemy.orm.mapped_column(
        sqlalchemy.String,
        default='',
    )
    protocol: sqlalchemy.orm.Mapped[str] = sqlalchemy.orm.mapped_column(
        sqlalchemy.String(16),
        default=ForwardProtocol.TCP.value,
    )
    src_port: sqlalchemy.orm.Mapped[str] = sqlalchemy.orm.mapped_column(
        sqlalchemy.String,
        default='',
    )
    dst_ip: sqlalchemy.orm.Mapped[str] = sqlalchemy.orm.mapped_column(
        sqlalchemy.String,
        default='',
    )
    dst_port: sqlalchemy.orm.Mapped[str] = sqlalchemy.orm.mapped_column(
        sqlalchemy.String,
        default='',
    )
    origin: sqlalchemy.orm.Mapped[str] = sqlalchemy.orm.mapped_column(
        sqlalchemy.String,
        default='',
    )
    domain: sqlalchemy.orm.Mapped[str] = sqlalchemy.orm.mapped_column(
        sqlalchemy.String,
        default='',
    )
    dns_provider: sqlalchemy.orm.Mapped[str] = sqlalchemy.orm.mapped_column(
        sqlalchemy.String,
        default='',
    )
    dns_provider_token: sqlalchemy.orm.Mapped[str] = sqlalchemy.orm.mapped_column(
        sqlalchemy.String,
        default='',
    )
    site_block: sqlalchemy.orm.Mapped[str] = sqlalchemy.orm.mapped_column(
        sqlalchemy.Text,
        default='',
    )

    network: sqlalchemy.orm.Mapped[Network] = sqlalchemy.orm.relationship(
        'Network',
        back_populates='port_forwards',
    )

    @classmethod
    def from_settings(
        cls, settings: PortForwardSettings, position: int = 0
    ) -> PortForward:
        port_forward = cls(id=settings.id, position=position)
        port_forward.update_from(settings)
        return port_forward

    def update_from(self, settings: PortForwardSettings) -> None:
        self.name = settings.name
        self.protocol = settings.protocol.value
        self.src_port = settings.src_port
        self.dst_ip = settings.dst_ip
        self.dst_port = settings.dst_port
        self.origin = settings.origin
        self.domain = settings.domain
        self.dns_provider = settings.dns_provider
        self.dns_provider_token = settings.dns_provider_token
        self.site_block = settings.site_block

    def to_settings(self) -> PortForwardSettings:
        return PortForwardSettings(
            id=self.id,
            name=self.name or '',
            protocol=ForwardProtocol(self.protocol or ForwardProtocol.TCP),
            src_port=str(self.src_port or ''),
            dst_ip=self.dst_ip or '',
            dst_port=str(self.dst_port or ''),
            origin=self.origin or '',
            domain=self.domain or '',
            dns_provider=self.dns_provider or '',
            dns_provider_token=self.dns_provider_token or '',
            site_block=self.site_block or '',
        )


class AddressReservation(Base):
    """A static DHCP lease on a network running a DHCP server."""

    __tablename__ = 'address_reservations'

    id: sqlalchemy.orm.Mapped[str] = sqlalchemy.orm.mapped_column(
        sqlalchemy.String(16),
        primary_key=True,
    )
    network_id: sqlalchemy.orm.Mapped[str] = sqlalchemy.orm.mapped_column(
        sqlalchemy.String(16),
        sqlalchemy.ForeignKey('networks.id', ondelete='CASCADE'),
        nullable=False,
    )
    position: sqlalchemy.orm.Mapped[int] = sqlalchemy.orm.mapped_column(
        sqlalchemy.Integer,
        default=0,
    )
    name: sqlalchemy.orm.Mapped[str] = sqlalchemy.orm.mapped_column(
        sqlalchemy.String,
        default='',
    )
    mac: sqlalchemy.orm.Mapped[str] = sqlalchemy.orm.mapped_column(
        sqlalchemy.String(32),
        default='',
    )
    ip: sqlalchemy.orm.Mapped[str] = sqlalchemy.orm.mapped_column(
        sqlalchemy.String,
        default='',
    )
    host: sqlalchemy.orm.Mapped[str] = sqlalchemy.orm.mapped_column(
        sqlalchemy.String,
        default='',
    )

    network: sqlalchemy.orm.Mapped[Network] = sqlalchemy.orm.relationship(
        'Network',
        back_populates='reservations',
    )

    @classmethod
    def from_settings(
        cls, settings: ReservationSettings, position: int = 0
    ) -> AddressReservation:
        reservation = cls(id=settings.id, position=position)
        reservation.update_from(settings)
        return reservation

    def update_from(self, settings: ReservationSettings) -> None:
        self.name = settings.name
        self.mac = settings.mac
        self.ip = settings.ip
        self.host = settings.host

    def to_settings(self) -> ReservationSettings:
        return ReservationSettings(
            id=self.id,
            name=self.name or '',
            mac=self.mac or '',
            ip=self.ip or '',
            host=self.host or '',
        )
