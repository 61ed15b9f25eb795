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

"""Network repository: the mutation surface over the object database.

Every mutation is validated before it is committed. The compiler never
sees the ORM objects, only the immutable snapshot returned by
:meth:`NetworkRepository.snapshot`.
"""

from __future__ import annotations

import dataclasses
import enum
import logging

import sqlalchemy

from . import objects
from ._util import (
    NETWORK_ID_PREFIX,
    PORT_FORWARD_ID_PREFIX,
    RESERVATION_ID_PREFIX,
    AddressFamily,
    generate_id,
)
from ._validation import (
    validate_addresses,
    validate_gateway_address,
    validate_interface_name,
    validate_network_unused,
    validate_vlan_id,
)

logger = logging.getLogger(__name__)


class ObjectKind(enum.StrEnum):
    NETWORK = 'network'
    PORT_FORWARD = 'port_forward'
    RESERVATION = 'reservation'


_MODELS = {
    ObjectKind.NETWORK: objects.Network,
    ObjectKind.PORT_FORWARD: objects.PortForward,
    ObjectKind.RESERVATION: objects.AddressReservation,
}

Descriptor = (
    objects.NetworkSettings | objects.PortForwardSettings | objects.ReservationSettings
)


def _kind_of(descriptor: Descriptor) -> ObjectKind:
    match descriptor:
        case objects.NetworkSettings():
            return ObjectKind.NETWORK
        case objects.PortForwardSettings():
            return ObjectKind.PORT_FORWARD
        case objects.ReservationSettings():
            return ObjectKind.RESERVATION
    raise TypeError(f'Unsupported descriptor: {type(descriptor).__name__}')


def _validated_network(settings: objects.NetworkSettings) -> objects.NetworkSettings:
    """Normalize and check the fields that can be checked in isolation."""
    vlan_id = validate_vlan_id(settings.vlan_id)
    parent_interface = validate_interface_name(settings.parent_interface)
    name = settings.name or f'VLAN {vlan_id}'
    addresses = tuple(validate_addresses(settings.addresses))
    gateway = settings.gateway
    if isinstance(gateway, objects.GatewayManual):
        gateway = objects.GatewayManual(
            ipv4=validate_gateway_address(gateway.ipv4, AddressFamily.IPV4),
            ipv6=validate_gateway_address(gateway.ipv6, AddressFamily.IPV6),
        )
    elif isinstance(gateway, objects.GatewayViaNetwork):
        if gateway.network_id == settings.id:
            raise ValueError('A network cannot be its own gateway')
    settings = dataclasses.replace(
        settings,
        vlan_id=vlan_id,
        name=name,
        parent_interface=parent_interface,
        addresses=addresses,
        gateway=gateway,
    )
    # the VLAN sub-interface name is bounded by the same length limit
    validate_interface_name(settings.interface_name)
    return settings


class NetworkRepository:
    """CRUD over networks and their port forwards and reservations."""

    def __init__(self, db) -> None:
        self._db = db

    def list(self, kind: ObjectKind, parent_id: str | None = None) -> list:
        """Return the settings of all objects of *kind*, in insertion order."""
        model = _MODELS[ObjectKind(kind)]
        stmt = sqlalchemy.select(model).order_by(model.position)
        if parent_id is not None and model is not objects.Network:
            stmt = stmt.where(model.network_id == parent_id)
        with self._db.session() as session:
            return [obj.to_settings() for obj in session.scalars(stmt).all()]

    def snapshot(self) -> list[objects.NetworkSettings]:
        return self.list(ObjectKind.NETWORK)

    def get(self, object_id: str) -> Descriptor | None:
        with self._db.session() as session:
            for model in _MODELS.values():
                obj = session.get(model, object_id)
                if obj is not None:
                    return obj.to_settings()
        return None

    def create(self, parent_id: str | None, descriptor: Descriptor) -> str:
        """Persist *descriptor* and return its id.

        Networks are created with ``parent_id=None``. Port forwards and
        reservations need the id of their network.

        Raises:
            NetworkConflictError: The parent interface and VLAN id are
                already used by another network.
            ValueError: The descriptor is invalid or the parent is missing.
        """
        kind = _kind_of(descriptor)
        with self._db.session() as session:
            taken = set(session.scalars(sqlalchemy.select(_MODELS[kind].id)).all())
            if kind is ObjectKind.NETWORK:
                if parent_id is not None:
                    raise ValueError('Networks have no parent')
                if descriptor.id in taken:
                    raise ValueError(f'Duplicate id {descriptor.id!r}')
                settings = dataclasses.replace(
                    descriptor,
                    id=descriptor.id or generate_id(NETWORK_ID_PREFIX, taken),
                )
                settings = _validated_network(settings)
                existing = session.scalars(sqlalchemy.select(objects.Network)).all()
                validate_network_unused(
                    existing, settings.parent_interface, settings.vlan_id
                )
                position = len(existing)
                session.add(objects.Network.from_settings(settings, position))
                logger.info('Created network %s', settings.label)
                return settings.id

            network = session.get(objects.Network, parent_id) if parent_id else None
            if network is None:
                raise ValueError(f'Network {parent_id!r} not found')
            prefix = (
                PORT_FORWARD_ID_PREFIX
                if kind is ObjectKind.PORT_FORWARD
                else RESERVATION_ID_PREFIX
            )
            if descriptor.id in taken:
                raise ValueError(f'Duplicate id {descriptor.id!r}')
            settings = dataclasses.replace(
                descriptor, id=descriptor.id or generate_id(prefix, taken)
            )
            if kind is ObjectKind.PORT_FORWARD:
                if network.network_type != objects.NetworkType.INTERNET:
                    raise ValueError('Port forwards belong to Internet networks')
                network.port_forwards.append(
                    objects.PortForward.from_settings(
                        settings, len(network.port_forwards)
                    )
                )
            else:
                network.reservations.append(
                    objects.AddressReservation.from_settings(
                        settings, len(network.reservations)
                    )
                )
            logger.info('Created %s %s under network %s', kind, settings.id, parent_id)
            return settings.id

    def update(self, descriptor: Descriptor) -> None:
        """Overwrite the stored object with the same id.

        Updating a network leaves its port forwards and reservations
        untouched. Re-saving a network with its own parent interface and
        VLAN id is not a conflict.
        """
        kind = _kind_of(descriptor)
        with self._db.session() as session:
            obj = session.get(_MODELS[kind], descriptor.id)
            if obj is None:
                raise ValueError(f'{kind} {descriptor.id!r} not found')
            if kind is ObjectKind.NETWORK:
                descriptor = _validated_network(descriptor)
                existing = session.scalars(sqlalchemy.select(objects.Network)).all()
                validate_network_unused(
                    existing,
                    descriptor.parent_interface,
                    descriptor.vlan_id,
                    descriptor.id,
                )
            obj.update_from(descriptor)
            logger.info('Updated %s %s', kind, descriptor.id)

    def delete(self, object_id: str) -> bool:
        """Delete an object, cascading from networks to their children."""
        with self._db.session() as session:
            for kind, model in _MODELS.items():
                obj = session.get(model, object_id)
                if obj is not None:
                    session.delete(obj)
                    logger.info('Deleted %s %s', kind, object_id)
                    return True
        return False
