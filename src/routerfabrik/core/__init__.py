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

from ._choices import gateway_choices, parent_interface_choices
from ._database import DatabaseManager
from ._repository import NetworkRepository, ObjectKind
from ._util import ParseResult
from ._validation import (
    NetworkConflictError,
    validate_network_unused,
    validate_vlan_id,
)
from ._yaml_reader import YamlReader
from ._yaml_writer import YamlWriter

__all__ = [
    'DatabaseManager',
    'NetworkConflictError',
    'NetworkRepository',
    'ObjectKind',
    'ParseResult',
    'YamlReader',
    'YamlWriter',
    'gateway_choices',
    'parent_interface_choices',
    'validate_network_unused',
    'validate_vlan_id',
]
