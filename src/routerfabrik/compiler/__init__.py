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

"""Plan compiler: logical networks in, netplan/nftables/hook artifacts out."""

from ._base import BaseCompiler, CompilerStatus
from ._interface_builder import InterfaceBuilder
from ._plan import BringUp, CompiledPlan, HookTarget, ProxyPorts
from ._plan_compiler import PlanCompiler
from ._table_allocator import TableAllocator

__all__ = [
    'BaseCompiler',
    'BringUp',
    'CompiledPlan',
    'CompilerStatus',
    'HookTarget',
    'InterfaceBuilder',
    'PlanCompiler',
    'ProxyPorts',
    'TableAllocator',
]
