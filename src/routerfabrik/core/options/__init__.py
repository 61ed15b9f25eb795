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

"""Typed option keys and schemas for the reconciler.

This module provides:

- **StrEnum keys**: Type-safe option key names that work as dict keys
- **Dataclass schemas**: Typed defaults shared between CLI and reconciler

Usage::

    from routerfabrik.core.options import ReconcilerOptions

    options = ReconcilerOptions.from_mapping({'hook_mode': 'polling'})
"""

from routerfabrik.core.options._keys import (
    HookMode,
    ReconcilerOption,
    ToolOption,
)
from routerfabrik.core.options._schemas import (
    RECONCILER_DEFAULTS,
    TOOL_PATH_DEFAULTS,
    ReconcilerOptions,
    ToolPathDefaults,
)

__all__ = [
    'RECONCILER_DEFAULTS',
    'TOOL_PATH_DEFAULTS',
    'HookMode',
    'ReconcilerOption',
    'ReconcilerOptions',
    'ToolOption',
    'ToolPathDefaults',
]
