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

"""Routing table allocation for one compiler pass."""

from __future__ import annotations

DEFAULT_FIRST_TABLE = 100


class TableAllocator:
    """Maps interface names to private routing table ids.

    Ids are handed out sequentially from *first* in the order interfaces
    are first seen, so the same network list always yields the same
    tables. A fresh allocator is used for every pass.
    """

    def __init__(self, first: int = DEFAULT_FIRST_TABLE) -> None:
        if first < 1:
            raise ValueError('Routing table ids start at 1')
        self._next = first
        self._tables: dict[str, int] = {}

    def ensure_table(self, name: str) -> int:
        table = self._tables.get(name)
        if table is None:
            table = self._tables[name] = self._next
            self._next += 1
        return table

    def get_table(self, name: str) -> int | None:
        """Return the table of *name*, or None if none was allocated."""
        return self._tables.get(name)

    def items(self) -> list[tuple[str, int]]:
        return list(self._tables.items())
