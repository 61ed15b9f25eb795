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

"""BaseCompiler: error/warning tracking for all compilers."""

from __future__ import annotations

import logging
from enum import IntEnum

logger = logging.getLogger(__name__)


class CompilerStatus(IntEnum):
    """Compiler exit status codes."""

    SUCCESS = 0
    WARNING = 1
    ERROR = 2


class BaseCompiler:
    """Base class providing error/warning tracking for all compilers.

    Messages can be attributed to an entity (anything with ``id`` and
    ``label`` attributes, usually a NetworkSettings), so the messages of
    one network can be looked up after the pass.
    """

    def __init__(self) -> None:
        self._status: CompilerStatus = CompilerStatus.SUCCESS
        self._errors: list[str] = []
        self._warnings: list[str] = []
        self._entity_messages: dict[str, list[str]] = {}

    @property
    def status(self) -> CompilerStatus:
        return self._status

    def _record(self, entity_or_msg, msg: str | None, bucket: list[str]) -> str:
        if msg is None:
            text = str(entity_or_msg)
        else:
            label = getattr(entity_or_msg, 'label', '')
            text = f'Network {label}: {msg}' if label else msg
            entity_id = getattr(entity_or_msg, 'id', '')
            if entity_id:
                self._entity_messages.setdefault(entity_id, []).append(text)
        bucket.append(text)
        return text

    def error(self, entity_or_msg, msg: str | None = None) -> None:
        """Record an error, optionally associated with an entity."""
        text = self._record(entity_or_msg, msg, self._errors)
        logger.error('%s', text)
        self._status = CompilerStatus.ERROR

    def warning(self, entity_or_msg, msg: str | None = None) -> None:
        """Record a warning, optionally associated with an entity."""
        text = self._record(entity_or_msg, msg, self._warnings)
        logger.warning('%s', text)
        if self._status == CompilerStatus.SUCCESS:
            self._status = CompilerStatus.WARNING

    def get_errors(self) -> list[str]:
        return list(self._errors)

    def get_warnings(self) -> list[str]:
        return list(self._warnings)

    def get_warnings_for(self, entity_id: str) -> list[str]:
        """Return the errors and warnings of one entity, in emission order."""
        return list(self._entity_messages.get(entity_id, []))
