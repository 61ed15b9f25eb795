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

"""Jinja2 template loader and renderer.

Templates are looked up per platform (``linux``, ``systemd``, ``caddy``).
A user override in ``~/routerfabrik/templates/<platform>/`` wins over
the template shipped in the package's ``resources/templates/<platform>/``.
"""

from __future__ import annotations

import functools
import importlib.resources
import shlex
from pathlib import Path

import jinja2


def _get_package_resources_dir() -> Path:
    """Return the path to the package's resources directory."""
    ref = importlib.resources.files('routerfabrik') / 'resources'
    return Path(str(ref))


def _search_paths(platform: str) -> list[str]:
    paths = []
    user_dir = Path.home() / 'routerfabrik' / 'templates' / platform
    if user_dir.is_dir():
        paths.append(str(user_dir))
    paths.append(str(_get_package_resources_dir() / 'templates' / platform))
    return paths


def _shell_args(values) -> str:
    """Join arguments for a shell or systemd ``ExecStart=`` line."""
    return ' '.join(shlex.quote(str(v)) for v in values)


@functools.cache
def _environment(search_paths: tuple[str, ...]) -> jinja2.Environment:
    env = jinja2.Environment(
        loader=jinja2.FileSystemLoader(list(search_paths)),
        undefined=jinja2.StrictUndefined,
        trim_blocks=True,
        lstrip_blocks=True,
        keep_trailing_newline=True,
    )
    env.filters['shell_args'] = _shell_args
    return env


class Jinja2Template:
    """Load and render a Jinja2 template by platform and name."""

    def __init__(self, platform: str, template_name: str) -> None:
        env = _environment(tuple(_search_paths(platform)))
        self._template = env.get_template(template_name)

    def render(self, context: dict) -> str:
        """Render the template with the given context variables."""
        return self._template.render(context)
