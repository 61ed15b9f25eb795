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

import contextlib
import logging
import pathlib

import sqlalchemy
import sqlalchemy.orm

from . import objects
from ._yaml_reader import YamlReader
from ._yaml_writer import YamlWriter
from .options import ReconcilerOptions

logger = logging.getLogger(__name__)


class DatabaseManager:
    def __init__(self, connection_string='sqlite:///:memory:'):
        self.engine = sqlalchemy.create_engine(connection_string, echo=False)
        self._session_factory = sqlalchemy.orm.sessionmaker(self.engine)
        self.options = ReconcilerOptions()
        objects.enable_sqlite_fks(self.engine)
        self._reset_db()

    @contextlib.contextmanager
    def session(self):
        """Create a new database session. The transaction is committed when the contextmanager exits, or rolled back on error."""
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def load(self, path):
        path = pathlib.Path(path)
        logger.debug('Loading networks from %s', path)
        match path.suffix:
            case '.yaml' | '.yml':
                self._load_yaml(path)
            case _:
                raise ValueError(f'Unsupported file extension: {path}')
        return path

    def save(self, path):
        path = pathlib.Path(path)
        logger.debug('Saving networks to %s', path)
        match path.suffix:
            case '.yaml' | '.yml':
                self._save_yaml(path)
            case _:
                raise ValueError(f'Unsupported file extension: {path}')

    def load_data(self, data):
        """Replace the database content with an already parsed document."""
        self._import(YamlReader().parse_data(data))

    def _import(self, data):
        # Options are validated before the database is touched.
        options = ReconcilerOptions.from_mapping(data.options)
        self._reset_db()
        self.options = options
        with self.session() as session:
            session.add_all(data.networks)
        logger.info('Loaded %d networks', len(data.networks))

    def _save_yaml(self, output_path):
        writer = YamlWriter()
        with self.session() as session:
            writer.write(session, self.options, output_path)

    def _load_yaml(self, input_path):
        reader = YamlReader()
        result = reader.parse(input_path)
        self._import(result)

    def _reset_db(self):
        logger.debug('Resetting database')
        objects.Base.metadata.drop_all(self.engine)
        objects.Base.metadata.create_all(self.engine)
