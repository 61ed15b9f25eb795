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

"""CLI entry point for the network plan compiler."""

import argparse
import asyncio
import dataclasses
import logging
import sys
import time

import routerfabrik
import routerfabrik.core
import routerfabrik.driver
from routerfabrik.compiler import CompilerStatus

__author__ = 'Linuxfabrik GmbH, Zurich/Switzerland'

DESCRIPTION = """RouterFabrik network plan compiler. Loads a network file and compiles the netplan
document, the nftables rules and the DHCP hook of all logical networks it describes.
Without --apply, all generated files are written below DESTDIR and no command is run."""

DEFAULT_DESTDIR = '.'


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        prog='routerfabrik-compile',
        description=DESCRIPTION,
    )

    parser.add_argument(
        '-f',
        '--file',
        required=True,
        dest='FILE',
        help='path to the .yaml network file',
    )

    parser.add_argument(
        '-d',
        '--destdir',
        default=DEFAULT_DESTDIR,
        dest='DESTDIR',
        help='output root directory for generated files. Default: %(default)s',
    )

    parser.add_argument(
        '--apply',
        action='store_true',
        dest='APPLY',
        help='write to the system paths and activate the result',
    )

    parser.add_argument(
        '-v',
        '--verbose',
        action='count',
        default=0,
        dest='VERBOSE',
        help='verbose output (repeat for higher verbosity)',
    )

    parser.add_argument(
        '-V',
        '--version',
        action='version',
        version=f'%(prog)s: v{routerfabrik.__version__} by {__author__}',
    )

    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)
    t_start = time.monotonic()

    match args.VERBOSE:
        case 0:
            level = logging.WARNING
        case 1:
            level = logging.INFO
        case _:
            level = logging.DEBUG
    logging.basicConfig(level=level, format='%(levelname)s %(name)s: %(message)s')

    print(f'Loading networks from {args.FILE} ...', file=sys.stderr)

    try:
        db = routerfabrik.core.DatabaseManager()
        db.load(args.FILE)
    except (OSError, ValueError) as e:
        print(f'Error: failed to load networks from {args.FILE}: {e}', file=sys.stderr)
        return 1

    options = db.options
    if not args.APPLY:
        options = dataclasses.replace(options, root=args.DESTDIR, dry_run=True)

    driver = routerfabrik.driver.CompilerDriver(db, options)

    print('Compiling ...', file=sys.stderr)
    result = asyncio.run(driver.run())

    for err in result.plan.errors:
        print(f'Error: {err}', file=sys.stderr)
    for warning in result.warnings:
        print(f'Warning: {warning}', file=sys.stderr)
    for path in result.report.written:
        print(f'Wrote {path}', file=sys.stderr)

    elapsed = time.monotonic() - t_start
    hours, remainder = divmod(int(elapsed), 3600)
    minutes, seconds = divmod(remainder, 60)
    print(f'Compile time: {hours:02d}:{minutes:02d}:{seconds:02d}', file=sys.stderr)

    if result.status == CompilerStatus.ERROR:
        return 2
    return 0


if __name__ == '__main__':
    sys.exit(main())
