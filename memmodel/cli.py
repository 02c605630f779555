#!/usr/bin/env python3
"""
memmodel command line interface.

Subcommands:
  report   Memory usage report for a firmware ELF
  resolve  Block, section and symbol at an address
  targets  List built-in target memory maps
"""

import argparse
import logging
import sys
from importlib.metadata import PackageNotFoundError, version

from .commands.report import add_report_parser, run_report
from .commands.resolve import add_resolve_parser, run_resolve
from .config import list_targets


def configure_logging(verbose: bool = False) -> None:
    """Configure basic logging for the CLI."""
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format='%(levelname)s: %(message)s'
    )


def _package_version() -> str:
    try:
        return version('memmodel')
    except PackageNotFoundError:
        return 'unknown'


def run_targets(_args: argparse.Namespace) -> int:
    """Print the built-in target ids."""
    for target_id in list_targets():
        print(target_id)
    return 0


def build_parser() -> argparse.ArgumentParser:
    """Create the top-level argument parser with all subcommands."""
    parser = argparse.ArgumentParser(
        prog='memmodel',
        description='Firmware memory model analysis for embedded targets',
    )
    parser.add_argument('--version', action='version',
                        version=f'%(prog)s {_package_version()}')
    parser.add_argument('-v', '--verbose', action='store_true',
                        help='Enable informational logging')

    subparsers = parser.add_subparsers(dest='command', metavar='COMMAND')
    subparsers.required = True

    add_report_parser(subparsers).set_defaults(func=run_report)
    add_resolve_parser(subparsers).set_defaults(func=run_resolve)
    subparsers.add_parser(
        'targets', help='List built-in target memory maps').set_defaults(func=run_targets)
    return parser


def main(argv=None) -> int:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.verbose)
    return args.func(args)


if __name__ == '__main__':
    sys.exit(main())
