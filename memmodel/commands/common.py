"""Arguments and helpers shared by the subcommands."""

import argparse

from ..config import load_memory_map, load_memory_map_from_file
from ..models import MemoryMapConfig
from ..toolchain import Toolchain, resolve_toolchain
from ..toolchain.runner import DEFAULT_TOOLCHAIN_PREFIX


def add_target_arguments(parser: argparse.ArgumentParser) -> None:
    """Add the ELF path, target selection and toolchain arguments."""
    parser.add_argument('elf_path', help='Path to the firmware ELF file')

    target_group = parser.add_mutually_exclusive_group(required=True)
    target_group.add_argument(
        '--target',
        metavar='ID',
        help='Built-in target memory map (e.g. teensy41)',
    )
    target_group.add_argument(
        '--config',
        metavar='PATH',
        help='Path to a memory map JSON file',
    )

    parser.add_argument(
        '--toolchain-prefix',
        default=DEFAULT_TOOLCHAIN_PREFIX,
        help='Binutils tool prefix (default: %(default)s)',
    )
    parser.add_argument(
        '--toolchain-dir',
        metavar='DIR',
        help='Directory containing the binutils tools (default: search PATH)',
    )


def load_config(args: argparse.Namespace) -> MemoryMapConfig:
    """Load the memory map selected by --target or --config."""
    if args.config:
        return load_memory_map_from_file(args.config)
    return load_memory_map(args.target)


def toolchain_from_args(args: argparse.Namespace) -> Toolchain:
    """Resolve the toolchain selected on the command line."""
    return resolve_toolchain(args.toolchain_prefix, args.toolchain_dir)
