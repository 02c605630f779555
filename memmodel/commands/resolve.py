"""Resolve subcommand - find what occupies an address."""

import argparse
import json
import logging
from typing import Dict, List, Optional, Tuple

from ..analysis import create_address_resolver
from ..analysis.resolver import AddressLookupResult
from ..core.generator import ReportGenerator
from ..exceptions import MemModelError
from ..models import AddressType, Analysis, SourceLocation
from ..toolchain import Toolchain, resolve_symbol_source
from .common import add_target_arguments, load_config, toolchain_from_args

logger = logging.getLogger(__name__)


def parse_address(value: str) -> int:
    """argparse type for addresses given in hex (0x...) or decimal."""
    try:
        address = int(value, 0)
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"invalid address: {value}") from e
    if address < 0:
        raise argparse.ArgumentTypeError(f"invalid address: {value}")
    return address


def add_resolve_parser(subparsers) -> argparse.ArgumentParser:
    """Add 'resolve' subcommand parser."""
    parser = subparsers.add_parser(
        'resolve',
        help='Show the block, section and symbol at an address',
    )
    add_target_arguments(parser)
    parser.add_argument(
        'addresses',
        nargs='+',
        type=parse_address,
        metavar='ADDRESS',
        help='Address to resolve (hex with 0x prefix or decimal)',
    )
    parser.add_argument(
        '--address-type',
        choices=[address_type.value for address_type in AddressType],
        help='Prefer regions placed by this address type',
    )
    parser.add_argument(
        '--json',
        action='store_true',
        help='Output lookup results as JSON',
    )
    parser.add_argument(
        '--source',
        action='store_true',
        help='Show the source file and line of each resolved symbol',
    )
    return parser


def lookup_sources(analysis: Analysis,
                   results: List[Tuple[int, Optional[AddressLookupResult]]],
                   toolchain: Toolchain, elf_path: str) -> Dict[str, SourceLocation]:
    """Source locations of the symbols found by a lookup, keyed by symbol id.

    Locations already read by nm are reused; addr2line is asked for the rest.
    """
    symbols = {symbol.id: symbol for symbol in analysis.symbols}
    sources = {}
    for _, result in results:
        if result is None or result.symbol is None or result.symbol.id in sources:
            continue
        symbol = symbols.get(result.symbol.id)
        if symbol is None:
            continue
        location = symbol.source or resolve_symbol_source(toolchain, elf_path, symbol)
        if location is not None:
            sources[symbol.id] = location
    return sources


def format_lookup(address: int, result: Optional[AddressLookupResult],
                  source: Optional[SourceLocation] = None) -> str:
    """One-line description of a lookup result."""
    if result is None:
        return f"0x{address:08x}: not found"

    parts = []
    if result.region is not None:
        region = result.region
        parts.append(f"{region.window_name}/{region.block_name} "
                     f"[{region.address_type.value}] +0x{region.offset:x}")
    if result.section is not None:
        parts.append(f"section {result.section.name} +0x{result.section.offset:x}")
    if result.symbol is not None:
        symbol_text = f"symbol {result.symbol.name} +0x{result.symbol.offset:x}"
        if source is not None:
            symbol_text += f" ({source.file}:{source.line})"
        parts.append(symbol_text)
    return f"0x{address:08x}: " + ", ".join(parts)


def _symbol_source(result: Optional[AddressLookupResult],
                   sources: Dict[str, SourceLocation]) -> Optional[SourceLocation]:
    if result is None or result.symbol is None:
        return None
    return sources.get(result.symbol.id)


def run_resolve(args: argparse.Namespace) -> int:
    """
    Run resolve subcommand.

    Returns:
        Exit code (0 for success, 1 for error)
    """
    try:
        config = load_config(args)
        toolchain = toolchain_from_args(args)
        analysis = ReportGenerator(args.elf_path, config, toolchain).build_analysis()
    except MemModelError as e:
        logger.error("%s", e)
        return 1

    resolver = create_address_resolver(analysis)
    address_type = AddressType(args.address_type) if args.address_type else None
    results = [(address, resolver.resolve(address, address_type)) for address in args.addresses]
    sources = lookup_sources(analysis, results, toolchain, args.elf_path) if args.source else {}

    if args.json:
        output = []
        for address, result in results:
            entry = result.to_dict() if result else {'address': address}
            source = _symbol_source(result, sources)
            if source is not None:
                entry['source'] = source.to_dict()
            output.append(entry)
        print(json.dumps(output, indent=2))
    else:
        for address, result in results:
            print(format_lookup(address, result, _symbol_source(result, sources)))
    return 0
