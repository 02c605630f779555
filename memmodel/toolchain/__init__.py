"""Binutils adapters: tool discovery, invocation and output parsing."""

from .elf_info import read_target_info
from .parsers import (
    parse_addr2line_location,
    parse_nm_output,
    parse_objdump_sections,
    parse_readelf_sections,
)
from .runner import (
    Toolchain,
    collect_sections,
    collect_symbols,
    resolve_symbol_source,
    resolve_toolchain,
    run_tool,
)

__all__ = [
    'Toolchain',
    'collect_sections',
    'collect_symbols',
    'parse_addr2line_location',
    'parse_nm_output',
    'parse_objdump_sections',
    'parse_readelf_sections',
    'read_target_info',
    'resolve_symbol_source',
    'resolve_toolchain',
    'run_tool',
]
