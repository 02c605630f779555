#!/usr/bin/env python3
"""
Binutils toolchain discovery and invocation.

Resolves the prefixed GNU tools (for example `arm-none-eabi-nm`) either from
an explicit toolchain directory or from PATH, runs them, and collects raw
sections and symbols for analysis.
"""

import logging
import os
import subprocess
from dataclasses import dataclass
from typing import List, Optional

from ..exceptions import ToolchainError
from ..models import RawSymbol, Section, SourceLocation, Symbol, SymbolKind
from .parsers import (
    apply_load_addresses,
    parse_addr2line_location,
    parse_nm_output,
    parse_objdump_sections,
    parse_readelf_sections,
)

logger = logging.getLogger(__name__)

DEFAULT_TOOLCHAIN_PREFIX = 'arm-none-eabi-'
TOOL_NAMES = ('nm', 'objdump', 'readelf', 'addr2line')


@dataclass(frozen=True)
class Toolchain:
    """Resolved paths of the binutils tools used for analysis"""
    nm: str
    objdump: str
    readelf: str
    addr2line: str
    prefix: str = DEFAULT_TOOLCHAIN_PREFIX
    directory: Optional[str] = None


def _tool_path(tool: str, prefix: str, toolchain_dir: Optional[str]) -> str:
    name = f"{prefix}{tool}"
    if not toolchain_dir:
        return name
    candidate = os.path.join(toolchain_dir, name)
    if not os.path.exists(candidate) and os.path.exists(candidate + '.exe'):
        return candidate + '.exe'
    return candidate


def resolve_toolchain(prefix: Optional[str] = None,
                      toolchain_dir: Optional[str] = None) -> Toolchain:
    """Build tool paths for a prefix, optionally inside a toolchain directory.

    Args:
        prefix: Tool name prefix; defaults to the ARM embedded prefix
        toolchain_dir: Directory holding the tools; PATH is used when omitted

    Returns:
        Toolchain with one path per tool
    """
    if prefix is None:
        prefix = DEFAULT_TOOLCHAIN_PREFIX
    paths = {tool: _tool_path(tool, prefix, toolchain_dir) for tool in TOOL_NAMES}
    logger.debug("Resolved toolchain: %s", paths)
    return Toolchain(prefix=prefix, directory=toolchain_dir, **paths)


def run_tool(command: List[str]) -> str:
    """Run a tool and return its stdout.

    Raises:
        ToolchainError: If the tool is missing or exits with an error
    """
    logger.debug("Running: %s", ' '.join(command))
    try:
        result = subprocess.run(
            command,
            capture_output=True,
            text=True,
            check=False
        )
    except OSError as e:
        raise ToolchainError(f"Failed to run {command[0]}: {e}") from e

    if result.returncode != 0:
        stderr = (result.stderr or '').strip()
        raise ToolchainError(
            f"{command[0]} exited with status {result.returncode}: {stderr}")
    return result.stdout


def collect_sections(toolchain: Toolchain, elf_path: str) -> List[Section]:
    """Read section headers with readelf and load addresses with objdump."""
    sections = parse_readelf_sections(run_tool([toolchain.readelf, '-S', '-W', elf_path]))
    objdump_sections = parse_objdump_sections(run_tool([toolchain.objdump, '-h', elf_path]))
    apply_load_addresses(sections, objdump_sections)
    logger.info("Read %d sections from %s", len(sections), elf_path)
    return sections


def collect_symbols(toolchain: Toolchain, elf_path: str) -> List[RawSymbol]:
    """Read sized symbols with nm, demangled and with source locations."""
    stdout = run_tool([toolchain.nm, '--print-size', '--size-sort', '--demangle', '-l',
                       elf_path])
    symbols = parse_nm_output(stdout)
    logger.info("Read %d symbols from %s", len(symbols), elf_path)
    return symbols


def resolve_symbol_source(toolchain: Toolchain, elf_path: str,
                          symbol: Symbol) -> Optional[SourceLocation]:
    """Look up a symbol's source location with addr2line.

    The Thumb bit is cleared from function addresses. Returns None when the
    tool fails or does not know the address.
    """
    address = symbol.addr
    if symbol.kind == SymbolKind.FUNC:
        address &= ~1
    try:
        stdout = run_tool([toolchain.addr2line, '-e', elf_path, '-f', '-C', hex(address)])
    except ToolchainError as e:
        logger.debug("addr2line failed for %s: %s", symbol.name, e)
        return None
    return parse_addr2line_location(stdout)
