#!/usr/bin/env python3
"""
Parsers for binutils text output.

Turns the output of `readelf -S`, `objdump -h`, `nm -S` and `addr2line`
into the flat section and symbol records the analysis consumes.
"""

import os
import re
from typing import Dict, List, NamedTuple, Optional, Tuple

from ..models import RawSymbol, Section, SectionFlags, SourceLocation

_READELF_INDEX = re.compile(r'^\[\s*(\d+)\]')
_OBJDUMP_SECTION = re.compile(
    r'^\s*\d+\s+(\S+)\s+([0-9a-fA-F]+)\s+([0-9a-fA-F]+)\s+([0-9a-fA-F]+)\s+([0-9a-fA-F]+)\s+(\S+)\s*$')
_NM_LINE = re.compile(r'^\s*([0-9a-fA-F]+)\s+([0-9a-fA-F]+)\s+(\S)\s+(.+)$')
_LOCATION = re.compile(r'^(.*):(\d+)(?::\d+)?(?:\s+\(.*\))?$')
_UNKNOWN_LOCATIONS = ('??:0', '??:?')


class ObjdumpSection(NamedTuple):
    """Section header row from objdump -h"""
    name: str
    size: int
    vma: int
    lma: int


def parse_section_flags(raw: str) -> SectionFlags:
    """Decode a readelf flag string such as 'WAX'."""
    return SectionFlags(
        alloc='A' in raw,
        exec='X' in raw,
        write='W' in raw,
        tls='T' in raw,
    )


def _parse_readelf_line(line: str) -> Optional[Section]:
    index_match = _READELF_INDEX.match(line)
    if not index_match:
        return None

    parts = line[index_match.end():].split()
    if len(parts) < 7:
        return None

    name, _section_type, addr_hex, _offset_hex, size_hex = parts[:5]
    rest = parts[6:]
    if len(rest) < 3:
        return None
    flags = rest[0] if len(rest) == 4 else ''

    try:
        address = int(addr_hex, 16)
        size = int(size_hex, 16)
    except ValueError:
        return None

    return Section(
        id=f"sec_{index_match.group(1)}",
        name=name,
        vma_start=address,
        size=size,
        flags=parse_section_flags(flags),
    )


def parse_readelf_sections(stdout: str) -> List[Section]:
    """Parse `readelf -S -W` output into uncategorized sections."""
    sections = []
    for line in stdout.splitlines():
        section = _parse_readelf_line(line.strip())
        if section is not None:
            sections.append(section)
    return sections


def parse_objdump_sections(stdout: str) -> Dict[str, ObjdumpSection]:
    """Parse `objdump -h` output, keyed by section name."""
    sections = {}
    for line in stdout.splitlines():
        trimmed = line.strip()
        if not trimmed or trimmed.startswith(('Idx', 'SYMBOL', 'Sections')):
            continue
        match = _OBJDUMP_SECTION.match(trimmed)
        if not match:
            continue
        name, size_hex, vma_hex, lma_hex = match.group(1, 2, 3, 4)
        sections[name] = ObjdumpSection(name, int(size_hex, 16), int(vma_hex, 16),
                                        int(lma_hex, 16))
    return sections


def apply_load_addresses(sections: List[Section],
                         objdump_sections: Dict[str, ObjdumpSection]) -> None:
    """Copy load addresses from objdump onto readelf sections in place."""
    for section in sections:
        info = objdump_sections.get(section.name)
        if info is not None:
            section.lma_start = info.lma


def parse_location(value: str) -> Optional[SourceLocation]:
    """Parse 'file:line' (optionally ':column' and a discriminator note)."""
    trimmed = value.strip()
    match = _LOCATION.match(trimmed)
    if not match:
        return None
    file_part = match.group(1).strip()
    line_number = int(match.group(2))
    if not file_part or (file_part == '??' and line_number == 0):
        return None
    return SourceLocation(file=os.path.normpath(file_part), line=line_number)


def _split_name_and_location(raw_name: str) -> Tuple[str, Optional[SourceLocation]]:
    normalized = raw_name.rstrip()
    if '\t' in normalized:
        name_part, suffix = normalized.rsplit('\t', 1)
        location = parse_location(suffix)
        if location is not None:
            return name_part.rstrip(), location
    return normalized, None


def parse_nm_output(stdout: str) -> List[RawSymbol]:
    """Parse `nm --print-size` output.

    Undefined symbols and debug entries are skipped. Source locations from
    `nm -l` are attached either from the same line or from a following
    location-only line.
    """
    symbols = []
    pending: Optional[RawSymbol] = None

    for line in stdout.splitlines():
        trimmed = line.strip()
        if not trimmed or trimmed.startswith('Archive ') or ' .debug' in trimmed:
            continue

        match = _NM_LINE.match(trimmed)
        if not match:
            if pending is not None:
                location = parse_location(trimmed)
                if location is not None:
                    pending.source = location
                    pending = None
            continue

        address_hex, size_hex, type_code, name_raw = match.groups()
        if type_code.upper() == 'U':
            pending = None
            continue

        name, location = _split_name_and_location(name_raw)
        symbol = RawSymbol(
            address=int(address_hex, 16),
            size=int(size_hex, 16),
            type_code=type_code,
            name=name,
            raw_name=name,
            source=location,
        )
        symbols.append(symbol)
        pending = None if location else symbol

    return symbols


def parse_addr2line_location(stdout: str) -> Optional[SourceLocation]:
    """Parse the location line of `addr2line -f` output."""
    lines = stdout.strip().splitlines()
    if not lines:
        return None
    location_line = lines[-1].strip()
    if not location_line or location_line in _UNKNOWN_LOCATIONS:
        return None
    return parse_location(location_line)
