#!/usr/bin/env python3
"""
Symbol assignment and alias deduplication.

Each nm symbol is attached to the section containing its address and projected
onto every logical block that section contributes to. Aliases that nm reports
separately (weak/strong pairs, multiple mangled names) are merged.
"""

import bisect
import logging
from dataclasses import replace
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from ..models import RawSymbol, Section, Symbol, SymbolKind, SymbolLocation
from .blocks import select_primary_assignment

logger = logging.getLogger(__name__)

FUNC_TYPE_CODES = frozenset({'T', 'W'})
OBJECT_TYPE_CODES = frozenset({'D', 'B', 'R', 'G', 'S'})


def classify_symbol_kind(type_code: str) -> SymbolKind:
    """Map an nm type code to a symbol kind."""
    upper = type_code.upper()
    if upper in FUNC_TYPE_CODES:
        return SymbolKind.FUNC
    if upper in OBJECT_TYPE_CODES:
        return SymbolKind.OBJECT
    if upper == 'N':
        return SymbolKind.SECTION
    return SymbolKind.OTHER


def is_weak(type_code: str) -> bool:
    """Weak symbols are reported as 'w' or 'W'"""
    return type_code in ('w', 'W')


def is_static(type_code: str) -> bool:
    """Local (static) symbols use lower-case type codes"""
    return type_code == type_code.lower()


def make_symbol_id(address: int, size: int, name: str) -> str:
    """Content-derived symbol identifier, stable under input re-ordering."""
    return f"{address:08x}:{size:x}:{name}"


class SectionIndex:
    """Address lookup over the sections that occupy memory"""

    def __init__(self, sections: Sequence[Section]):
        allocated = [section for section in sections
                     if section.occupies_memory and section.vma_start is not None]
        self._sorted = sorted(allocated, key=lambda s: s.vma_start)
        self._starts = [s.vma_start for s in self._sorted]

    def find(self, address: int) -> Optional[Section]:
        """Find the section containing a virtual address.

        Args:
            address: Symbol address

        Returns:
            Containing section, or None if no section covers the address
        """
        index = bisect.bisect_right(self._starts, address) - 1
        if index >= 0 and self._sorted[index].contains(address):
            return self._sorted[index]
        # Overlapping sections: an earlier-starting section may still cover it
        for section in self._sorted[:max(index, 0)]:
            if section.contains(address):
                return section
        return None


def locate_in_blocks(section: Section,
                     address: int) -> Tuple[List[SymbolLocation], Optional[SymbolLocation]]:
    """Project a symbol address onto each block assignment of its section.

    Returns:
        Tuple of (locations, primary_location)
    """
    locations = []
    primary_location = None
    primary_assignment = select_primary_assignment(section)
    offset = address - section.vma_start

    for assignment in section.block_assignments:
        if offset < 0 or offset >= assignment.size:
            continue
        location = SymbolLocation(
            window_id=assignment.window_id,
            block_id=assignment.block_id,
            address_type=assignment.address_type,
            addr=assignment.address + offset,
        )
        locations.append(location)
        if primary_location is None and assignment is primary_assignment:
            primary_location = location

    if primary_location is None and locations:
        primary_location = locations[0]
    return locations, primary_location


def build_symbol(raw: RawSymbol, section: Optional[Section]) -> Symbol:
    """Create the assigned symbol for one raw nm record."""
    locations: List[SymbolLocation] = []
    primary_location = None
    primary_assignment = select_primary_assignment(section)

    if section is not None and section.block_assignments:
        locations, primary_location = locate_in_blocks(section, raw.address)

    block_id = primary_location.block_id if primary_location else None
    window_id = primary_location.window_id if primary_location else None
    if block_id is None and primary_assignment is not None:
        block_id = primary_assignment.block_id
        window_id = primary_assignment.window_id

    return Symbol(
        id=make_symbol_id(raw.address, raw.size, raw.name),
        name=raw.name,
        name_mangled=raw.raw_name or raw.name,
        kind=classify_symbol_kind(raw.type_code),
        addr=raw.address,
        size=raw.size,
        section_id=section.id if section else None,
        block_id=block_id,
        window_id=window_id,
        is_weak=is_weak(raw.type_code),
        is_static=is_static(raw.type_code),
        is_tls=bool(section and section.flags.tls),
        source=raw.source,
        primary_location=primary_location,
        locations=locations,
    )


def merge_symbols(existing: Symbol, other: Symbol) -> Symbol:
    """Merge an alias into an already-seen symbol with the same identity."""
    aliases = list(existing.aliases)
    for alias in [other.name_mangled, *other.aliases]:
        if alias and alias != existing.name_mangled and alias not in aliases:
            aliases.append(alias)

    merged_locations: Dict[tuple, SymbolLocation] = {}
    for location in [*existing.locations, *other.locations]:
        merged_locations.setdefault(location.key, location)

    primary_location = existing.primary_location or other.primary_location
    block_id = existing.block_id
    window_id = existing.window_id
    if not block_id and primary_location:
        block_id = primary_location.block_id
    if not window_id and primary_location:
        window_id = primary_location.window_id

    return replace(
        existing,
        is_weak=existing.is_weak or other.is_weak,
        is_static=existing.is_static or other.is_static,
        is_tls=existing.is_tls or other.is_tls,
        aliases=aliases,
        locations=list(merged_locations.values()),
        primary_location=primary_location,
        block_id=block_id,
        window_id=window_id,
        section_id=existing.section_id or other.section_id,
        source=existing.source or other.source,
    )


def deduplicate_symbols(symbols: Iterable[Symbol]) -> List[Symbol]:
    """Merge symbols sharing (address, size, name), keeping first-seen order."""
    merged: Dict[Tuple[int, int, str], Symbol] = {}
    for symbol in symbols:
        key = (symbol.addr, symbol.size, symbol.name)
        existing = merged.get(key)
        merged[key] = symbol if existing is None else merge_symbols(existing, symbol)
    return list(merged.values())


def assign_symbols(raw_symbols: Iterable[RawSymbol],
                   sections: Sequence[Section]) -> Tuple[List[Symbol], List[str]]:
    """Assign raw symbols to sections and blocks, then merge aliases.

    Args:
        raw_symbols: Flat nm records
        sections: Block-assigned sections

    Returns:
        Tuple of (symbols, warnings). A symbol outside every section is kept
        without section or location and reported in the warnings.
    """
    index = SectionIndex(sections)
    warnings = []
    assigned = []

    for raw in raw_symbols:
        section = index.find(raw.address)
        if section is None:
            message = (f"Symbol {raw.name} at 0x{raw.address:x} "
                       "does not fall within any known section.")
            logger.debug(message)
            warnings.append(message)
        assigned.append(build_symbol(raw, section))

    symbols = deduplicate_symbols(assigned)
    logger.debug("Assigned %d symbols (%d after alias merge)", len(assigned), len(symbols))
    return symbols, warnings
