#!/usr/bin/env python3
"""
Address resolution.

Answers "what lives at this address?" for a completed analysis: the logical
block region, the section and the symbol covering an arbitrary address.
"""

import bisect
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

from ..models import (
    AddressType,
    Analysis,
    BlockAssignment,
    HardwareBank,
    Section,
    Serializable,
    Symbol,
)

DEFAULT_TYPE_PREFERENCE = (AddressType.RUNTIME, AddressType.EXEC, AddressType.LOAD)


@dataclass(frozen=True)
class AddressLookupRegion(Serializable):  # pylint: disable=too-many-instance-attributes
    """Logical block region containing the address"""
    address_type: AddressType
    window_id: str
    window_name: str
    block_id: str
    block_name: str
    start: int
    end: int
    size: int
    offset: int
    block_offset: int
    window_offset: Optional[int] = None
    bank_id: Optional[str] = None
    bank_name: Optional[str] = None


@dataclass(frozen=True)
class AddressLookupSection(Serializable):
    """Section containing the address"""
    id: str
    name: str
    address_type: AddressType
    start: int
    end: int
    size: int
    offset: int


@dataclass(frozen=True)
class AddressLookupSymbol(Serializable):
    """Symbol covering the address"""
    id: str
    name: str
    name_mangled: str
    address: int
    size: int
    offset: int


@dataclass(frozen=True)
class AddressLookupResult(Serializable):
    """Everything known about an address"""
    address: int
    region: Optional[AddressLookupRegion] = None
    section: Optional[AddressLookupSection] = None
    symbol: Optional[AddressLookupSymbol] = None


@dataclass(frozen=True)
class _Span:
    start: int
    end: int
    address_type: AddressType
    section: Section
    assignment: Optional[BlockAssignment] = None


def build_type_preference(preferred: Optional[AddressType] = None) -> List[AddressType]:
    """Order in which address types are tried; the preferred type goes first."""
    if preferred is None:
        return list(DEFAULT_TYPE_PREFERENCE)
    return [preferred] + [kind for kind in DEFAULT_TYPE_PREFERENCE if kind != preferred]


class _SpanIndex:
    """Spans sorted by start address, with per-type views"""

    def __init__(self, spans: Iterable[_Span]):
        self.spans = sorted(spans, key=lambda span: span.start)
        self.starts = [span.start for span in self.spans]
        self.by_type: Dict[AddressType, List[_Span]] = {kind: [] for kind in AddressType}
        for span in self.spans:
            self.by_type[span.address_type].append(span)
        self.type_starts = {
            kind: [span.start for span in spans] for kind, spans in self.by_type.items()}

    @staticmethod
    def _first_containing(spans: List[_Span], starts: List[int], address: int) -> Optional[_Span]:
        limit = bisect.bisect_right(starts, address)
        for span in spans[:limit]:
            if span.start <= address < span.end:
                return span
        return None

    def find(self, address: int, preference: Iterable[AddressType]) -> Optional[_Span]:
        """First span of the most preferred type containing the address,
        else the earliest containing span of any type."""
        for kind in preference:
            span = self._first_containing(self.by_type[kind], self.type_starts[kind], address)
            if span is not None:
                return span
        return self._first_containing(self.spans, self.starts, address)


class AddressResolver:
    """Resolves addresses against an analysis' blocks, sections and symbols"""

    def __init__(self, analysis: Analysis):
        """Precompute sorted lookup tables for the analysis."""
        config = analysis.config
        self.windows = config.windows_by_id()
        self.blocks = config.blocks_by_id()
        self.bank_by_window: Dict[str, HardwareBank] = {}
        for bank in config.hardware_banks:
            for window_id in bank.window_ids:
                self.bank_by_window.setdefault(window_id, bank)

        self._regions = _SpanIndex(self._assignment_spans(analysis.sections))
        self._sections = _SpanIndex(self._section_spans(analysis.sections))
        self._symbols = sorted(analysis.symbols, key=lambda symbol: symbol.addr)
        self._symbol_addrs = [symbol.addr for symbol in self._symbols]

    @staticmethod
    def _assignment_spans(sections: Iterable[Section]) -> List[_Span]:
        spans = []
        for section in sections:
            for assignment in section.block_assignments:
                if assignment.size <= 0:
                    continue
                spans.append(_Span(assignment.address, assignment.end,
                                   assignment.address_type, section, assignment))
        return spans

    @staticmethod
    def _section_spans(sections: Iterable[Section]) -> List[_Span]:
        spans = []
        for section in sections:
            if not section.occupies_memory:
                continue
            if section.vma_start is not None:
                end = section.vma_start + section.size
                spans.append(_Span(section.vma_start, end, AddressType.RUNTIME, section))
                if section.flags.exec:
                    spans.append(_Span(section.vma_start, end, AddressType.EXEC, section))
            if section.lma_start is not None:
                spans.append(_Span(section.lma_start, section.lma_start + section.size,
                                   AddressType.LOAD, section))
        return spans

    def find_symbol(self, address: int) -> Optional[Symbol]:
        """Find the nearest symbol at or below the address that covers it.

        Zero-size symbols only match their exact address.
        """
        index = bisect.bisect_right(self._symbol_addrs, address) - 1
        if index < 0:
            return None
        candidate = self._symbols[index]
        offset = address - candidate.addr
        if candidate.size > 0:
            return candidate if offset < candidate.size else None
        return candidate if offset == 0 else None

    def _build_region(self, address: int, span: _Span) -> AddressLookupRegion:
        assignment = span.assignment
        window = self.windows.get(assignment.window_id)
        block = self.blocks.get(assignment.block_id)
        bank = self.bank_by_window.get(assignment.window_id)
        offset = address - span.start
        window_offset = None
        if window is not None and window.base_address is not None:
            window_offset = address - window.base_address

        return AddressLookupRegion(
            address_type=assignment.address_type,
            window_id=assignment.window_id,
            window_name=window.display_name if window else assignment.window_id,
            block_id=assignment.block_id,
            block_name=block.display_name if block else assignment.block_id,
            bank_id=bank.id if bank else None,
            bank_name=bank.display_name if bank else None,
            start=span.start,
            end=span.end,
            size=span.end - span.start,
            offset=offset,
            block_offset=offset,
            window_offset=window_offset,
        )

    def resolve(self, address: int,
                address_type: Optional[AddressType] = None) -> Optional[AddressLookupResult]:
        """Resolve an address to its region, section and symbol.

        Args:
            address: Address to look up
            address_type: Preferred address type, tried before the others

        Returns:
            AddressLookupResult, or None when nothing covers the address
        """
        preference = build_type_preference(address_type)
        region_span = self._regions.find(address, preference)
        section_span = self._sections.find(address, preference)
        symbol = self.find_symbol(address)

        if region_span is None and section_span is None and symbol is None:
            return None

        region = self._build_region(address, region_span) if region_span else None
        section = None
        if section_span is not None:
            section = AddressLookupSection(
                id=section_span.section.id,
                name=section_span.section.name,
                address_type=section_span.address_type,
                start=section_span.start,
                end=section_span.end,
                size=section_span.end - section_span.start,
                offset=address - section_span.start,
            )
        symbol_info = None
        if symbol is not None:
            symbol_info = AddressLookupSymbol(
                id=symbol.id,
                name=symbol.name,
                name_mangled=symbol.name_mangled,
                address=symbol.addr,
                size=symbol.size,
                offset=address - symbol.addr,
            )

        return AddressLookupResult(address=address, region=region,
                                   section=section, symbol=symbol_info)


def create_address_resolver(analysis: Analysis) -> AddressResolver:
    """Build an address resolver for a completed analysis."""
    return AddressResolver(analysis)
