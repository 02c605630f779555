#!/usr/bin/env python3
"""
C++ template grouping.

Groups symbols by template base name so the cost of every instantiation of
`std::array<...>` or `Foo<...>` can be seen together.
"""

import re
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple

from ..models import Serializable, Symbol

NON_TEMPLATE_GROUP_PREFIX = '[non-template]'
_BASE_NAME_END = re.compile(r'[A-Za-z0-9_>\])]$')


@dataclass(frozen=True)
class TemplateGroupSymbol(Serializable):
    """One symbol inside a template group"""
    symbol_id: str
    name: str
    size_bytes: int
    specialization_key: Optional[str]
    addr: int
    section_id: Optional[str] = None
    block_id: Optional[str] = None


@dataclass(frozen=True)
class TemplateSpecialization(Serializable):
    """Symbols sharing one set of template arguments"""
    key: Optional[str]
    symbols: Tuple[TemplateGroupSymbol, ...]
    symbol_count: int
    size_bytes: int
    unique_size_bytes: int


@dataclass(frozen=True)
class TemplateGroup(Serializable):  # pylint: disable=too-many-instance-attributes
    """All instantiations of one template (or a single plain symbol)"""
    id: str
    display_name: str
    is_template: bool
    symbols: Tuple[TemplateGroupSymbol, ...]
    specializations: Tuple[TemplateSpecialization, ...]
    symbol_count: int
    size_bytes: int
    unique_size_bytes: int
    largest_symbol_size_bytes: int
    smallest_symbol_size_bytes: int


def parse_template_signature(name: str) -> Optional[Tuple[str, Optional[str]]]:
    """Split `Base<args>...` into (base, args); None for non-template names."""
    lt_index = name.find('<')
    if lt_index == -1:
        return None
    base = name[:lt_index].strip()
    if not base or not _BASE_NAME_END.search(base):
        return None

    depth = 0
    for index in range(lt_index, len(name)):
        char = name[index]
        if char == '<':
            depth += 1
        elif char == '>':
            depth -= 1
            if depth == 0:
                specialization = name[lt_index + 1:index].strip()
                return base, specialization or None
    return None


@dataclass
class _GroupBuilder:
    display_name: str
    is_template: bool
    symbols: List[TemplateGroupSymbol] = field(default_factory=list)
    specializations: Dict[Optional[str], List[TemplateGroupSymbol]] = field(default_factory=dict)


def _unique_size(symbols: Iterable[TemplateGroupSymbol]) -> int:
    """Bytes counted once per (section, address), keeping the largest size."""
    sizes: Dict[Tuple[Optional[str], int], int] = {}
    for symbol in symbols:
        key = (symbol.section_id, symbol.addr)
        sizes[key] = max(sizes.get(key, 0), symbol.size_bytes)
    return sum(sizes.values())


def build_template_groups(symbols: Iterable[Symbol]) -> List[TemplateGroup]:
    """Group symbols by template base name, in first-seen order."""
    groups: Dict[str, _GroupBuilder] = {}

    for symbol in symbols:
        parsed = parse_template_signature(symbol.name or '')
        if parsed is None:
            group_id = f"{NON_TEMPLATE_GROUP_PREFIX} {symbol.name}"
            display_name, key = symbol.name, None
        else:
            group_id = display_name = parsed[0]
            key = parsed[1]

        group = groups.get(group_id)
        if group is None:
            group = groups[group_id] = _GroupBuilder(display_name, parsed is not None)

        entry = TemplateGroupSymbol(
            symbol_id=symbol.id,
            name=symbol.name,
            size_bytes=max(symbol.size, 0),
            specialization_key=key,
            addr=symbol.primary_location.addr if symbol.primary_location else symbol.addr,
            section_id=symbol.section_id,
            block_id=symbol.block_id,
        )
        group.symbols.append(entry)
        group.specializations.setdefault(key, []).append(entry)

    result = []
    for group_id, group in groups.items():
        specializations = tuple(
            TemplateSpecialization(
                key=key,
                symbols=tuple(entries),
                symbol_count=len(entries),
                size_bytes=sum(entry.size_bytes for entry in entries),
                unique_size_bytes=_unique_size(entries),
            )
            for key, entries in group.specializations.items()
        )
        sizes = [entry.size_bytes for entry in group.symbols]
        result.append(TemplateGroup(
            id=group_id,
            display_name=group.display_name,
            is_template=group.is_template,
            symbols=tuple(group.symbols),
            specializations=specializations,
            symbol_count=len(group.symbols),
            size_bytes=sum(sizes),
            unique_size_bytes=_unique_size(group.symbols),
            largest_symbol_size_bytes=max(sizes),
            smallest_symbol_size_bytes=min(sizes),
        ))
    return result
