#!/usr/bin/env python3
"""
Data models for firmware memory analysis.

Configuration entities describe the target's address windows, hardware banks
and logical blocks; they are loaded once and never modified. Derived entities
(sections, symbols, summaries) are produced by a single analysis run and are
read-only afterwards.
"""

from dataclasses import dataclass, field, fields, is_dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


class AddressType(Enum):
    """Which address of a section a logical block is placed by"""

    EXEC = "exec"
    LOAD = "load"
    RUNTIME = "runtime"


class RoundingMode(Enum):
    """Rounding direction for hardware bank rounding rules"""

    CEIL = "ceil"
    FLOOR = "floor"
    NEAREST = "nearest"


class SymbolKind(Enum):
    """Symbol kinds derived from nm type codes"""

    FUNC = "func"
    OBJECT = "object"
    SECTION = "section"
    OTHER = "other"


class BankSpanKind(Enum):
    """Window-level layout span kinds"""

    OCCUPIED = "occupied"
    FREE = "free"
    RESERVED = "reserved"


class BlockSpanKind(Enum):
    """Block-level layout span kinds"""

    BLOCK = "block"
    FREE = "free"
    RESERVED = "reserved"
    PADDING = "padding"


def to_plain(value: Any) -> Any:
    """Convert dataclasses, enums and containers into JSON-friendly values."""
    if isinstance(value, Enum):
        return value.value
    if is_dataclass(value) and not isinstance(value, type):
        return {f.name: to_plain(getattr(value, f.name)) for f in fields(value)}
    if isinstance(value, (list, tuple)):
        return [to_plain(item) for item in value]
    if isinstance(value, dict):
        return {to_plain(key): to_plain(item) for key, item in value.items()}
    return value


class Serializable:  # pylint: disable=too-few-public-methods
    """Mixin providing dictionary conversion for JSON output"""

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary format for JSON serialization"""
        return to_plain(self)


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Reservation(Serializable):
    """Bytes of an address window set aside (bootloader, EEPROM emulation...)"""
    id: str
    label: str
    size_bytes: int
    start_offset: int
    notes: Optional[str] = None


@dataclass(frozen=True)
class AddressWindow(Serializable):
    """Contiguous addressable range, independent of physical media"""
    id: str
    name: Optional[str] = None
    base_address: Optional[int] = None
    size_bytes: Optional[int] = None
    reservations: Tuple[Reservation, ...] = ()
    description: Optional[str] = None
    notes: Optional[str] = None

    @property
    def display_name(self) -> str:
        """Name for display, falling back to the id"""
        return self.name or self.id


@dataclass(frozen=True)
class RoundingRule(Serializable):
    """Rounds the combined usage of some logical blocks to a granule"""
    logical_block_ids: Tuple[str, ...]
    granule_bytes: int
    mode: RoundingMode


@dataclass(frozen=True)
class HardwareBank(Serializable):
    """Physical memory bank composed of one or more address windows"""
    id: str
    capacity_bytes: int
    window_ids: Tuple[str, ...]
    rounding_rules: Tuple[RoundingRule, ...] = ()
    name: Optional[str] = None
    description: Optional[str] = None

    @property
    def display_name(self) -> str:
        """Name for display, falling back to the id"""
        return self.name or self.id


@dataclass(frozen=True)
class SectionCategory(Serializable):
    """Semantic category a section is classified into"""
    id: str
    name: Optional[str] = None
    description: Optional[str] = None
    notes: Optional[str] = None


@dataclass(frozen=True)
class LogicalBlock(Serializable):
    """Named partition of a window fed by one section category"""
    id: str
    category_id: str
    window_id: str
    role: Optional[AddressType] = None
    report_tags: Tuple[str, ...] = ()
    name: Optional[str] = None
    description: Optional[str] = None
    notes: Optional[str] = None

    @property
    def address_type(self) -> AddressType:
        """Address type used for placement; blocks without a role are runtime"""
        return self.role or AddressType.RUNTIME

    @property
    def display_name(self) -> str:
        """Name for display, falling back to the id"""
        return self.name or self.id


@dataclass(frozen=True)
class SectionRuleMatch(Serializable):
    """Name match criteria; any single criterion matching is sufficient"""
    equals: Optional[str] = None
    prefix: Optional[str] = None
    suffix: Optional[str] = None
    regex: Optional[str] = None


@dataclass(frozen=True)
class SectionRule(Serializable):
    """Maps matching section names to a category"""
    match: SectionRuleMatch
    category_id: str
    notes: Optional[str] = None


@dataclass(frozen=True)
class ReportEntryConfig(Serializable):
    """One named entry of the size report"""
    hardware_bank_id: str
    code_block_ids: Optional[Tuple[str, ...]] = None
    data_block_ids: Optional[Tuple[str, ...]] = None
    block_ids: Optional[Tuple[str, ...]] = None
    tag_buckets: Dict[str, Tuple[str, ...]] = field(default_factory=dict)

    def referenced_block_ids(self) -> List[str]:
        """All logical block ids this entry reads"""
        return [
            *(self.code_block_ids or ()),
            *(self.data_block_ids or ()),
            *(self.block_ids or ()),
        ]


@dataclass(frozen=True)
class MemoryMapConfig(Serializable):  # pylint: disable=too-many-instance-attributes
    """Complete target memory map"""
    target_id: str
    address_windows: Tuple[AddressWindow, ...] = ()
    hardware_banks: Tuple[HardwareBank, ...] = ()
    section_categories: Tuple[SectionCategory, ...] = ()
    logical_blocks: Tuple[LogicalBlock, ...] = ()
    section_rules: Tuple[SectionRule, ...] = ()
    reports: Dict[str, ReportEntryConfig] = field(default_factory=dict)
    display_name: Optional[str] = None
    notes: Optional[str] = None

    def windows_by_id(self) -> Dict[str, AddressWindow]:
        """Address windows keyed by id"""
        return {window.id: window for window in self.address_windows}

    def blocks_by_id(self) -> Dict[str, LogicalBlock]:
        """Logical blocks keyed by id"""
        return {block.id: block for block in self.logical_blocks}

    def banks_by_id(self) -> Dict[str, HardwareBank]:
        """Hardware banks keyed by id"""
        return {bank.id: bank for bank in self.hardware_banks}


# ---------------------------------------------------------------------------
# Sections and symbols
# ---------------------------------------------------------------------------

@dataclass
class SectionFlags(Serializable):
    """ELF section flags relevant to memory accounting"""
    alloc: bool = False
    exec: bool = False
    write: bool = False
    tls: bool = False


@dataclass(frozen=True)
class BlockAssignment(Serializable):
    """Address and size at which a section contributes to a logical block"""
    block_id: str
    window_id: str
    address_type: AddressType
    address: int
    size: int
    role: Optional[AddressType] = None
    report_tags: Tuple[str, ...] = ()

    @property
    def end(self) -> int:
        """Exclusive end address"""
        return self.address + self.size


@dataclass
class Section(Serializable):  # pylint: disable=too-many-instance-attributes
    """Represents a section from the ELF file"""
    id: str
    name: str
    vma_start: Optional[int]
    size: int
    flags: SectionFlags = field(default_factory=SectionFlags)
    lma_start: Optional[int] = None
    category_id: Optional[str] = None
    block_assignments: List[BlockAssignment] = field(default_factory=list)
    primary_block_id: Optional[str] = None
    primary_window_id: Optional[str] = None

    @property
    def occupies_memory(self) -> bool:
        """True for allocated sections with content"""
        return self.flags.alloc and self.size > 0

    def contains(self, address: int) -> bool:
        """Check whether a virtual address falls inside the section"""
        if self.vma_start is None:
            return False
        return self.vma_start <= address < self.vma_start + self.size


@dataclass(frozen=True)
class SourceLocation(Serializable):
    """File and line a symbol is defined at"""
    file: str
    line: int


@dataclass
class RawSymbol(Serializable):
    """Flat symbol record as produced by nm"""
    address: int
    size: int
    type_code: str
    name: str
    raw_name: Optional[str] = None
    source: Optional[SourceLocation] = None


@dataclass(frozen=True)
class SymbolLocation(Serializable):
    """Where a symbol lands inside one logical block"""
    window_id: str
    block_id: str
    address_type: AddressType
    addr: int

    @property
    def key(self) -> Tuple[str, str, AddressType, int]:
        """Identity used when merging aliased symbols"""
        return (self.window_id, self.block_id, self.address_type, self.addr)


@dataclass
class Symbol(Serializable):  # pylint: disable=too-many-instance-attributes
    """Represents a symbol assigned to its section and blocks"""
    id: str
    name: str
    name_mangled: str
    kind: SymbolKind
    addr: int
    size: int
    section_id: Optional[str] = None
    block_id: Optional[str] = None
    window_id: Optional[str] = None
    is_weak: bool = False
    is_static: bool = False
    is_tls: bool = False
    source: Optional[SourceLocation] = None
    primary_location: Optional[SymbolLocation] = None
    locations: List[SymbolLocation] = field(default_factory=list)
    aliases: List[str] = field(default_factory=list)


@dataclass
class TargetInfo(Serializable):
    """Target description, filled from the ELF header when available"""
    name: str = "Unknown"
    address_model: str = "flat"
    pointer_size: int = 4
    machine: Optional[str] = None
    endianness: Optional[str] = None
    entry_point: Optional[int] = None


@dataclass
class BuildInfo(Serializable):
    """Build artefacts the analysis was run on"""
    elf_path: str = ""
    map_path: Optional[str] = None
    timestamp: Optional[str] = None


@dataclass
class Analysis(Serializable):
    """Full derived model of one analysis run"""
    config: MemoryMapConfig
    sections: List[Section] = field(default_factory=list)
    symbols: List[Symbol] = field(default_factory=list)
    target: TargetInfo = field(default_factory=TargetInfo)
    build: BuildInfo = field(default_factory=BuildInfo)
    warnings: List[str] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Summaries
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TotalsSummary(Serializable):
    """Bytes by address usage across the whole image"""
    runtime_bytes: int
    load_image_bytes: int
    file_only_bytes: int


@dataclass(frozen=True)
class CategorySummary(Serializable):
    """Bytes attributed to one section category"""
    category_id: str
    runtime_bytes: int
    load_image_bytes: int


@dataclass(frozen=True)
class FileOnlySection(Serializable):
    """Non-allocated section present only in the file"""
    section_id: str
    name: str
    size: int


@dataclass(frozen=True)
class FileOnlySummary(Serializable):
    """Bytes of sections that are never loaded"""
    total_bytes: int
    sections: Tuple[FileOnlySection, ...] = ()


@dataclass(frozen=True)
class RoleBytes(Serializable):
    """Window bytes for one address type"""
    address_type: AddressType
    bytes: int


@dataclass(frozen=True)
class CategoryBytes(Serializable):
    """Window bytes for one section category"""
    category_id: str
    bytes: int


@dataclass(frozen=True)
class BlockBytes(Serializable):
    """Bytes for one logical block"""
    block_id: str
    bytes: int


@dataclass(frozen=True)
class WindowBytes(Serializable):
    """Bank bytes for one address window"""
    window_id: str
    bytes: int


@dataclass(frozen=True)
class WindowPlacement(Serializable):
    """One section's footprint inside a window"""
    section_id: str
    block_id: str
    address_type: AddressType
    start: int
    size: int

    @property
    def end(self) -> int:
        """Exclusive end address"""
        return self.start + self.size


@dataclass(frozen=True)
class WindowSummary(Serializable):  # pylint: disable=too-many-instance-attributes
    """Usage of one address window"""
    window_id: str
    total_bytes: int = 0
    by_role: Tuple[RoleBytes, ...] = ()
    by_category: Tuple[CategoryBytes, ...] = ()
    by_block: Tuple[BlockBytes, ...] = ()
    span_bytes: int = 0
    padding_bytes: int = 0
    largest_gap_bytes: int = 0
    placements: Tuple[WindowPlacement, ...] = ()


@dataclass(frozen=True)
class RoundingDetail(Serializable):
    """Outcome of one rounding rule"""
    logical_block_ids: Tuple[str, ...]
    granule_bytes: int
    mode: RoundingMode
    raw_bytes: int
    adjusted_bytes: int
    delta_bytes: int


@dataclass(frozen=True)
class BankLayoutSpan(Serializable):  # pylint: disable=too-many-instance-attributes
    """Window-granularity span of a bank layout"""
    id: str
    label: str
    kind: BankSpanKind
    size_bytes: int
    start_offset: int
    end_offset: int
    start_address: Optional[int] = None
    end_address: Optional[int] = None
    window_id: Optional[str] = None
    block_ids: Optional[Tuple[str, ...]] = None
    reservation_id: Optional[str] = None


@dataclass(frozen=True)
class BlockLayoutSpan(Serializable):  # pylint: disable=too-many-instance-attributes
    """Block-granularity span of a bank layout"""
    id: str
    label: str
    kind: BlockSpanKind
    size_bytes: int
    start_offset: int
    end_offset: int
    parent_span_id: str
    start_address: Optional[int] = None
    end_address: Optional[int] = None
    window_id: Optional[str] = None
    block_id: Optional[str] = None
    reservation_id: Optional[str] = None
    section_ids: Optional[Tuple[str, ...]] = None


@dataclass(frozen=True)
class BankLayout(Serializable):
    """Ordered, non-overlapping spans of a bank"""
    total_bytes: int
    spans: Tuple[Any, ...] = ()


@dataclass(frozen=True)
class HardwareBankSummary(Serializable):  # pylint: disable=too-many-instance-attributes
    """Usage of one physical memory bank"""
    hardware_bank_id: str
    name: str
    capacity_bytes: int
    raw_used_bytes: int
    adjusted_used_bytes: int
    free_bytes: int
    reserved_bytes: int
    rounding: Tuple[RoundingDetail, ...]
    window_breakdown: Tuple[WindowBytes, ...]
    block_breakdown: Tuple[BlockBytes, ...]
    layout: BankLayout
    block_layout: BankLayout
    description: Optional[str] = None


@dataclass(frozen=True)
class TagUsage(Serializable):
    """Bytes carrying one report tag"""
    tag: str
    bytes: int


@dataclass(frozen=True)
class Summaries(Serializable):
    """Aggregated usage of an analysis"""
    totals: TotalsSummary
    by_category: Tuple[CategorySummary, ...]
    by_window: Tuple[WindowSummary, ...]
    hardware_banks: Tuple[HardwareBankSummary, ...]
    file_only: FileOnlySummary
    tag_totals: Tuple[TagUsage, ...]
    warnings: Tuple[str, ...] = ()

    def window(self, window_id: str) -> Optional[WindowSummary]:
        """Find a window summary by id"""
        return next((item for item in self.by_window if item.window_id == window_id), None)

    def bank(self, bank_id: str) -> Optional[HardwareBankSummary]:
        """Find a hardware bank summary by id"""
        return next(
            (item for item in self.hardware_banks if item.hardware_bank_id == bank_id), None)


@dataclass(frozen=True)
class ReportEntry(Serializable):  # pylint: disable=too-many-instance-attributes
    """Projected totals for one named report entry"""
    hardware_bank_id: str
    capacity_bytes: int
    raw_used_bytes: int
    adjusted_used_bytes: int
    free_bytes: int
    code_bytes: Optional[int] = None
    data_bytes: Optional[int] = None
    block_bytes: Optional[int] = None
    bucket_totals: Dict[str, int] = field(default_factory=dict)
