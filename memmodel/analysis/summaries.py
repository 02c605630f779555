#!/usr/bin/env python3
# pylint: disable=too-many-locals
"""
Usage summaries for address windows and hardware banks.

Summaries are built in two passes. The first pass walks every block
assignment once and accumulates per-window totals and flat assignment
records. The second pass finalizes read-only summary records: window spans,
padding and gaps, hardware bank rounding, free space and the visual layouts.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

from ..models import (
    AddressType,
    AddressWindow,
    Analysis,
    BankLayout,
    BankLayoutSpan,
    BankSpanKind,
    BlockBytes,
    BlockLayoutSpan,
    BlockSpanKind,
    CategoryBytes,
    CategorySummary,
    FileOnlySection,
    FileOnlySummary,
    HardwareBank,
    HardwareBankSummary,
    MemoryMapConfig,
    Reservation,
    RoleBytes,
    RoundingDetail,
    RoundingMode,
    Summaries,
    TagUsage,
    TotalsSummary,
    WindowBytes,
    WindowPlacement,
    WindowSummary,
)

logger = logging.getLogger(__name__)

PADDING_LABEL = 'Rounding adjustment'
FREE_LABEL = 'Free'


@dataclass(frozen=True)
class AssignmentRecord:  # pylint: disable=too-many-instance-attributes
    """Flattened block assignment used by the bank pass"""
    section_id: str
    category_id: str
    block_id: str
    window_id: str
    address_type: AddressType
    address: int
    size: int
    report_tags: Tuple[str, ...] = ()


def apply_rounding(value: int, granule_bytes: int, mode: RoundingMode) -> int:
    """Round a byte count to a multiple of the granule.

    Zero or negative granules and values are returned unchanged. Nearest
    rounds halves up.
    """
    if granule_bytes <= 0 or value <= 0:
        return value
    if mode == RoundingMode.CEIL:
        return -(-value // granule_bytes) * granule_bytes
    if mode == RoundingMode.FLOOR:
        return value // granule_bytes * granule_bytes
    if mode == RoundingMode.NEAREST:
        return (value + granule_bytes // 2) // granule_bytes * granule_bytes
    return value


def compute_window_span(placements: Sequence[WindowPlacement]) -> Tuple[int, int, int]:
    """Sweep placements to find the covered span, padding and largest gap.

    Returns:
        Tuple of (span_bytes, padding_bytes, largest_gap_bytes)
    """
    if not placements:
        return 0, 0, 0

    ordered = sorted(placements, key=lambda p: (p.start, p.size))
    current_start = ordered[0].start
    current_end = ordered[0].end
    total_size = 0
    largest_gap = 0

    for placement in ordered:
        total_size += placement.size
        if placement.start > current_end:
            largest_gap = max(largest_gap, placement.start - current_end)
            current_end = placement.end
        elif placement.end > current_end:
            current_end = placement.end

    span = current_end - current_start
    padding = span - total_size if span > total_size else 0
    return span, padding, largest_gap


def split_evenly(delta: int, keys: Sequence[str]) -> Dict[str, int]:
    """Split an integer delta across keys; leading keys absorb the remainder."""
    if not keys:
        return {}
    share, remainder = divmod(delta, len(keys))
    return {key: share + (1 if index < remainder else 0) for index, key in enumerate(keys)}


@dataclass
class WindowBuilder:
    """Mutable accumulator for one window during the first pass"""
    total: int = 0
    by_role: Dict[AddressType, int] = field(default_factory=lambda: defaultdict(int))
    by_category: Dict[str, int] = field(default_factory=lambda: defaultdict(int))
    by_block: Dict[str, int] = field(default_factory=lambda: defaultdict(int))
    placements: List[WindowPlacement] = field(default_factory=list)

    def add(self, record: AssignmentRecord) -> None:
        """Account one assignment record"""
        self.total += record.size
        self.by_role[record.address_type] += record.size
        self.by_category[record.category_id] += record.size
        self.by_block[record.block_id] += record.size
        self.placements.append(WindowPlacement(
            section_id=record.section_id,
            block_id=record.block_id,
            address_type=record.address_type,
            start=record.address,
            size=record.size,
        ))

    def finalize(self, window_id: str) -> WindowSummary:
        """Produce the read-only window summary"""
        span, padding, largest_gap = compute_window_span(self.placements)
        return WindowSummary(
            window_id=window_id,
            total_bytes=self.total,
            by_role=tuple(RoleBytes(role, size) for role, size in self.by_role.items() if size > 0),
            by_category=tuple(
                CategoryBytes(key, size) for key, size in self.by_category.items() if size > 0),
            by_block=tuple(BlockBytes(key, size) for key, size in self.by_block.items() if size > 0),
            span_bytes=span,
            padding_bytes=padding,
            largest_gap_bytes=largest_gap,
            placements=tuple(sorted(self.placements, key=lambda p: (p.start, p.size))),
        )


@dataclass
class _BlockRun:
    """Consecutive assignments of one block merged into a single span"""
    id: str
    block_id: str
    start_offset: int
    size_bytes: int = 0
    section_ids: List[str] = field(default_factory=list)


class BankLayoutBuilder:  # pylint: disable=too-many-instance-attributes
    """Builds the window-level and block-level layout of one hardware bank"""

    def __init__(self, bank: HardwareBank, config: MemoryMapConfig):
        self.bank = bank
        self.windows = config.windows_by_id()
        self.block_names = {block.id: block.display_name for block in config.logical_blocks}
        self.blocks_by_window: Dict[str, List[str]] = defaultdict(list)
        for block in config.logical_blocks:
            self.blocks_by_window[block.window_id].append(block.id)

        self.spans: List[BankLayoutSpan] = []
        self.block_spans: List[BlockLayoutSpan] = []
        self.warnings: List[str] = []
        self.cursor = 0
        self._counter = 0
        self._address_cursor: Optional[int] = None
        self.window_offsets: Dict[str, int] = {}
        self.bank_base = next(
            (self.windows[window_id].base_address for window_id in bank.window_ids
             if window_id in self.windows and self.windows[window_id].base_address is not None),
            None)

    def _next_id(self) -> int:
        value = self._counter
        self._counter += 1
        return value

    @staticmethod
    def _address_at(anchor: Optional[int], offset: int) -> Optional[int]:
        return None if anchor is None else anchor + offset

    def _reservation_address(self, window_id: str, bank_offset: int) -> Optional[int]:
        """Map a bank offset to an address in the reservation's own window."""
        window = self.windows.get(window_id)
        window_start = self.window_offsets.get(window_id)
        if window is not None and window.base_address is not None \
                and window_start is not None and bank_offset >= window_start:
            return window.base_address + bank_offset - window_start
        return self._address_at(self.bank_base, bank_offset)

    def add_window(self, window_id: str, allocated: int,
                   assignments: Sequence[AssignmentRecord]) -> None:
        """Lay out one window's allocated bytes and the blocks inside them."""
        self.window_offsets[window_id] = self.cursor
        if allocated <= 0:
            return
        window = self.windows.get(window_id)
        ordered = sorted(assignments, key=lambda r: (r.address, r.size))
        anchor = window.base_address if window and window.base_address is not None else None
        if anchor is None and ordered:
            anchor = ordered[0].address

        start_offset = self.cursor
        end_offset = start_offset + allocated
        window_span_id = f"{self.bank.id}:{window_id}"

        self.spans.append(BankLayoutSpan(
            id=window_span_id,
            label=window.display_name if window else window_id,
            kind=BankSpanKind.OCCUPIED,
            size_bytes=allocated,
            start_offset=start_offset,
            end_offset=end_offset,
            start_address=anchor,
            end_address=self._address_at(anchor, allocated),
            window_id=window_id,
            block_ids=tuple(self.blocks_by_window.get(window_id, ())) or None,
        ))

        runs: List[_BlockRun] = []
        window_cursor = start_offset
        for record in ordered:
            if record.size <= 0 or window_cursor >= end_offset:
                continue
            size = min(record.size, end_offset - window_cursor)
            current = runs[-1] if runs else None
            if current is not None and current.block_id == record.block_id:
                current.size_bytes += size
                current.section_ids.append(record.section_id)
            else:
                runs.append(_BlockRun(
                    id=f"{window_span_id}:block:{self._next_id()}",
                    block_id=record.block_id,
                    start_offset=window_cursor,
                    size_bytes=size,
                    section_ids=[record.section_id],
                ))
            window_cursor += size

        for run in runs:
            relative = run.start_offset - start_offset
            self.block_spans.append(BlockLayoutSpan(
                id=run.id,
                label=self.block_names.get(run.block_id, run.block_id),
                kind=BlockSpanKind.BLOCK,
                size_bytes=run.size_bytes,
                start_offset=run.start_offset,
                end_offset=run.start_offset + run.size_bytes,
                parent_span_id=window_span_id,
                start_address=self._address_at(anchor, relative),
                end_address=self._address_at(anchor, relative + run.size_bytes),
                window_id=window_id,
                block_id=run.block_id,
                section_ids=tuple(run.section_ids),
            ))

        if window_cursor < end_offset:
            relative = window_cursor - start_offset
            self.block_spans.append(BlockLayoutSpan(
                id=f"{window_span_id}:padding:{self._next_id()}",
                label=PADDING_LABEL,
                kind=BlockSpanKind.PADDING,
                size_bytes=end_offset - window_cursor,
                start_offset=window_cursor,
                end_offset=end_offset,
                parent_span_id=window_span_id,
                start_address=self._address_at(anchor, relative),
                end_address=self._address_at(anchor, allocated),
                window_id=window_id,
            ))

        self.cursor = end_offset
        if anchor is not None:
            self._address_cursor = anchor + allocated

    def add_free(self, size_bytes: int) -> None:
        """Append the free span that follows the occupied windows."""
        if size_bytes <= 0:
            return
        start_offset = self.cursor
        end_offset = start_offset + size_bytes
        start_address = self._address_cursor
        if start_address is None and self.bank_base is not None:
            start_address = self.bank_base + start_offset
        free_span_id = f"{self.bank.id}:free"

        self.spans.append(BankLayoutSpan(
            id=free_span_id,
            label=FREE_LABEL,
            kind=BankSpanKind.FREE,
            size_bytes=size_bytes,
            start_offset=start_offset,
            end_offset=end_offset,
            start_address=start_address,
            end_address=self._address_at(start_address, size_bytes),
        ))
        self.block_spans.append(BlockLayoutSpan(
            id=f"{free_span_id}:detail",
            label=FREE_LABEL,
            kind=BlockSpanKind.FREE,
            size_bytes=size_bytes,
            start_offset=start_offset,
            end_offset=end_offset,
            parent_span_id=free_span_id,
            start_address=start_address,
            end_address=self._address_at(start_address, size_bytes),
        ))
        self._next_id()
        self.cursor = end_offset

    def add_reservations(self, reservations: Sequence[Tuple[str, Reservation]]) -> None:
        """Append reserved spans in offset order, never overlapping earlier spans.

        A reservation whose configured offset falls inside already laid out
        bytes is moved forward and reported as a warning.
        """
        reserved_cursor = self.cursor
        ordered = sorted(reservations, key=lambda item: item[1].start_offset)
        for index, (window_id, reservation) in enumerate(ordered):
            start = max(reservation.start_offset, reserved_cursor)
            if start != reservation.start_offset:
                message = (
                    f"Reservation {reservation.id} in bank {self.bank.id} starts at offset "
                    f"0x{reservation.start_offset:x} which overlaps laid out bytes; "
                    f"moved to 0x{start:x}")
                logger.warning(message)
                self.warnings.append(message)
            end = start + reservation.size_bytes
            reservation_span_id = f"{self.bank.id}:{reservation.id or f'reservation-{index}'}"

            start_address = self._reservation_address(window_id, start)

            self.spans.append(BankLayoutSpan(
                id=reservation_span_id,
                label=reservation.label,
                kind=BankSpanKind.RESERVED,
                size_bytes=reservation.size_bytes,
                start_offset=start,
                end_offset=end,
                start_address=start_address,
                end_address=self._address_at(start_address, reservation.size_bytes),
                window_id=window_id,
                reservation_id=reservation.id,
            ))
            self.block_spans.append(BlockLayoutSpan(
                id=f"{reservation_span_id}:detail",
                label=reservation.label,
                kind=BlockSpanKind.RESERVED,
                size_bytes=reservation.size_bytes,
                start_offset=start,
                end_offset=end,
                parent_span_id=reservation_span_id,
                start_address=start_address,
                end_address=self._address_at(start_address, reservation.size_bytes),
                window_id=window_id,
                reservation_id=reservation.id,
            ))
            self._next_id()
            reserved_cursor = end

    def layouts(self) -> Tuple[BankLayout, BankLayout]:
        """Return (window layout, block layout) with spans sorted by offset"""
        capacity = self.bank.capacity_bytes
        return (
            BankLayout(capacity, tuple(sorted(self.spans, key=lambda s: s.start_offset))),
            BankLayout(capacity, tuple(sorted(self.block_spans, key=lambda s: s.start_offset))),
        )


class HardwareBankSummarizer:  # pylint: disable=too-few-public-methods
    """Summarizes hardware banks from flattened assignment records"""

    def __init__(self, config: MemoryMapConfig, records: Sequence[AssignmentRecord]):
        self.config = config
        self.records = records
        self.windows = config.windows_by_id()
        self.block_to_window = {block.id: block.window_id for block in config.logical_blocks}
        self.warnings: List[str] = []

    def _apply_rounding_rules(self, bank: HardwareBank, block_bytes: Dict[str, int]
                              ) -> Tuple[List[RoundingDetail], Dict[str, int]]:
        details = []
        window_adjustments: Dict[str, int] = defaultdict(int)

        for rule in bank.rounding_rules:
            raw_bytes = sum(block_bytes.get(block_id, 0) for block_id in rule.logical_block_ids)
            adjusted_bytes = apply_rounding(raw_bytes, rule.granule_bytes, rule.mode)
            delta_bytes = adjusted_bytes - raw_bytes

            if delta_bytes:
                target_windows = list(dict.fromkeys(
                    self.block_to_window[block_id] for block_id in rule.logical_block_ids
                    if block_id in self.block_to_window))
                for window_id, share in split_evenly(delta_bytes, target_windows).items():
                    window_adjustments[window_id] += share

            logger.debug("Bank %s rounding %s: %d -> %d bytes",
                         bank.id, list(rule.logical_block_ids), raw_bytes, adjusted_bytes)
            details.append(RoundingDetail(
                logical_block_ids=tuple(rule.logical_block_ids),
                granule_bytes=rule.granule_bytes,
                mode=rule.mode,
                raw_bytes=raw_bytes,
                adjusted_bytes=adjusted_bytes,
                delta_bytes=delta_bytes,
            ))
        return details, window_adjustments

    def summarize(self, bank: HardwareBank) -> HardwareBankSummary:
        """Build the summary of one hardware bank"""
        window_set = set(bank.window_ids)
        relevant = [record for record in self.records if record.window_id in window_set]
        raw_used_bytes = sum(record.size for record in relevant)

        window_bytes: Dict[str, int] = defaultdict(int)
        block_bytes: Dict[str, int] = defaultdict(int)
        assignments_by_window: Dict[str, List[AssignmentRecord]] = defaultdict(list)
        for record in relevant:
            window_bytes[record.window_id] += record.size
            block_bytes[record.block_id] += record.size
            assignments_by_window[record.window_id].append(record)

        rounding, window_adjustments = self._apply_rounding_rules(bank, block_bytes)
        adjusted_used_bytes = raw_used_bytes + sum(detail.delta_bytes for detail in rounding)

        reservations = [
            (window_id, reservation)
            for window_id in bank.window_ids
            for reservation in (self.windows[window_id].reservations
                                if window_id in self.windows else ())
        ]
        reserved_bytes = sum(reservation.size_bytes for _, reservation in reservations)
        earliest_reservation = min(
            [reservation.start_offset for _, reservation in reservations] + [bank.capacity_bytes])
        free_bytes = max(bank.capacity_bytes - adjusted_used_bytes - reserved_bytes, 0)

        builder = BankLayoutBuilder(bank, self.config)
        for window_id in bank.window_ids:
            allocated = window_bytes.get(window_id, 0) + window_adjustments.get(window_id, 0)
            builder.add_window(window_id, allocated, assignments_by_window.get(window_id, []))

        reservation_boundary = min(earliest_reservation, bank.capacity_bytes)
        builder.add_free(min(free_bytes, max(reservation_boundary - builder.cursor, 0)))
        builder.add_reservations(reservations)
        self.warnings.extend(builder.warnings)
        layout, block_layout = builder.layouts()

        return HardwareBankSummary(
            hardware_bank_id=bank.id,
            name=bank.display_name,
            description=bank.description,
            capacity_bytes=bank.capacity_bytes,
            raw_used_bytes=raw_used_bytes,
            adjusted_used_bytes=adjusted_used_bytes,
            free_bytes=free_bytes,
            reserved_bytes=reserved_bytes,
            rounding=tuple(rounding),
            window_breakdown=tuple(WindowBytes(key, size) for key, size in window_bytes.items()),
            block_breakdown=tuple(BlockBytes(key, size) for key, size in block_bytes.items()),
            layout=layout,
            block_layout=block_layout,
        )


def _build_window_summaries(windows: Sequence[AddressWindow],
                            builders: Dict[str, WindowBuilder]) -> Tuple[WindowSummary, ...]:
    summaries = []
    for window in windows:
        builder = builders.get(window.id)
        summaries.append(builder.finalize(window.id) if builder else WindowSummary(window.id))
    return tuple(summaries)


def generate_summaries(analysis: Analysis) -> Summaries:
    """Aggregate block assignments into totals, window and bank summaries.

    Args:
        analysis: Analysis with block-assigned sections

    Returns:
        Read-only Summaries for the analysis
    """
    config = analysis.config
    runtime_bytes = 0
    load_image_bytes = 0
    file_only_sections = []
    category_runtime: Dict[str, int] = defaultdict(int)
    category_load: Dict[str, int] = defaultdict(int)
    tag_totals: Dict[str, int] = {}
    window_builders: Dict[str, WindowBuilder] = {}
    records: List[AssignmentRecord] = []

    for section in analysis.sections:
        if not section.occupies_memory or not section.block_assignments:
            if section.size > 0 and not section.flags.alloc:
                file_only_sections.append(FileOnlySection(section.id, section.name, section.size))
            continue

        category_id = section.category_id or 'unknown'
        for assignment in section.block_assignments:
            record = AssignmentRecord(
                section_id=section.id,
                category_id=category_id,
                block_id=assignment.block_id,
                window_id=assignment.window_id,
                address_type=assignment.address_type,
                address=assignment.address,
                size=assignment.size,
                report_tags=tuple(assignment.report_tags),
            )
            records.append(record)
            window_builders.setdefault(assignment.window_id, WindowBuilder()).add(record)

            if assignment.address_type == AddressType.LOAD:
                load_image_bytes += assignment.size
                category_load[category_id] += assignment.size
            else:
                runtime_bytes += assignment.size
                category_runtime[category_id] += assignment.size

            for tag in assignment.report_tags:
                tag_totals[tag] = tag_totals.get(tag, 0) + assignment.size

    bank_summarizer = HardwareBankSummarizer(config, records)
    hardware_banks = tuple(bank_summarizer.summarize(bank) for bank in config.hardware_banks)
    file_only_bytes = sum(section.size for section in file_only_sections)

    logger.info("Summarized %d assignments across %d windows and %d banks",
                len(records), len(config.address_windows), len(hardware_banks))

    return Summaries(
        totals=TotalsSummary(
            runtime_bytes=runtime_bytes,
            load_image_bytes=load_image_bytes,
            file_only_bytes=file_only_bytes,
        ),
        by_category=tuple(
            CategorySummary(
                category_id=category.id,
                runtime_bytes=category_runtime.get(category.id, 0),
                load_image_bytes=category_load.get(category.id, 0),
            )
            for category in config.section_categories
        ),
        by_window=_build_window_summaries(config.address_windows, window_builders),
        hardware_banks=hardware_banks,
        file_only=FileOnlySummary(total_bytes=file_only_bytes, sections=tuple(file_only_sections)),
        tag_totals=tuple(TagUsage(tag, size) for tag, size in tag_totals.items()),
        warnings=tuple(bank_summarizer.warnings),
    )
