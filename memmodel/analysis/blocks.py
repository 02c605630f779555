#!/usr/bin/env python3
"""
Logical block assignment.

Projects each categorized section onto every logical block that claims its
category, at the execution, load or runtime address the block's role asks for.
"""

import logging
from collections import defaultdict
from dataclasses import replace
from typing import Dict, Iterable, List, Optional

from ..exceptions import MissingAddressError, UnmappedCategoryError
from ..models import AddressType, BlockAssignment, LogicalBlock, Section

logger = logging.getLogger(__name__)


def resolve_assignment_address(section: Section, address_type: AddressType) -> int:
    """Pick the section address used for a given address type.

    Load placements use the load address when the section has a distinct,
    non-zero one, otherwise they fall back to the virtual address.

    Raises:
        MissingAddressError: If the section has no usable address
    """
    if address_type == AddressType.LOAD:
        if section.lma_start:
            return section.lma_start
        if section.vma_start is not None:
            return section.vma_start
        raise MissingAddressError(f"Section {section.name} is missing a load address.")

    if section.vma_start is None:
        raise MissingAddressError(f"Section {section.name} is missing a virtual address.")
    return section.vma_start


def build_assignment(section: Section, block: LogicalBlock) -> BlockAssignment:
    """Create the assignment of one section to one logical block."""
    address_type = block.address_type
    return BlockAssignment(
        block_id=block.id,
        window_id=block.window_id,
        address_type=address_type,
        address=resolve_assignment_address(section, address_type),
        size=section.size,
        role=block.role,
        report_tags=tuple(block.report_tags),
    )


def select_primary_assignment(section: Optional[Section]) -> Optional[BlockAssignment]:
    """Return the assignment that owns a section for single-valued displays.

    This is the assignment of the recorded primary block when there is one,
    else the first non-load assignment, else the first assignment.
    """
    if section is None or not section.block_assignments:
        return None
    if section.primary_block_id:
        for assignment in section.block_assignments:
            if assignment.block_id == section.primary_block_id:
                return assignment
    for assignment in section.block_assignments:
        if assignment.address_type != AddressType.LOAD:
            return assignment
    return section.block_assignments[0]


class BlockAssigner:  # pylint: disable=too-few-public-methods
    """Maps categorized sections to logical blocks"""

    def __init__(self, logical_blocks: Iterable[LogicalBlock]):
        """Group the configured blocks by the category they collect."""
        self.blocks_by_category: Dict[str, List[LogicalBlock]] = defaultdict(list)
        for block in logical_blocks:
            self.blocks_by_category[block.category_id].append(block)

    def assign(self, sections: Iterable[Section]) -> List[Section]:
        """Attach block assignments to every categorized section.

        Raises:
            UnmappedCategoryError: If a section's category has no logical blocks
            MissingAddressError: If a section lacks the address a block needs
        """
        assigned = []
        for section in sections:
            if not section.occupies_memory or not section.category_id:
                assigned.append(replace(
                    section, block_assignments=[],
                    primary_block_id=None, primary_window_id=None))
                continue

            blocks = self.blocks_by_category.get(section.category_id)
            if not blocks:
                raise UnmappedCategoryError(
                    f"No logical blocks defined for category {section.category_id}.")

            assignments = [build_assignment(section, block) for block in blocks]
            updated = replace(section, block_assignments=assignments, primary_block_id=None)
            primary = select_primary_assignment(updated)
            assigned.append(replace(
                updated,
                primary_block_id=primary.block_id,
                primary_window_id=primary.window_id,
            ))
        return assigned


def assign_blocks(sections: Iterable[Section],
                  logical_blocks: Iterable[LogicalBlock]) -> List[Section]:
    """Assign sections to logical blocks (see BlockAssigner.assign)."""
    return BlockAssigner(logical_blocks).assign(sections)
