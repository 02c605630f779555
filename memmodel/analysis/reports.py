#!/usr/bin/env python3
"""
Size report projection.

Maps hardware bank totals and logical block usage onto the fixed, named
entries a target's size report asks for (for example the flash "free for
files" figure or the code/data split of tightly coupled RAM).
"""

from dataclasses import dataclass, field
from typing import Dict, Mapping, Optional, Sequence

from ..exceptions import ReportConfigError
from ..models import AddressType, Analysis, ReportEntry, ReportEntryConfig, Summaries
from .summaries import generate_summaries


@dataclass
class BlockUsage:
    """Byte usage of one logical block by address type and tag"""
    total: int = 0
    runtime: int = 0
    load: int = 0
    tags: Dict[str, int] = field(default_factory=dict)


def build_block_usage_index(analysis: Analysis) -> Dict[str, BlockUsage]:
    """Accumulate usage of every configured logical block."""
    index = {block.id: BlockUsage() for block in analysis.config.logical_blocks}
    for section in analysis.sections:
        for assignment in section.block_assignments:
            usage = index.get(assignment.block_id)
            if usage is None:
                continue
            usage.total += assignment.size
            if assignment.address_type == AddressType.LOAD:
                usage.load += assignment.size
            else:
                usage.runtime += assignment.size
            for tag in assignment.report_tags:
                usage.tags[tag] = usage.tags.get(tag, 0) + assignment.size
    return index


def sum_block_usage(block_ids: Optional[Sequence[str]], index: Mapping[str, BlockUsage],
                    mode: str) -> Optional[int]:
    """Sum runtime, load or total bytes of the given blocks.

    Returns None when no block list is configured.
    """
    if block_ids is None:
        return None
    total = 0
    for block_id in block_ids:
        usage = index.get(block_id)
        if usage is None:
            raise ReportConfigError(f"Report references block {block_id} which has no usage.")
        total += getattr(usage, mode)
    return total


class ReportProjector:  # pylint: disable=too-few-public-methods
    """Builds report entries from an analysis and its summaries"""

    def __init__(self, analysis: Analysis, summaries: Summaries):
        self.analysis = analysis
        self.summaries = summaries
        self.banks = analysis.config.banks_by_id()
        self.blocks = analysis.config.blocks_by_id()
        self.block_usage = build_block_usage_index(analysis)
        self.tag_totals = {entry.tag: entry.bytes for entry in summaries.tag_totals}

    def project(self, key: str, entry: ReportEntryConfig) -> ReportEntry:
        """Compute one report entry.

        Raises:
            ReportConfigError: If the entry names an unknown bank or block
        """
        bank = self.banks.get(entry.hardware_bank_id)
        if bank is None:
            raise ReportConfigError(
                f"Report {key} references unknown hardware bank {entry.hardware_bank_id}.")
        bank_summary = self.summaries.bank(bank.id)
        if bank_summary is None:
            raise ReportConfigError(f"No computed summary found for hardware bank {bank.id}.")

        for block_id in entry.referenced_block_ids():
            if block_id not in self.blocks:
                raise ReportConfigError(
                    f"Unknown logical block referenced in report {key}: {block_id}")

        bucket_totals = {
            bucket: sum(self.tag_totals.get(tag, 0) for tag in tags)
            for bucket, tags in entry.tag_buckets.items()
        }

        return ReportEntry(
            hardware_bank_id=bank.id,
            capacity_bytes=bank.capacity_bytes,
            raw_used_bytes=bank_summary.raw_used_bytes,
            adjusted_used_bytes=bank_summary.adjusted_used_bytes,
            free_bytes=bank_summary.free_bytes,
            code_bytes=sum_block_usage(entry.code_block_ids, self.block_usage, 'runtime'),
            data_bytes=sum_block_usage(entry.data_block_ids, self.block_usage, 'runtime'),
            block_bytes=sum_block_usage(entry.block_ids, self.block_usage, 'total'),
            bucket_totals=bucket_totals,
        )


def calculate_report(analysis: Analysis,
                     report_config: Optional[Mapping[str, ReportEntryConfig]] = None,
                     summaries: Optional[Summaries] = None) -> Dict[str, ReportEntry]:
    """Project the configured size report for an analysis.

    Args:
        analysis: Completed analysis
        report_config: Report entries keyed by name; defaults to the target's
        summaries: Precomputed summaries; generated when omitted

    Returns:
        Report entries keyed by name (empty when nothing is configured)
    """
    if report_config is None:
        report_config = analysis.config.reports
    if not report_config:
        return {}

    projector = ReportProjector(analysis, summaries or generate_summaries(analysis))
    return {key: projector.project(key, entry) for key, entry in report_config.items()}
