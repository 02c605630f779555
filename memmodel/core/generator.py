#!/usr/bin/env python3
"""
Memory report generation and coordination.

This module provides the ReportGenerator class that runs the toolchain on an
ELF file, builds the memory model for a target configuration and collects
summaries and size report entries into one serializable report.
"""

import logging
import os
import time
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from ..analysis import analyze, build_template_groups, calculate_report, generate_summaries
from ..exceptions import AnalysisError, ELFAnalysisError, MemModelError
from ..models import Analysis, BuildInfo, MemoryMapConfig, Summaries
from ..toolchain import Toolchain, collect_sections, collect_symbols, read_target_info

logger = logging.getLogger(__name__)


class ReportGenerator:
    """Main class for generating memory reports from an ELF file"""

    def __init__(self, elf_path: str, config: MemoryMapConfig,
                 toolchain: Toolchain, map_path: Optional[str] = None):
        """Initialize the report generator.

        Args:
            elf_path: Path to the ELF file to analyze
            config: Target memory map
            toolchain: Resolved binutils tools
            map_path: Optional linker map file recorded in the build info
        """
        self.elf_path = elf_path
        self.config = config
        self.toolchain = toolchain
        self.map_path = map_path

    def _validate_elf_file(self) -> None:
        if not os.path.exists(self.elf_path):
            raise ELFAnalysisError(f"ELF file not found: {self.elf_path}")
        if not os.access(self.elf_path, os.R_OK):
            raise ELFAnalysisError(f"Cannot read ELF file: {self.elf_path}")

    def build_analysis(self) -> Analysis:
        """Run the toolchain and build the memory model.

        Raises:
            MemModelError: If the tools fail or the configuration does not fit
        """
        self._validate_elf_file()
        target_name = self.config.display_name or self.config.target_id
        target = read_target_info(self.elf_path, name=target_name)
        sections = collect_sections(self.toolchain, self.elf_path)
        symbols = collect_symbols(self.toolchain, self.elf_path)
        build = BuildInfo(
            elf_path=self.elf_path,
            map_path=self.map_path,
            timestamp=datetime.now(timezone.utc).isoformat(),
        )
        return analyze(sections, symbols, self.config, target=target, build=build)

    def generate_report(self, include_template_groups: bool = False) -> Dict[str, Any]:
        """Generate the full memory report.

        Args:
            include_template_groups: Whether to add C++ template groups

        Returns:
            Dictionary containing the complete memory analysis report

        Raises:
            MemModelError: For configuration, toolchain and ELF problems
            AnalysisError: For any other failure during generation
        """
        start_time = time.time()
        try:
            analysis = self.build_analysis()
            summaries = generate_summaries(analysis)
            report = build_report_dict(analysis, summaries)
            if include_template_groups:
                report['template_groups'] = [
                    group.to_dict() for group in build_template_groups(analysis.symbols)
                ]
        except MemModelError:
            raise
        except Exception as e:
            raise AnalysisError(f"Failed to generate memory report: {e}") from e

        logger.info("Report for %s generated in %.2fs (%d sections, %d symbols)",
                    self.elf_path, time.time() - start_time,
                    len(analysis.sections), len(analysis.symbols))
        return report


def build_report_dict(analysis: Analysis, summaries: Summaries) -> Dict[str, Any]:
    """Assemble the serializable report for an analysis."""
    report_entries = calculate_report(analysis, summaries=summaries)
    return {
        'target_id': analysis.config.target_id,
        'target': analysis.target.to_dict(),
        'build': analysis.build.to_dict(),
        'sections': [section.to_dict() for section in analysis.sections],
        'symbols': [symbol.to_dict() for symbol in analysis.symbols],
        'summaries': summaries.to_dict(),
        'report': {key: entry.to_dict() for key, entry in report_entries.items()},
        'warnings': list(analysis.warnings) + list(summaries.warnings),
    }
