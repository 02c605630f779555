#!/usr/bin/env python3
"""
Analysis pipeline.

Runs the pure part of the analysis: classify sections, assign them to
logical blocks and assign symbols. Everything here is a function of the
configuration and the flat section/symbol records.
"""

import logging
from typing import Iterable, Optional

from ..models import Analysis, BuildInfo, MemoryMapConfig, RawSymbol, Section, TargetInfo
from .blocks import assign_blocks
from .sections import classify_sections
from .symbols import assign_symbols

logger = logging.getLogger(__name__)


def analyze(raw_sections: Iterable[Section],
            raw_symbols: Iterable[RawSymbol],
            config: MemoryMapConfig,
            target: Optional[TargetInfo] = None,
            build: Optional[BuildInfo] = None) -> Analysis:
    """Build the derived memory model for one build.

    Args:
        raw_sections: Sections as parsed from the toolchain, uncategorized
        raw_symbols: Symbol records as parsed from nm
        config: Validated target memory map
        target: Optional target description
        build: Optional build artefact description

    Returns:
        Analysis holding categorized, block-assigned sections, assigned
        symbols and any data-quality warnings

    Raises:
        ConfigurationError: If the configuration cannot describe the build
    """
    sections = classify_sections(raw_sections, config.section_rules)
    sections = assign_blocks(sections, config.logical_blocks)
    symbols, warnings = assign_symbols(raw_symbols, sections)

    if warnings:
        logger.warning("%d symbol(s) fall outside every known section", len(warnings))
        for warning in warnings:
            logger.debug(warning)

    return Analysis(
        config=config,
        sections=sections,
        symbols=symbols,
        target=target or TargetInfo(name=config.display_name or config.target_id),
        build=build or BuildInfo(),
        warnings=warnings,
    )
