"""
memmodel - firmware memory model analysis.

Builds a structured model of a firmware image's memory usage from toolchain
section and symbol output and a per-target memory map: section categories,
logical blocks, address windows and hardware banks with rounding and
reservations.
"""

from .analysis import (
    AddressResolver,
    analyze,
    build_template_groups,
    calculate_report,
    create_address_resolver,
    generate_summaries,
)
from .config import load_memory_map, load_memory_map_from_file, parse_memory_map
from .exceptions import ConfigurationError, MemModelError

__version__ = '1.0.0'

__all__ = [
    'AddressResolver',
    'ConfigurationError',
    'MemModelError',
    'analyze',
    'build_template_groups',
    'calculate_report',
    'create_address_resolver',
    'generate_summaries',
    'load_memory_map',
    'load_memory_map_from_file',
    'parse_memory_map',
]
