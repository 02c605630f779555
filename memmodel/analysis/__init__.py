#!/usr/bin/env python3
"""
Memory model construction and summarization.

This package turns flat section and symbol records into the derived memory
model: categorized sections, block assignments, symbol locations, window and
bank summaries, address lookups and size reports.
"""

from .analyzer import analyze
from .reports import calculate_report
from .resolver import AddressResolver, create_address_resolver
from .summaries import generate_summaries
from .templates import build_template_groups

__all__ = [
    'analyze',
    'calculate_report',
    'AddressResolver',
    'create_address_resolver',
    'generate_summaries',
    'build_template_groups',
]
