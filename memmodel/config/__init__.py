"""Target memory map configuration."""

from .loader import (
    load_memory_map,
    load_memory_map_from_file,
    parse_memory_map,
    list_targets,
)

__all__ = ['load_memory_map', 'load_memory_map_from_file', 'parse_memory_map', 'list_targets']
