#!/usr/bin/env python3
"""
Target memory map loading and validation.

Memory maps are JSON documents (camelCase keys) describing a target's
address windows, hardware banks, section categories, logical blocks,
section rules and size reports. They are converted into frozen dataclasses
and checked for internal consistency before any analysis runs.
"""

import json
import logging
import re
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from ..exceptions import ConfigValidationError
from ..models import (
    AddressType,
    AddressWindow,
    HardwareBank,
    LogicalBlock,
    MemoryMapConfig,
    ReportEntryConfig,
    Reservation,
    RoundingMode,
    RoundingRule,
    SectionCategory,
    SectionRule,
    SectionRuleMatch,
)

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_DIR = Path(__file__).parent / 'targets'

_MISSING = object()


class MemoryMapParser:
    """Converts a memory map document into a validated MemoryMapConfig"""

    def __init__(self, data: Dict[str, Any], source: str = '<memory map>'):
        self.data = data
        self.source = source
        self.problems: List[str] = []

    # -- primitive helpers -------------------------------------------------

    def _get(self, item: Dict[str, Any], key: str, context: str, default: Any = _MISSING) -> Any:
        if isinstance(item, dict) and key in item:
            return item[key]
        if default is _MISSING:
            self.problems.append(f"{context}: missing required key '{key}'")
            return None
        return default

    def _int(self, value: Any, context: str, allow_none: bool = False) -> Optional[int]:
        if value is None:
            if not allow_none:
                self.problems.append(f"{context}: expected an integer")
            return None
        if isinstance(value, bool):
            self.problems.append(f"{context}: expected an integer, got {value!r}")
            return None
        if isinstance(value, int):
            return value
        if isinstance(value, str):
            try:
                return int(value, 0)
            except ValueError:
                pass
        self.problems.append(f"{context}: expected an integer, got {value!r}")
        return None

    def _str_list(self, value: Any, context: str) -> tuple:
        if value is None:
            return ()
        if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
            self.problems.append(f"{context}: expected a list of strings")
            return ()
        return tuple(value)

    def _list(self, key: str) -> List[Dict[str, Any]]:
        value = self.data.get(key, [])
        if not isinstance(value, list):
            self.problems.append(f"{key}: expected a list")
            return []
        items = []
        for index, item in enumerate(value):
            if isinstance(item, dict):
                items.append(item)
            else:
                self.problems.append(f"{key}[{index}]: expected an object")
        return items

    def _check_unique(self, ids: List[str], kind: str) -> None:
        seen = set()
        for item_id in ids:
            if item_id in seen:
                self.problems.append(f"Duplicate {kind} id '{item_id}'")
            seen.add(item_id)

    # -- entity parsers ----------------------------------------------------

    def _parse_reservation(self, item: Dict[str, Any], context: str) -> Reservation:
        return Reservation(
            id=self._get(item, 'id', context),
            label=item.get('label') or item.get('id'),
            size_bytes=self._int(self._get(item, 'sizeBytes', context), f"{context}.sizeBytes"),
            start_offset=self._int(self._get(item, 'startOffset', context),
                                   f"{context}.startOffset"),
            notes=item.get('notes'),
        )

    def _parse_window(self, item: Dict[str, Any], index: int) -> AddressWindow:
        context = f"addressWindows[{index}]"
        reservations = item.get('reservations') or []
        return AddressWindow(
            id=self._get(item, 'id', context),
            name=item.get('name'),
            base_address=self._int(item.get('baseAddress'), f"{context}.baseAddress",
                                   allow_none=True),
            size_bytes=self._int(item.get('sizeBytes'), f"{context}.sizeBytes", allow_none=True),
            reservations=tuple(
                self._parse_reservation(reservation, f"{context}.reservations[{position}]")
                for position, reservation in enumerate(reservations)),
            description=item.get('description'),
            notes=item.get('notes'),
        )

    def _parse_rounding_rule(self, item: Dict[str, Any], context: str) -> RoundingRule:
        mode_value = self._get(item, 'mode', context)
        try:
            mode = RoundingMode(mode_value)
        except ValueError:
            self.problems.append(f"{context}.mode: unknown rounding mode {mode_value!r}")
            mode = RoundingMode.CEIL
        return RoundingRule(
            logical_block_ids=self._str_list(self._get(item, 'logicalBlockIds', context),
                                             f"{context}.logicalBlockIds"),
            granule_bytes=self._int(self._get(item, 'granuleBytes', context),
                                    f"{context}.granuleBytes") or 0,
            mode=mode,
        )

    def _parse_bank(self, item: Dict[str, Any], index: int) -> HardwareBank:
        context = f"hardwareBanks[{index}]"
        rules = item.get('roundingRules') or []
        return HardwareBank(
            id=self._get(item, 'id', context),
            capacity_bytes=self._int(self._get(item, 'capacityBytes', context),
                                     f"{context}.capacityBytes") or 0,
            window_ids=self._str_list(self._get(item, 'windowIds', context),
                                      f"{context}.windowIds"),
            rounding_rules=tuple(
                self._parse_rounding_rule(rule, f"{context}.roundingRules[{position}]")
                for position, rule in enumerate(rules)),
            name=item.get('name'),
            description=item.get('description'),
        )

    def _parse_category(self, item: Dict[str, Any], index: int) -> SectionCategory:
        context = f"sectionCategories[{index}]"
        return SectionCategory(
            id=self._get(item, 'id', context),
            name=item.get('name'),
            description=item.get('description'),
            notes=item.get('notes'),
        )

    def _parse_block(self, item: Dict[str, Any], index: int) -> LogicalBlock:
        context = f"logicalBlocks[{index}]"
        role = None
        role_value = item.get('role')
        if role_value is not None:
            try:
                role = AddressType(role_value)
            except ValueError:
                self.problems.append(f"{context}.role: unknown role {role_value!r}")
        return LogicalBlock(
            id=self._get(item, 'id', context),
            category_id=self._get(item, 'categoryId', context),
            window_id=self._get(item, 'windowId', context),
            role=role,
            report_tags=self._str_list(item.get('reportTags'), f"{context}.reportTags"),
            name=item.get('name'),
            description=item.get('description'),
            notes=item.get('notes'),
        )

    def _parse_rule(self, item: Dict[str, Any], index: int) -> SectionRule:
        context = f"sectionRules[{index}]"
        match = self._get(item, 'match', context) or {}
        if not isinstance(match, dict):
            self.problems.append(f"{context}.match: expected an object")
            match = {}
        rule_match = SectionRuleMatch(
            equals=match.get('equals'),
            prefix=match.get('prefix'),
            suffix=match.get('suffix'),
            regex=match.get('regex'),
        )
        if all(value is None for value in (rule_match.equals, rule_match.prefix,
                                           rule_match.suffix, rule_match.regex)):
            self.problems.append(f"{context}.match: needs equals, prefix, suffix or regex")
        if rule_match.regex is not None:
            try:
                re.compile(rule_match.regex)
            except re.error as e:
                self.problems.append(f"{context}.match.regex: invalid expression ({e})")
        return SectionRule(
            match=rule_match,
            category_id=self._get(item, 'categoryId', context),
            notes=item.get('notes'),
        )

    def _parse_report_entry(self, item: Dict[str, Any], key: str) -> ReportEntryConfig:
        context = f"reports.{key}"

        def optional_ids(name: str) -> Optional[tuple]:
            if name not in item:
                return None
            return self._str_list(item[name], f"{context}.{name}")

        buckets = item.get('tagBuckets') or {}
        if not isinstance(buckets, dict):
            self.problems.append(f"{context}.tagBuckets: expected an object")
            buckets = {}
        return ReportEntryConfig(
            hardware_bank_id=self._get(item, 'hardwareBankId', context),
            code_block_ids=optional_ids('codeBlockIds'),
            data_block_ids=optional_ids('dataBlockIds'),
            block_ids=optional_ids('blockIds'),
            tag_buckets={
                bucket: self._str_list(tags, f"{context}.tagBuckets.{bucket}")
                for bucket, tags in buckets.items()
            },
        )

    # -- cross references ----------------------------------------------------

    def _check_references(self, config: MemoryMapConfig) -> None:
        window_ids = [window.id for window in config.address_windows]
        bank_ids = [bank.id for bank in config.hardware_banks]
        category_ids = [category.id for category in config.section_categories]
        block_ids = [block.id for block in config.logical_blocks]

        self._check_unique(window_ids, 'address window')
        self._check_unique(bank_ids, 'hardware bank')
        self._check_unique(category_ids, 'section category')
        self._check_unique(block_ids, 'logical block')

        known_windows = set(window_ids)
        known_categories = set(category_ids)
        known_blocks = set(block_ids)

        for block in config.logical_blocks:
            if block.category_id not in known_categories:
                self.problems.append(
                    f"Logical block {block.id} references unknown category {block.category_id}")
            if block.window_id not in known_windows:
                self.problems.append(
                    f"Logical block {block.id} references unknown window {block.window_id}")

        for bank in config.hardware_banks:
            for window_id in bank.window_ids:
                if window_id not in known_windows:
                    self.problems.append(
                        f"Hardware bank {bank.id} references unknown window {window_id}")
            for rule in bank.rounding_rules:
                for block_id in rule.logical_block_ids:
                    if block_id not in known_blocks:
                        self.problems.append(
                            f"Hardware bank {bank.id} rounding rule references "
                            f"unknown block {block_id}")

        for rule in config.section_rules:
            if rule.category_id not in known_categories:
                self.problems.append(
                    f"Section rule {rule.match.to_dict()} references "
                    f"unknown category {rule.category_id}")

        for key, entry in config.reports.items():
            if entry.hardware_bank_id not in set(bank_ids):
                self.problems.append(
                    f"Report {key} references unknown hardware bank {entry.hardware_bank_id}")
            for block_id in entry.referenced_block_ids():
                if block_id not in known_blocks:
                    self.problems.append(f"Report {key} references unknown block {block_id}")

    def parse(self) -> MemoryMapConfig:
        """Parse and validate the document.

        Raises:
            ConfigValidationError: Listing every problem found
        """
        if not isinstance(self.data, dict):
            raise ConfigValidationError(f"Memory map config at {self.source} must be an object")

        reports = self.data.get('reports') or {}
        if not isinstance(reports, dict):
            self.problems.append("reports: expected an object")
            reports = {}

        config = MemoryMapConfig(
            target_id=self._get(self.data, 'targetId', '(root)'),
            display_name=self.data.get('displayName'),
            notes=self.data.get('notes'),
            address_windows=tuple(
                self._parse_window(item, index)
                for index, item in enumerate(self._list('addressWindows'))),
            hardware_banks=tuple(
                self._parse_bank(item, index)
                for index, item in enumerate(self._list('hardwareBanks'))),
            section_categories=tuple(
                self._parse_category(item, index)
                for index, item in enumerate(self._list('sectionCategories'))),
            logical_blocks=tuple(
                self._parse_block(item, index)
                for index, item in enumerate(self._list('logicalBlocks'))),
            section_rules=tuple(
                self._parse_rule(item, index)
                for index, item in enumerate(self._list('sectionRules'))),
            reports={
                key: self._parse_report_entry(item, key) for key, item in reports.items()},
        )

        if not self.problems:
            self._check_references(config)
        if self.problems:
            raise ConfigValidationError(
                f"Memory map config at {self.source} failed validation:", self.problems)
        return config


def parse_memory_map(data: Dict[str, Any], source: str = '<memory map>') -> MemoryMapConfig:
    """Validate a memory map document and convert it to a MemoryMapConfig."""
    return MemoryMapParser(data, source).parse()


def load_memory_map_from_file(file_path: Union[str, Path]) -> MemoryMapConfig:
    """Load and validate a memory map JSON file.

    Raises:
        ConfigValidationError: If the file is missing, not JSON, or invalid
    """
    path = Path(file_path)
    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)
    except (IOError, OSError) as e:
        raise ConfigValidationError(f"Cannot read memory map config {path}: {e}") from e
    except json.JSONDecodeError as e:
        raise ConfigValidationError(f"Failed to parse JSON in {path}: {e}") from e

    logger.debug("Loaded memory map config from %s", path)
    return parse_memory_map(data, str(path))


def get_memory_map_config_path(target_id: str, base_dir: Optional[Union[str, Path]] = None) -> Path:
    """Path of a target's memory map file."""
    return Path(base_dir or DEFAULT_CONFIG_DIR) / f"{target_id}.json"


def load_memory_map(target_id: str,
                    base_dir: Optional[Union[str, Path]] = None) -> MemoryMapConfig:
    """Load the memory map of a named target."""
    return load_memory_map_from_file(get_memory_map_config_path(target_id, base_dir))


def list_targets(base_dir: Optional[Union[str, Path]] = None) -> List[str]:
    """Names of the targets available in a config directory."""
    return sorted(path.stem for path in Path(base_dir or DEFAULT_CONFIG_DIR).glob('*.json'))
