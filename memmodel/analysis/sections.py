#!/usr/bin/env python3
"""
Section classification.

Maps raw linker section names to the section categories declared by the
target configuration. Rules are evaluated in order and the first match wins.
"""

import logging
import re
from dataclasses import replace
from typing import Dict, Iterable, List, Optional, Pattern

from ..exceptions import UnclassifiedSectionError
from ..models import Section, SectionRule

logger = logging.getLogger(__name__)


class SectionClassifier:
    """Assigns section categories using ordered name rules"""

    def __init__(self, rules: Iterable[SectionRule]):
        """Initialize with rules in priority order."""
        self.rules = list(rules)
        self._regex_cache: Dict[str, Pattern] = {}

    def _compiled(self, pattern: str) -> Pattern:
        compiled = self._regex_cache.get(pattern)
        if compiled is None:
            compiled = re.compile(pattern)
            self._regex_cache[pattern] = compiled
        return compiled

    def matches(self, section_name: str, rule: SectionRule) -> bool:
        """Check a section name against a single rule.

        Args:
            section_name: Name of the ELF section
            rule: Rule to evaluate

        Returns:
            True if any of the rule's criteria match
        """
        match = rule.match
        if match.equals is not None and section_name == match.equals:
            return True
        if match.prefix is not None and section_name.startswith(match.prefix):
            return True
        if match.suffix is not None and section_name.endswith(match.suffix):
            return True
        if match.regex is not None and self._compiled(match.regex).search(section_name):
            return True
        return False

    def categorize(self, section_name: str) -> Optional[str]:
        """Return the category of the first matching rule, or None."""
        for rule in self.rules:
            if self.matches(section_name, rule):
                return rule.category_id
        return None

    def classify(self, sections: Iterable[Section]) -> List[Section]:
        """Categorize every allocated, non-empty section.

        Sections that are not allocated or have no content are returned
        unchanged and take no further part in memory accounting.

        Raises:
            UnclassifiedSectionError: If any allocated section matches no rule
        """
        classified = []
        unmatched = []

        for section in sections:
            if not section.occupies_memory:
                classified.append(section)
                continue

            category_id = self.categorize(section.name)
            if category_id is None:
                unmatched.append(section)
                classified.append(section)
                continue

            logger.debug("Section %s -> category %s", section.name, category_id)
            classified.append(replace(section, category_id=category_id))

        if unmatched:
            details = ', '.join(
                f"{section.name} (0x{section.vma_start or 0:x})" for section in unmatched)
            raise UnclassifiedSectionError(f"No section category assigned for: {details}")

        return classified


def classify_sections(sections: Iterable[Section], rules: Iterable[SectionRule]) -> List[Section]:
    """Categorize sections with the given rules (see SectionClassifier.classify)."""
    return SectionClassifier(rules).classify(sections)
