#!/usr/bin/env python3
"""Tests for section classification."""

import unittest

from conftest import make_config, make_sample_sections, make_section

from memmodel.analysis.sections import SectionClassifier, classify_sections
from memmodel.exceptions import UnclassifiedSectionError
from memmodel.models import SectionRule, SectionRuleMatch


def rule(category_id, **match):
    """Build a SectionRule from match keyword arguments."""
    return SectionRule(match=SectionRuleMatch(**match), category_id=category_id)


class TestRuleMatching(unittest.TestCase):
    """Test individual match criteria"""

    def setUp(self):
        self.classifier = SectionClassifier([])

    def test_equals(self):
        """equals must match the full name"""
        self.assertTrue(self.classifier.matches('.text', rule('code', equals='.text')))
        self.assertFalse(self.classifier.matches('.text.main', rule('code', equals='.text')))

    def test_prefix_and_suffix(self):
        """prefix and suffix match the ends of the name"""
        self.assertTrue(self.classifier.matches('.rodata.str1', rule('ro', prefix='.rodata')))
        self.assertTrue(self.classifier.matches('.ram.bss', rule('bss', suffix='.bss')))
        self.assertFalse(self.classifier.matches('.bss.ram', rule('bss', suffix='.ram.bss')))

    def test_regex_searches(self):
        """regex matches anywhere unless anchored"""
        self.assertTrue(self.classifier.matches('.bss.extram', rule('ext', regex='extram')))
        self.assertFalse(self.classifier.matches('.bss.extram', rule('ext', regex='^extram')))

    def test_any_criterion_is_sufficient(self):
        """A rule matches when any one of its criteria does"""
        combined = rule('code', equals='.nope', prefix='.text')
        self.assertTrue(self.classifier.matches('.text.foo', combined))


class TestClassification(unittest.TestCase):
    """Test first-match classification over sections"""

    def test_first_matching_rule_wins(self):
        """.text.itcm is listed before the .text prefix rule"""
        config = make_config()
        sections = classify_sections(make_sample_sections(), config.section_rules)
        categories = {section.name: section.category_id for section in sections}
        self.assertEqual(categories['.text'], 'code')
        self.assertEqual(categories['.text.itcm'], 'code_fast')
        self.assertEqual(categories['.data'], 'data')
        self.assertEqual(categories['.bss'], 'bss')

    def test_non_alloc_and_empty_sections_left_uncategorized(self):
        """Sections that take no memory are returned unchanged"""
        sections = [
            make_section('sec_1', '.comment', 0, 0x40, flags=''),
            make_section('sec_2', '.text.empty', 0x60000000, 0, flags='AX'),
        ]
        classified = classify_sections(sections, make_config().section_rules)
        self.assertEqual(len(classified), 2)
        self.assertTrue(all(section.category_id is None for section in classified))

    def test_unclassified_allocated_section_aborts(self):
        """Every unmatched allocated section is named in one error"""
        sections = [
            make_section('sec_1', '.text', 0x60000000, 0x10, flags='AX'),
            make_section('sec_2', '.noinit', 0x20001000, 0x20, flags='WA'),
            make_section('sec_3', '.heap', 0x20002000, 0x30, flags='WA'),
        ]
        with self.assertRaises(UnclassifiedSectionError) as context:
            classify_sections(sections, make_config().section_rules)
        message = str(context.exception)
        self.assertIn('.noinit (0x20001000)', message)
        self.assertIn('.heap (0x20002000)', message)

    def test_input_sections_not_modified(self):
        """Classification returns new section records"""
        sections = make_sample_sections()
        classify_sections(sections, make_config().section_rules)
        self.assertIsNone(sections[0].category_id)


if __name__ == '__main__':
    unittest.main()
