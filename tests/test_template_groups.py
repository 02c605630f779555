#!/usr/bin/env python3
"""Tests for C++ template grouping."""

import unittest

from memmodel.analysis import build_template_groups
from memmodel.analysis.templates import NON_TEMPLATE_GROUP_PREFIX, parse_template_signature
from memmodel.models import Symbol, SymbolKind


def symbol(name, addr, size, section_id='sec_1'):
    """Minimal assigned symbol."""
    return Symbol(id=f"{addr:08x}:{size:x}:{name}", name=name, name_mangled=name,
                  kind=SymbolKind.FUNC, addr=addr, size=size, section_id=section_id)


class TestSignatureParsing(unittest.TestCase):
    """Test template signature splitting"""

    def test_simple_template(self):
        """Base and arguments are split at the outer brackets"""
        self.assertEqual(parse_template_signature('Foo<int>::bar()'), ('Foo', 'int'))

    def test_nested_arguments(self):
        """Nested brackets stay in the argument string"""
        self.assertEqual(parse_template_signature('std::array<Foo<char>, 4>::size()'),
                         ('std::array', 'Foo<char>, 4'))

    def test_non_templates(self):
        """Plain names, operators and unbalanced brackets are not templates"""
        self.assertIsNone(parse_template_signature('main'))
        self.assertIsNone(parse_template_signature('operator<'))
        self.assertIsNone(parse_template_signature('Foo<int'))
        self.assertIsNone(parse_template_signature('<lambda>'))


class TestTemplateGroups(unittest.TestCase):
    """Test grouping of instantiations"""

    def setUp(self):
        groups = build_template_groups([
            symbol('Foo<int>::run()', 0x100, 0x40),
            symbol('Foo<char>::run()', 0x140, 0x20),
            symbol('Foo<int>::stop()', 0x160, 0x10),
            symbol('Foo<int>::stop_alias()', 0x160, 0x10),
            symbol('main', 0x200, 0x30),
        ])
        self.groups = {group.id: group for group in groups}

    def test_groups_by_base_name(self):
        """All Foo instantiations share a group"""
        foo = self.groups['Foo']
        self.assertTrue(foo.is_template)
        self.assertEqual(foo.symbol_count, 4)
        self.assertEqual(foo.size_bytes, 0x80)
        self.assertEqual(foo.unique_size_bytes, 0x70)
        self.assertEqual(foo.largest_symbol_size_bytes, 0x40)
        self.assertEqual(foo.smallest_symbol_size_bytes, 0x10)

    def test_specializations(self):
        """Specializations are keyed by template arguments"""
        specializations = {s.key: s for s in self.groups['Foo'].specializations}
        self.assertEqual(set(specializations), {'int', 'char'})
        self.assertEqual(specializations['int'].symbol_count, 3)
        self.assertEqual(specializations['int'].unique_size_bytes, 0x50)

    def test_non_template_group(self):
        """Plain symbols become single-symbol groups"""
        main = self.groups[f"{NON_TEMPLATE_GROUP_PREFIX} main"]
        self.assertFalse(main.is_template)
        self.assertEqual(main.display_name, 'main')
        self.assertEqual(main.size_bytes, 0x30)


if __name__ == '__main__':
    unittest.main()
