#!/usr/bin/env python3
"""Tests for the report generator, text formatting and the CLI."""

import json
import os
import shutil
import tempfile
import unittest
from io import StringIO
from pathlib import Path
from unittest.mock import patch

from conftest import make_section, make_symbol

from memmodel.cli import main
from memmodel.config import load_memory_map
from memmodel.core.generator import ReportGenerator
from memmodel.exceptions import AnalysisError, ELFAnalysisError, ToolchainError
from memmodel.models import SourceLocation, TargetInfo
from memmodel.toolchain import resolve_toolchain
from memmodel.utils.formatter import build_report_context, format_bytes, \
    render_jinja2_template


def teensy_sections():
    """Sections of a small Teensy 4.1 build."""
    return [
        make_section('sec_1', '.text.headers', 0x60000000, 0x400, lma=0x60000000, flags='A'),
        make_section('sec_2', '.text.itcm', 0x0, 0x1234, lma=0x60000400, flags='AX'),
        make_section('sec_3', '.text', 0x60001634, 0x2000, lma=0x60001634, flags='AX'),
        make_section('sec_4', '.data', 0x20000000, 0x100, lma=0x60003634, flags='WA'),
        make_section('sec_5', '.bss', 0x20000100, 0x200, lma=0x20000100, flags='WA'),
        make_section('sec_6', '.comment', 0x0, 0x40, flags=''),
    ]


def teensy_symbols():
    """nm records for teensy_sections."""
    return [
        make_symbol(0x60001700, 0x40, 'T', 'setup'),
        make_symbol(0x60001740, 0x20, 'T', 'Queue<int>::push(int)'),
        make_symbol(0x60001760, 0x20, 'T', 'Queue<char>::push(char)'),
        make_symbol(0x00000100, 0x80, 'T', 'fast_loop'),
        make_symbol(0x20000000, 0x4, 'D', 'counter'),
    ]


class GeneratorTestCase(unittest.TestCase):
    """Patches the toolchain so the generator runs on canned data"""

    def setUp(self):
        self.temp_dir = Path(tempfile.mkdtemp())
        self.elf_path = str(self.temp_dir / 'firmware.elf')
        Path(self.elf_path).write_bytes(b'\x7fELF')

        patches = [
            patch('memmodel.core.generator.collect_sections',
                  side_effect=lambda *_: teensy_sections()),
            patch('memmodel.core.generator.collect_symbols',
                  side_effect=lambda *_: teensy_symbols()),
            patch('memmodel.core.generator.read_target_info',
                  side_effect=lambda path, name: TargetInfo(name=name, machine='ARM')),
        ]
        self.mocks = [p.start() for p in patches]
        for p in patches:
            self.addCleanup(p.stop)

    def tearDown(self):
        shutil.rmtree(self.temp_dir)


class TestReportGenerator(GeneratorTestCase):
    """Test the end-to-end report dictionary"""

    def generate(self, **kwargs):
        """Generate a Teensy 4.1 report."""
        generator = ReportGenerator(self.elf_path, load_memory_map('teensy41'),
                                    resolve_toolchain())
        return generator.generate_report(**kwargs)

    def test_report_structure(self):
        """Report carries target, sections, symbols, summaries and entries"""
        report = self.generate()
        self.assertEqual(report['target_id'], 'teensy41')
        self.assertEqual(report['target']['name'], 'Teensy 4.1')
        self.assertEqual(report['build']['elf_path'], self.elf_path)
        self.assertEqual(len(report['sections']), 6)
        self.assertEqual(len(report['symbols']), 5)
        self.assertNotIn('template_groups', report)
        json.dumps(report)

    def test_bank_figures(self):
        """Flash keeps the EEPROM reservation, RAM1 rounds ITCM"""
        report = self.generate()
        flash = report['report']['FLASH']
        self.assertEqual(flash['raw_used_bytes'], 0x400 + 0x1234 + 0x2000 + 0x100)
        self.assertEqual(flash['free_bytes'], 0x800000 - 0x3734 - 0x40000)
        self.assertEqual(flash['code_bytes'], 0x2400)
        ram1 = report['report']['RAM1']
        self.assertEqual(ram1['adjusted_used_bytes'], 0x8300)
        self.assertEqual(ram1['code_bytes'], 0x1234)
        self.assertEqual(ram1['bucket_totals'], {'code': 0x1234, 'variables': 0x300})
        self.assertEqual(report['warnings'], [])

    def test_template_groups(self):
        """Template groups are added on request"""
        report = self.generate(include_template_groups=True)
        queue = [g for g in report['template_groups'] if g['id'] == 'Queue']
        self.assertEqual(queue[0]['symbol_count'], 2)

    def test_missing_elf(self):
        """A missing ELF is reported before running any tool"""
        os.unlink(self.elf_path)
        with self.assertRaises(ELFAnalysisError) as context:
            self.generate()
        self.assertIn('ELF file not found', str(context.exception))
        self.mocks[0].assert_not_called()

    def test_toolchain_errors_propagate(self):
        """Known errors are not wrapped"""
        self.mocks[1].side_effect = ToolchainError('nm failed')
        with self.assertRaises(ToolchainError):
            self.generate()

    def test_unexpected_errors_wrapped(self):
        """Anything else becomes AnalysisError"""
        self.mocks[1].side_effect = ValueError('bad data')
        with self.assertRaises(AnalysisError) as context:
            self.generate()
        self.assertIsInstance(context.exception.__cause__, ValueError)


class TestFormatter(unittest.TestCase):
    """Test text report helpers"""

    def test_format_bytes(self):
        """Small values in bytes, larger ones with KiB"""
        self.assertEqual(format_bytes(512), '512 B')
        self.assertEqual(format_bytes(2048), '2,048 B (2.0 KiB)')
        self.assertEqual(format_bytes(None), '-')

    def test_context(self):
        """Banks get utilization and symbols are ranked by size"""
        context = build_report_context({
            'target': {'name': 'X'},
            'summaries': {'hardware_banks': [
                {'name': 'RAM', 'capacity_bytes': 0x100, 'raw_used_bytes': 0x20,
                 'adjusted_used_bytes': 0x40}]},
            'symbols': [{'name': 'a', 'size': 1, 'addr': 0}, {'name': 'b', 'size': 9, 'addr': 4}],
        })
        self.assertEqual(context['banks'][0]['utilization_pct'], 25.0)
        self.assertEqual(context['banks'][0]['rounding_delta'], 0x20)
        self.assertEqual([s['name'] for s in context['top_symbols']], ['b', 'a'])

    def test_missing_template(self):
        """Missing templates raise FileNotFoundError"""
        with self.assertRaises(FileNotFoundError):
            render_jinja2_template('/nonexistent/report.j2', {})


class TestCli(GeneratorTestCase):
    """Test the memmodel command line"""

    def run_cli(self, *argv):
        """Run main() and capture stdout."""
        with patch('sys.stdout', new_callable=StringIO) as stdout:
            exit_code = main(list(argv))
        return exit_code, stdout.getvalue()

    def test_text_report(self):
        """The default template lists banks and report entries"""
        exit_code, output = self.run_cli('report', self.elf_path, '--target', 'teensy41')
        self.assertEqual(exit_code, 0)
        self.assertIn('Memory report for Teensy 4.1 (ARM, 32-bit)', output)
        self.assertIn('RAM1:', output)
        self.assertIn('reserved:', output)

    def test_json_report(self):
        """--json prints the report dictionary"""
        exit_code, output = self.run_cli('report', self.elf_path, '--target', 'teensy41',
                                         '--json', '--template-groups')
        self.assertEqual(exit_code, 0)
        report = json.loads(output)
        self.assertIn('template_groups', report)
        self.assertEqual(report['report']['RAM2']['block_bytes'], 0)

    def test_custom_template(self):
        """--template renders a user template"""
        template = self.temp_dir / 'short.j2'
        template.write_text('{% for bank in banks %}{{ bank.name }}\n{% endfor %}',
                            encoding='utf-8')
        exit_code, output = self.run_cli('report', self.elf_path, '--target', 'teensy41',
                                         '--template', str(template))
        self.assertEqual(exit_code, 0)
        self.assertEqual(output.split(), ['FLASH', 'RAM1', 'RAM2', 'EXTRAM'])

    def test_config_error_exit_code(self):
        """Configuration problems exit with 1"""
        exit_code, _ = self.run_cli('report', self.elf_path, '--config',
                                    str(self.temp_dir / 'missing.json'))
        self.assertEqual(exit_code, 1)

    def test_resolve(self):
        """resolve prints one line per address"""
        exit_code, output = self.run_cli('resolve', self.elf_path, '0x100', '0x90000000',
                                         '--target', 'teensy41')
        self.assertEqual(exit_code, 0)
        lines = output.splitlines()
        self.assertIn('ITCM/ITCM code [exec] +0x100', lines[0])
        self.assertIn('symbol fast_loop +0x0', lines[0])
        self.assertEqual(lines[1], '0x90000000: not found')

    def test_resolve_address_type(self):
        """--address-type load prefers the flash image"""
        exit_code, output = self.run_cli('resolve', self.elf_path, '0x60000500',
                                         '--target', 'teensy41', '--address-type', 'load',
                                         '--json')
        self.assertEqual(exit_code, 0)
        result = json.loads(output)[0]
        self.assertEqual(result['region']['block_id'], 'itcm_code_image')
        self.assertEqual(result['section']['address_type'], 'load')

    @patch('memmodel.commands.resolve.resolve_symbol_source',
           return_value=SourceLocation(file='src/loop.cpp', line=42))
    def test_resolve_source(self, mock_source):
        """--source appends the symbol's file and line from addr2line"""
        exit_code, output = self.run_cli('resolve', self.elf_path, '0x100', '0x104',
                                         '--target', 'teensy41', '--source')
        self.assertEqual(exit_code, 0)
        lines = output.splitlines()
        self.assertTrue(lines[0].endswith('symbol fast_loop +0x0 (src/loop.cpp:42)'))
        self.assertTrue(lines[1].endswith('symbol fast_loop +0x4 (src/loop.cpp:42)'))
        mock_source.assert_called_once()
        self.assertEqual(mock_source.call_args[0][1], self.elf_path)
        self.assertEqual(mock_source.call_args[0][2].name, 'fast_loop')

    @patch('memmodel.commands.resolve.resolve_symbol_source', return_value=None)
    def test_resolve_source_json(self, mock_source):
        """Unknown locations are left out of the JSON output"""
        exit_code, output = self.run_cli('resolve', self.elf_path, '0x100', '0x90000000',
                                         '--target', 'teensy41', '--source', '--json')
        self.assertEqual(exit_code, 0)
        results = json.loads(output)
        self.assertNotIn('source', results[0])
        self.assertEqual(results[1], {'address': 0x90000000})
        mock_source.assert_called_once()

    def test_resolve_without_source_skips_addr2line(self):
        """addr2line only runs when --source is given"""
        with patch('memmodel.commands.resolve.resolve_symbol_source') as mock_source:
            exit_code, _ = self.run_cli('resolve', self.elf_path, '0x100',
                                        '--target', 'teensy41')
        self.assertEqual(exit_code, 0)
        mock_source.assert_not_called()

    def test_invalid_address(self):
        """Bad addresses are rejected by argparse"""
        with patch('sys.stderr', new_callable=StringIO):
            with self.assertRaises(SystemExit):
                self.run_cli('resolve', self.elf_path, 'xyz', '--target', 'teensy41')

    def test_targets(self):
        """targets lists built-in memory maps"""
        exit_code, output = self.run_cli('targets')
        self.assertEqual(exit_code, 0)
        self.assertIn('teensy41', output.split())


if __name__ == '__main__':
    unittest.main()
