"""Report subcommand - memory usage report for a firmware ELF."""

import argparse
import json
import logging

from jinja2 import TemplateError as Jinja2TemplateError

from ..core.generator import ReportGenerator
from ..exceptions import MemModelError
from ..utils.formatter import DEFAULT_TEMPLATE, build_report_context, render_jinja2_template
from .common import add_target_arguments, load_config, toolchain_from_args

logger = logging.getLogger(__name__)


def add_report_parser(subparsers) -> argparse.ArgumentParser:
    """Add 'report' subcommand parser."""
    parser = subparsers.add_parser(
        'report',
        help='Report memory usage of a firmware ELF',
        description=(
            'Analyze a firmware ELF against a target memory map.\n\n'
            'Shows hardware bank usage including rounding and reservations,\n'
            'the target size report and the largest symbols.'
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    add_target_arguments(parser)

    output_group = parser.add_mutually_exclusive_group()
    output_group.add_argument(
        '--json',
        action='store_true',
        help='Output the full report as JSON',
    )
    output_group.add_argument(
        '--template',
        type=str,
        metavar='PATH',
        help='Path to custom Jinja2 template (default: built-in template)',
    )

    parser.add_argument(
        '--template-groups',
        action='store_true',
        help='Group C++ template instantiations in the report',
    )
    parser.add_argument(
        '--map',
        dest='map_path',
        metavar='PATH',
        help='Linker map file to record in the build info',
    )

    return parser


def run_report(args: argparse.Namespace) -> int:
    """
    Run report subcommand.

    Returns:
        Exit code (0 for success, 1 for error)
    """
    try:
        config = load_config(args)
        generator = ReportGenerator(args.elf_path, config, toolchain_from_args(args),
                                    map_path=args.map_path)
        report = generator.generate_report(include_template_groups=args.template_groups)

        if args.json:
            print(json.dumps(report, indent=2))
        else:
            template_path = args.template or str(DEFAULT_TEMPLATE)
            print(render_jinja2_template(template_path, build_report_context(report)))
        return 0

    except (FileNotFoundError, Jinja2TemplateError) as e:
        logger.error("Template error: %s", e)
        return 1
    except MemModelError as e:
        logger.error("%s", e)
        return 1
