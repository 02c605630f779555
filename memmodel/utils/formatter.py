"""Build template context from a memory report and render it with Jinja2."""

from pathlib import Path
from typing import Any, Dict, List

from jinja2 import Environment, FileSystemLoader

DEFAULT_TEMPLATE = Path(__file__).parent / 'templates' / 'default_report.j2'
TOP_SYMBOL_COUNT = 10


def format_bytes(value: int) -> str:
    """Human readable byte count, e.g. '12,288 B (12.0 KiB)'."""
    if value is None:
        return '-'
    if abs(value) < 1024:
        return f"{value:,} B"
    return f"{value:,} B ({value / 1024:.1f} KiB)"


def enrich_banks(banks: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Add utilization percentage to each hardware bank summary."""
    enriched = []
    for bank in banks:
        capacity = bank.get('capacity_bytes', 0)
        used = bank.get('adjusted_used_bytes', 0)
        enriched.append({
            **bank,
            'utilization_pct': (used / capacity * 100) if capacity > 0 else 0,
            'rounding_delta': used - bank.get('raw_used_bytes', 0),
        })
    return enriched


def largest_symbols(symbols: List[Dict[str, Any]], count: int = TOP_SYMBOL_COUNT
                    ) -> List[Dict[str, Any]]:
    """Largest symbols first; ties keep address order."""
    ordered = sorted(symbols, key=lambda symbol: (-symbol.get('size', 0), symbol.get('addr', 0)))
    return ordered[:count]


def build_report_context(report: Dict[str, Any]) -> Dict[str, Any]:
    """
    Build template context from a generated report.

    Args:
        report: Dictionary produced by ReportGenerator.generate_report

    Returns:
        Dictionary with template variables:
        - target: target name, machine and pointer size
        - banks: hardware bank summaries with utilization
        - report_entries: named size report entries
        - top_symbols: largest symbols
        - template_groups: largest template groups (empty unless requested)
        - warnings: data-quality warnings
    """
    summaries = report.get('summaries', {})
    groups = [group for group in report.get('template_groups', []) if group.get('is_template')]
    groups.sort(key=lambda group: -group.get('size_bytes', 0))

    return {
        'target_id': report.get('target_id'),
        'target': report.get('target', {}),
        'elf_path': report.get('build', {}).get('elf_path'),
        'totals': summaries.get('totals', {}),
        'banks': enrich_banks(summaries.get('hardware_banks', [])),
        'report_entries': report.get('report', {}),
        'file_only': summaries.get('file_only', {}),
        'top_symbols': largest_symbols(report.get('symbols', [])),
        'template_groups': groups[:TOP_SYMBOL_COUNT],
        'warnings': report.get('warnings', []),
    }


def render_jinja2_template(template_path: str, context: dict) -> str:
    """Load and render a Jinja2 template.

    Raises:
        FileNotFoundError: If template file doesn't exist
        jinja2.TemplateError: If template has syntax errors
    """
    template_file = Path(template_path)
    if not template_file.exists():
        raise FileNotFoundError(f"Template file not found: {template_path}")

    env = Environment(
        loader=FileSystemLoader(template_file.parent),
        autoescape=False,
        trim_blocks=True,
        lstrip_blocks=True,
    )
    env.filters['bytes'] = format_bytes
    template = env.get_template(template_file.name)
    return template.render(**context)
