"""Shared pytest fixtures and builders for memmodel tests."""

import copy

import pytest

from memmodel.analysis import analyze
from memmodel.config import parse_memory_map
from memmodel.models import RawSymbol, Section, SectionFlags

FLASH_BASE = 0x60000000
DTCM_BASE = 0x20000000

SAMPLE_MEMORY_MAP = {
    'targetId': 'sample',
    'displayName': 'Sample board',
    'addressWindows': [
        {'id': 'flash_win', 'name': 'Flash', 'baseAddress': '0x60000000', 'sizeBytes': '0x10000'},
        {'id': 'itcm', 'name': 'ITCM', 'baseAddress': 0, 'sizeBytes': '0x20000'},
        {'id': 'dtcm', 'name': 'DTCM', 'baseAddress': '0x20000000', 'sizeBytes': '0x20000'},
    ],
    'hardwareBanks': [
        {'id': 'flash', 'name': 'FLASH', 'capacityBytes': '0x10000', 'windowIds': ['flash_win']},
        {
            'id': 'ram',
            'name': 'RAM',
            'capacityBytes': '0x40000',
            'windowIds': ['itcm', 'dtcm'],
            'roundingRules': [
                {'logicalBlockIds': ['itcm_code'], 'granuleBytes': '0x8000', 'mode': 'ceil'},
            ],
        },
    ],
    'sectionCategories': [
        {'id': 'code'},
        {'id': 'code_fast'},
        {'id': 'data'},
        {'id': 'bss'},
    ],
    'logicalBlocks': [
        {'id': 'flash_code', 'name': 'Code', 'categoryId': 'code', 'windowId': 'flash_win',
         'role': 'exec', 'reportTags': ['flash_code']},
        {'id': 'itcm_code', 'name': 'ITCM code', 'categoryId': 'code_fast', 'windowId': 'itcm',
         'role': 'exec', 'reportTags': ['itcm']},
        {'id': 'itcm_image', 'categoryId': 'code_fast', 'windowId': 'flash_win',
         'role': 'load', 'reportTags': ['flash_code']},
        {'id': 'dtcm_data', 'categoryId': 'data', 'windowId': 'dtcm', 'role': 'runtime',
         'reportTags': ['ram_data']},
        {'id': 'data_image', 'categoryId': 'data', 'windowId': 'flash_win', 'role': 'load',
         'reportTags': ['flash_data']},
        {'id': 'dtcm_bss', 'categoryId': 'bss', 'windowId': 'dtcm', 'reportTags': ['ram_bss']},
    ],
    'sectionRules': [
        {'match': {'equals': '.text.itcm'}, 'categoryId': 'code_fast'},
        {'match': {'prefix': '.text'}, 'categoryId': 'code'},
        {'match': {'prefix': '.data'}, 'categoryId': 'data'},
        {'match': {'regex': r'^\.bss'}, 'categoryId': 'bss'},
    ],
    'reports': {
        'FLASH': {
            'hardwareBankId': 'flash',
            'codeBlockIds': ['flash_code'],
            'blockIds': ['flash_code', 'itcm_image', 'data_image'],
            'tagBuckets': {'code': ['flash_code'], 'data': ['flash_data']},
        },
        'RAM': {
            'hardwareBankId': 'ram',
            'codeBlockIds': ['itcm_code'],
            'dataBlockIds': ['dtcm_data', 'dtcm_bss'],
            'tagBuckets': {'variables': ['ram_data', 'ram_bss']},
        },
    },
}


def make_memory_map_data(**overrides):
    """Deep copy of the sample memory map document with top-level overrides."""
    data = copy.deepcopy(SAMPLE_MEMORY_MAP)
    data.update(overrides)
    return data


def make_config(**overrides):
    """Parsed sample MemoryMapConfig."""
    return parse_memory_map(make_memory_map_data(**overrides))


def make_section(section_id, name, vma, size, lma=None, flags='A'):
    """Create an uncategorized section; flags use readelf letters."""
    return Section(
        id=section_id,
        name=name,
        vma_start=vma,
        size=size,
        lma_start=lma,
        flags=SectionFlags(
            alloc='A' in flags,
            exec='X' in flags,
            write='W' in flags,
            tls='T' in flags,
        ),
    )


def make_symbol(address, size, type_code, name, raw_name=None):
    """Create a raw nm symbol record."""
    return RawSymbol(address=address, size=size, type_code=type_code, name=name,
                     raw_name=raw_name or name)


def make_sample_sections():
    """
    Sections of a small dual-image build:

    - .text      0x1000 bytes in flash
    - .text.itcm 0x1234 bytes executing from ITCM, loaded from flash
    - .data      0x100 bytes in DTCM, initializers in flash
    - .bss       0x200 bytes in DTCM
    - .comment   0x40 bytes, not allocated
    """
    return [
        make_section('sec_1', '.text', FLASH_BASE, 0x1000, lma=FLASH_BASE, flags='AX'),
        make_section('sec_2', '.text.itcm', 0x0, 0x1234, lma=FLASH_BASE + 0x1000, flags='AX'),
        make_section('sec_3', '.data', DTCM_BASE, 0x100, lma=FLASH_BASE + 0x2234, flags='WA'),
        make_section('sec_4', '.bss', DTCM_BASE + 0x100, 0x200, lma=DTCM_BASE + 0x100,
                     flags='WA'),
        make_section('sec_5', '.comment', 0x0, 0x40, flags=''),
    ]


def make_sample_symbols():
    """nm records matching make_sample_sections, including an alias pair and a stray."""
    return [
        make_symbol(FLASH_BASE + 0x100, 0x20, 'T', 'main'),
        make_symbol(FLASH_BASE + 0x200, 0x8, 'W', 'handler()', '_Z7handlerv'),
        make_symbol(FLASH_BASE + 0x200, 0x8, 'T', 'handler()', '_Z7handlerv.strong'),
        make_symbol(0x10, 0x10, 'T', 'fast_isr'),
        make_symbol(DTCM_BASE, 0x4, 'D', 'counter'),
        make_symbol(DTCM_BASE + 0x100, 0x80, 'b', 'buffer'),
        make_symbol(0x70000000, 0x4, 'D', 'stray'),
    ]


@pytest.fixture
def sample_config():
    """Parsed sample memory map."""
    return make_config()


@pytest.fixture
def sample_analysis(sample_config):
    """Analysis of the sample sections and symbols."""
    return analyze(make_sample_sections(), make_sample_symbols(), sample_config)
