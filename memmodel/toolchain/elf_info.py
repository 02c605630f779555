#!/usr/bin/env python3
"""
ELF header metadata.

Only the file header is read here; sections and symbols come from binutils.
"""

from elftools.common.exceptions import ELFError
from elftools.elf.elffile import ELFFile

from ..exceptions import ELFAnalysisError
from ..models import TargetInfo

MACHINE_NAMES = {
    'EM_ARM': 'ARM',
    'EM_AARCH64': 'ARM64',
    'EM_X86_64': 'x86_64',
    'EM_386': 'x86',
    'EM_XTENSA': 'Xtensa',
    'EM_RISCV': 'RISC-V',
    'EM_MIPS': 'MIPS',
}


def read_target_info(elf_path: str, name: str = "Unknown") -> TargetInfo:
    """Read pointer size, machine, endianness and entry point from an ELF.

    Raises:
        ELFAnalysisError: If the file cannot be opened or is not an ELF
    """
    try:
        with open(elf_path, 'rb') as f:
            elffile = ELFFile(f)
            header = elffile.header
            return TargetInfo(
                name=name,
                pointer_size=elffile.elfclass // 8,
                machine=MACHINE_NAMES.get(header['e_machine'], str(header['e_machine'])),
                endianness='little' if elffile.little_endian else 'big',
                entry_point=header['e_entry'],
            )
    except (IOError, OSError) as e:
        raise ELFAnalysisError(f"Failed to read ELF file {elf_path}: {e}") from e
    except ELFError as e:
        raise ELFAnalysisError(f"Invalid ELF file format {elf_path}: {e}") from e
