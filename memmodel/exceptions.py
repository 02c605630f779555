#!/usr/bin/env python3
"""
Custom exceptions for memory model analysis.

Configuration errors are fatal: they mean the target configuration cannot
describe the build being analyzed. Data-quality problems are not exceptions,
they are returned as warning lists alongside normal results.
"""


class MemModelError(Exception):
    """Base exception for all memmodel errors"""


class ConfigurationError(MemModelError):
    """Target configuration is inconsistent with itself or with the build"""


class ConfigValidationError(ConfigurationError):
    """Memory map configuration failed validation"""

    def __init__(self, message: str, problems=None):
        self.problems = list(problems or [])
        if self.problems:
            message = message + '\n' + '\n'.join(f"  - {problem}" for problem in self.problems)
        super().__init__(message)


class UnclassifiedSectionError(ConfigurationError):
    """An allocated section matched no section rule"""


class UnmappedCategoryError(ConfigurationError):
    """A section category has no logical blocks"""


class MissingAddressError(ConfigurationError):
    """A section lacks the address required by a logical block role"""


class ReportConfigError(ConfigurationError):
    """A report entry references an unknown hardware bank or logical block"""


class ToolchainError(MemModelError):
    """A binutils tool could not be run or returned an error"""


class AnalysisError(MemModelError):
    """Unexpected failure while generating an analysis report"""


class ELFAnalysisError(MemModelError):
    """ELF header could not be read"""
