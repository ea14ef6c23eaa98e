"""
Statement assembly from provider results.
"""

from .assembler import ReportAssembler, build_entries, build_sources

__all__ = [
    "ReportAssembler",
    "build_entries",
    "build_sources",
]
