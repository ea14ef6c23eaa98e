"""
OFX 1.02 statement encoding.

Provides:
- Header / transaction / footer rendering
- UTC date formatting and SGML escaping with field limits
- Statement file output
"""

from .encoder import (
    TXN_TYPES,
    escape,
    format_date,
    make_footer,
    make_header,
    make_transaction,
    render_statement,
    statement_filename,
    write_statement,
)

__all__ = [
    "TXN_TYPES",
    "escape",
    "format_date",
    "make_footer",
    "make_header",
    "make_transaction",
    "render_statement",
    "statement_filename",
    "write_statement",
]
