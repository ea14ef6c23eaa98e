"""
Normalized data model shared by providers, assembler and encoder.
"""

from .transaction import (
    NO_DATA_YET,
    AccessToken,
    BalanceSnapshot,
    NoDataYet,
    ProviderResult,
    Report,
    ReportInterval,
    ReportMode,
    StatementEntry,
    Transaction,
    TransactionCategory,
    ensure_utc,
)

__all__ = [
    "NO_DATA_YET",
    "AccessToken",
    "BalanceSnapshot",
    "NoDataYet",
    "ProviderResult",
    "Report",
    "ReportInterval",
    "ReportMode",
    "StatementEntry",
    "Transaction",
    "TransactionCategory",
    "ensure_utc",
]
