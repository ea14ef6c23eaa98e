"""
State Store (SQLite-based).

Lightweight persistent DB for tracking:
- Provider access tokens across process invocations
- Generated reports (last end date per provider/currency)
"""

from .sqlite_store import (
    ReportRunRecord,
    StateStore,
)

__all__ = [
    "StateStore",
    "ReportRunRecord",
]
