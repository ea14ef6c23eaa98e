"""
SQLite-based state store implementation.

Tables:
- access_tokens: Last OAuth token per provider, reused across invocations
- report_runs: One row per produced statement (for incremental runs)
"""

import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path
from typing import Any

from ..schemas.transaction import AccessToken, Report


def _iso(value: datetime) -> str:
    # Fixed width so ORDER BY on the text column sorts chronologically
    utc = value.astimezone(timezone.utc)
    return utc.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _parse_iso(value: str) -> datetime:
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


@dataclass
class ReportRunRecord:
    """Record of a generated statement."""

    id: int
    provider: str
    currency: str
    start: datetime
    end: datetime
    report_date: datetime
    balance: Decimal
    num_txns: int
    created_at: str

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "ReportRunRecord":
        """Create from database row."""
        return cls(
            id=row["id"],
            provider=row["provider"],
            currency=row["currency"],
            start=_parse_iso(row["interval_start"]),
            end=_parse_iso(row["interval_end"]),
            report_date=_parse_iso(row["report_date"]),
            balance=Decimal(row["balance"]),
            num_txns=row["num_txns"],
            created_at=row["created_at"],
        )


class StateStore:
    """
    SQLite-based state store.

    Provides persistent tracking of:
    - Provider access tokens (so a new process can skip the credential exchange)
    - Generated reports (so the next run can start where the last one ended)

    Thread-safe for single-writer scenarios.
    """

    SCHEMA_VERSION = 1

    def __init__(self, db_path: Path | str):
        """
        Initialize state store.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _get_connection(self) -> sqlite3.Connection:
        """Get a database connection with row factory."""
        conn = sqlite3.connect(str(self.db_path))
        conn.row_factory = sqlite3.Row
        return conn

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        """Context manager for database transactions."""
        conn = self._get_connection()
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _init_db(self) -> None:
        """Initialize database schema."""
        with self._transaction() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS schema_version (
                    version INTEGER PRIMARY KEY
                )
            """
            )

            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS access_tokens (
                    provider TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    expires_at TEXT NOT NULL,
                    obtained_via TEXT,
                    updated_at TEXT NOT NULL
                )
            """
            )

            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS report_runs (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    provider TEXT NOT NULL,
                    currency TEXT NOT NULL,
                    interval_start TEXT NOT NULL,
                    interval_end TEXT NOT NULL,
                    report_date TEXT NOT NULL,
                    balance TEXT NOT NULL,
                    num_txns INTEGER NOT NULL,
                    created_at TEXT NOT NULL
                )
            """
            )

            conn.execute(
                """
                CREATE INDEX IF NOT EXISTS idx_report_runs_provider
                ON report_runs(provider, currency, interval_end)
            """
            )

            conn.execute(
                "INSERT OR IGNORE INTO schema_version (version) VALUES (?)",
                (self.SCHEMA_VERSION,),
            )

    # Token methods

    def load_token(self, provider: str) -> AccessToken | None:
        """Get the persisted token for a provider, if any."""
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT * FROM access_tokens WHERE provider = ?", (provider,)
            ).fetchone()
            if not row:
                return None
            return AccessToken(
                value=row["value"],
                expires_at=_parse_iso(row["expires_at"]),
                obtained_via=row["obtained_via"] or provider,
            )

    def save_token(self, provider: str, token: AccessToken) -> None:
        """Insert or replace the persisted token for a provider."""
        now = _iso(datetime.now(timezone.utc))
        with self._transaction() as conn:
            conn.execute(
                """
                INSERT INTO access_tokens (provider, value, expires_at, obtained_via, updated_at)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(provider) DO UPDATE SET
                    value = excluded.value,
                    expires_at = excluded.expires_at,
                    obtained_via = excluded.obtained_via,
                    updated_at = excluded.updated_at
            """,
                (provider, token.value, _iso(token.expires_at), token.obtained_via, now),
            )

    def delete_token(self, provider: str) -> bool:
        """Forget the persisted token. Returns True if one existed."""
        with self._transaction() as conn:
            cursor = conn.execute("DELETE FROM access_tokens WHERE provider = ?", (provider,))
            return cursor.rowcount > 0

    # Report run methods

    def record_report(self, report: Report) -> int:
        """Save a report run. Returns the run ID."""
        now = _iso(datetime.now(timezone.utc))
        with self._transaction() as conn:
            cursor = conn.execute(
                """
                INSERT INTO report_runs
                (provider, currency, interval_start, interval_end, report_date, balance, num_txns, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
                (
                    report.provider,
                    report.currency,
                    _iso(report.interval.start),
                    _iso(report.interval.end),
                    _iso(report.report_date),
                    str(report.balance.amount),
                    report.num_txns,
                    now,
                ),
            )
            return cursor.lastrowid or 0

    def get_last_report_end(self, provider: str, currency: str) -> datetime | None:
        """End (exclusive) of the latest report for provider/currency."""
        with self._transaction() as conn:
            row = conn.execute(
                """
                SELECT interval_end FROM report_runs
                WHERE provider = ? AND currency = ?
                ORDER BY interval_end DESC LIMIT 1
            """,
                (provider, currency),
            ).fetchone()
            return _parse_iso(row["interval_end"]) if row else None

    def get_report_runs(self, provider: str | None = None, limit: int = 20) -> list[ReportRunRecord]:
        """Most recent report runs, newest first."""
        query = "SELECT * FROM report_runs"
        params: list[Any] = []
        if provider:
            query += " WHERE provider = ?"
            params.append(provider)
        query += " ORDER BY id DESC LIMIT ?"
        params.append(limit)

        with self._transaction() as conn:
            rows = conn.execute(query, params).fetchall()
            return [ReportRunRecord.from_row(row) for row in rows]
