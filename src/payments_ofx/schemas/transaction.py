"""
Provider-agnostic transaction and report model.

Rules:
- Amounts are Decimal in major currency units (dollars, not cents)
- All timestamps are timezone-aware UTC datetimes
- ReportInterval is [start, end): end is exclusive
- amount_fee is the fee charged, so net = gross - fee
- Records are immutable once a provider's mapping function builds them
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum

from ..errors import InvalidInterval


class TransactionCategory(str, Enum):
    """OFX transaction types emitted by this package."""

    PAYMENT = "PAYMENT"
    FEE = "FEE"
    XFER = "XFER"
    INT = "INT"
    DEBIT = "DEBIT"
    CREDIT = "CREDIT"

    @classmethod
    def by_sign(cls, amount: Decimal) -> "TransactionCategory":
        """Generic DEBIT/CREDIT fallback for uncategorized transactions."""
        return cls.DEBIT if amount < 0 else cls.CREDIT


class ReportMode(str, Enum):
    """How fees are rendered in the statement."""

    NET = "net"  # one entry per transaction at gross - fee
    GROSS = "gross"  # gross entry plus a separate FEE entry


def ensure_utc(value: datetime) -> datetime:
    """Return value as an aware UTC datetime (naive input is taken as UTC)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@dataclass(frozen=True)
class AccessToken:
    """Bearer token issued by a provider's token endpoint."""

    value: str
    expires_at: datetime
    obtained_via: str  # provider name / credential id it was exchanged for

    def is_usable(self, now: datetime, safety_margin) -> bool:
        return ensure_utc(now) < ensure_utc(self.expires_at) - safety_margin


@dataclass(frozen=True)
class ReportInterval:
    """Half-open report interval [start, end)."""

    start: datetime
    end: datetime

    def __post_init__(self) -> None:
        object.__setattr__(self, "start", ensure_utc(self.start))
        object.__setattr__(self, "end", ensure_utc(self.end))
        if self.start > self.end:
            raise InvalidInterval(self.start, self.end)


@dataclass(frozen=True)
class BalanceSnapshot:
    """Ledger balance at the report interval's end."""

    amount: Decimal
    as_of: datetime


@dataclass(frozen=True)
class Transaction:
    """
    Normalized balance-affecting transaction.

    id is the statement FITID (unique per provider); reference is the
    provider's own transaction id, used when a fee entry has to point back
    at the transaction it belongs to.
    """

    id: str
    reference: str
    effective_date: datetime
    amount_gross: Decimal
    amount_fee: Decimal
    counterparty_name: str
    category: TransactionCategory
    memo_parts: tuple[str, ...] = field(default_factory=tuple)

    @property
    def amount_net(self) -> Decimal:
        return self.amount_gross - self.amount_fee

    @property
    def memo(self) -> str:
        return " // ".join(part for part in self.memo_parts if part)


@dataclass(frozen=True)
class ProviderResult:
    """Everything a provider source resolved for one requested interval."""

    report_date: datetime
    interval: ReportInterval
    balance: BalanceSnapshot
    transactions: tuple[Transaction, ...]
    account_id: str


class NoDataYet:
    """Marker returned when the provider has not published data for the window."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "NO_DATA_YET"


NO_DATA_YET = NoDataYet()


@dataclass(frozen=True)
class StatementEntry:
    """A single <STMTTRN> block ready for encoding."""

    trn_type: TransactionCategory
    posted: datetime
    amount: Decimal
    fitid: str
    name: str
    memo: str


@dataclass
class Report:
    """Final statement returned to the caller."""

    provider: str
    currency: str
    mode: ReportMode
    report_date: datetime
    interval: ReportInterval
    balance: BalanceSnapshot
    transactions: list[Transaction]
    entries: list[StatementEntry]
    encoded: str

    @property
    def num_txns(self) -> int:
        return len(self.transactions)

    def to_summary(self) -> dict:
        """Small JSON-friendly summary (no statement body)."""
        return {
            "provider": self.provider,
            "currency": self.currency,
            "mode": self.mode.value,
            "report_date": self.report_date.isoformat(),
            "start": self.interval.start.isoformat(),
            "end": self.interval.end.isoformat(),
            "balance": str(self.balance.amount),
            "num_txns": self.num_txns,
            "num_entries": len(self.entries),
        }
