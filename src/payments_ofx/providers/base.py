"""
Provider source interface and shared parsing helpers.
"""

import logging
import re
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any

from ..errors import InvalidInterval, PaymentsOfxError
from ..http_client.client import ResilientHttpClient
from ..schemas.transaction import NoDataYet, ProviderResult, Transaction, ensure_utc

logger = logging.getLogger(__name__)

_COMPACT_OFFSET = re.compile(r"([+-]\d{2})(\d{2})$")


def parse_timestamp(value: str) -> datetime:
    """
    Parse a provider ISO-8601 timestamp into an aware UTC datetime.

    Accepts 'Z', '+00:00' and compact '+0000' offsets.
    """
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    text = _COMPACT_OFFSET.sub(r"\1:\2", text)
    return ensure_utc(datetime.fromisoformat(text))


def format_timestamp(value: datetime) -> str:
    """UTC ISO-8601 with milliseconds and 'Z', e.g. 2024-06-01T00:00:00.000Z."""
    utc = ensure_utc(value)
    return utc.strftime("%Y-%m-%dT%H:%M:%S") + f".{utc.microsecond // 1000:03d}Z"


def to_decimal(value: Any, field: str = "amount", default: Decimal | None = None) -> Decimal:
    """
    Convert a provider amount (string or number) to Decimal.

    A missing value yields default when one is given (optional fields such
    as fees); otherwise missing and unparseable values both raise.

    Raises:
        PaymentsOfxError: Value missing without a default, or not a number
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        if default is None:
            raise PaymentsOfxError(f"Missing {field}")
        return default
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError) as e:
        raise PaymentsOfxError(f"Unparseable {field}: {value!r}") from e
    if not amount.is_finite():
        raise PaymentsOfxError(f"Unparseable {field}: {value!r}")
    return amount


def validate_interval(start: datetime, end: datetime) -> tuple[datetime, datetime]:
    start, end = ensure_utc(start), ensure_utc(end)
    if start > end:
        raise InvalidInterval(start, end)
    return start, end


class ProviderSource(ABC):
    """
    Fetches and normalizes one provider's transactions for an interval.

    Subclasses implement fetch() and normalize(); the assembler uses the
    remaining attributes to render fee entries and the statement header.
    """

    name: str = ""
    institution_id: str = ""
    fee_payee_name: str = ""

    def __init__(self, client: ResilientHttpClient, base_url: str):
        self.client = client
        self.base_url = base_url.rstrip("/")

    @abstractmethod
    def fetch(
        self, start: datetime, end: datetime, currency: str = "USD"
    ) -> ProviderResult | NoDataYet:
        """
        Resolve transactions and balance for [start, end).

        Returns:
            ProviderResult, or NO_DATA_YET if the provider has not published
            data for the window yet

        Raises:
            InvalidInterval: start is later than end
        """

    @abstractmethod
    def normalize(self, raw: dict[str, Any]) -> Transaction:
        """Map one raw provider record onto the common Transaction shape."""

    def fee_fitid(self, txn: Transaction) -> str:
        return f"{txn.reference}-1"

    def fee_memo(self, txn: Transaction) -> str:
        return f"fee for:{txn.reference}"

    def sort_transactions(self, txns: list[Transaction]) -> list[Transaction]:
        """Stable ascending sort by effective date."""
        return sorted(txns, key=lambda t: t.effective_date)
