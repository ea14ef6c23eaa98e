"""
Stripe transaction source (balance transactions + reporting API).

Stripe specifics:
- Timestamps are Unix seconds, amounts are integers in the currency's
  minor unit (cents), except for zero-decimal currencies.
- Data is published with a delay of up to a day; the ending balance report
  type advertises how far data is available. A start at or past that point
  means "no data yet".
- The ending balance comes from an asynchronous report run. The run is
  requested before paging through transactions so it has time to finish,
  then polled and downloaded as CSV.
"""

import csv
import io
import logging
import time
from collections.abc import Callable
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

from ..errors import PaymentsOfxError, ReportGenerationFailed
from ..http_client.client import ResilientHttpClient
from ..schemas.transaction import (
    NO_DATA_YET,
    BalanceSnapshot,
    NoDataYet,
    ProviderResult,
    ReportInterval,
    Transaction,
    TransactionCategory,
)
from .base import ProviderSource, to_decimal, validate_interval

logger = logging.getLogger(__name__)

STRIPE_BASE_URL = "https://api.stripe.com"
STRIPE_API_VERSION = "2024-06-20"
STRIPE_REPORT_TYPE = "ending_balance_reconciliation.summary.1"
STRIPE_PAGE_SIZE = 25
STRIPE_ACCOUNT_ID = "dashboard.stripe.com"

STRIPE_DEFAULT_HEADERS = {"Stripe-Version": STRIPE_API_VERSION}
STRIPE_CONTENT_TYPE = "application/x-www-form-urlencoded"

# Report polling: 0 s first, then +15 s per attempt up to one minute.
POLL_STEP_SECONDS = 15
POLL_MAX_SECONDS = 60

# https://docs.stripe.com/currencies#zero-decimal
ZERO_DECIMAL_CURRENCIES = frozenset(
    {
        "BIF", "CLP", "DJF", "GNF", "JPY", "KMF", "KRW", "MGA",
        "PYG", "RWF", "UGX", "VND", "VUV", "XAF", "XOF", "XPF",
    }
)

_CATEGORY = {
    "charge": TransactionCategory.PAYMENT,
    "fee": TransactionCategory.FEE,  # non-payment-related fee
    "tax": TransactionCategory.FEE,
    "payout": TransactionCategory.XFER,
    "payout_reversal": TransactionCategory.XFER,
    "topup": TransactionCategory.XFER,
    "topup_reversal": TransactionCategory.XFER,
    "transfer": TransactionCategory.XFER,
    "transfer_reversal": TransactionCategory.XFER,
}


def reporting_category(category: str, amount: Decimal) -> TransactionCategory:
    """OFX type for a Stripe reporting category."""
    return _CATEGORY.get((category or "").lower()) or TransactionCategory.by_sign(amount)


def to_unix(value: datetime) -> int:
    return int(value.timestamp())


def from_unix(value: int | float) -> datetime:
    return datetime.fromtimestamp(int(value), tz=timezone.utc)


def require_field(data: dict[str, Any], key: str, what: str) -> Any:
    """data[key], or PaymentsOfxError naming the missing field."""
    value = data.get(key)
    if value is None or value == "":
        raise PaymentsOfxError(f"Stripe {what} has no '{key}' field")
    return value


def unix_field(data: dict[str, Any], key: str, what: str) -> int:
    value = require_field(data, key, what)
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise PaymentsOfxError(f"Stripe {what} has a non-numeric '{key}': {value!r}") from e


def minor_to_major(
    amount: Any, currency: str, field: str = "amount", default: Decimal | None = None
) -> Decimal:
    """Convert an integer minor-unit amount to major units."""
    value = to_decimal(amount, field=field, default=default)
    if currency.upper() in ZERO_DECIMAL_CURRENCIES:
        return value
    return value / 100


def parse_balance_csv(text: str) -> Decimal:
    """
    Extract the ending balance from a report run CSV.

    Expected shape:
        reporting_category,net
        charge,100.00
        fee,-0.15
        total,99.85

    Uses the 'net' column (else the last column) of the 'total' row (else
    the last row).

    Raises:
        PaymentsOfxError: Report is empty or the balance cell is blank or
            not a number
    """
    table = [row for row in csv.reader(io.StringIO(text)) if row]
    if not table:
        raise PaymentsOfxError("Stripe balance report is empty")

    headings = [h.strip().lower() for h in table[0]]
    col_category = headings.index("reporting_category") if "reporting_category" in headings else 0
    col_net = headings.index("net") if "net" in headings else len(headings) - 1

    row = table[-1]
    for candidate in table[1:]:
        if len(candidate) > col_category and candidate[col_category].strip().lower() == "total":
            row = candidate
            break

    balance = row[col_net] if len(row) > col_net else None
    return to_decimal(balance, field="Stripe balance report total")


class StripeSource(ProviderSource):
    """Balance-affecting Stripe transactions for one currency."""

    name = "stripe"
    institution_id = "Stripe"
    fee_payee_name = "Stripe processing fees"

    def __init__(
        self,
        client: ResilientHttpClient,
        base_url: str = STRIPE_BASE_URL,
        sleep: Callable[[float], None] = time.sleep,
        page_size: int = STRIPE_PAGE_SIZE,
    ):
        super().__init__(client, base_url)
        self.sleep = sleep
        self.page_size = page_size
        self._currency = "USD"

    def fetch(
        self, start: datetime, end: datetime, currency: str = "USD"
    ) -> ProviderResult | NoDataYet:
        start, end = validate_interval(start, end)
        start_ts, end_ts = to_unix(start), to_unix(end)

        available_end = self._available_end()
        if start_ts >= available_end:
            logger.info(
                "Stripe has no data for start %s yet (available until %s)",
                start.isoformat(),
                from_unix(available_end).isoformat(),
            )
            return NO_DATA_YET

        end_ts = min(end_ts, available_end)
        logger.info(
            "Stripe interval: %s to %s, report date %s",
            from_unix(start_ts).isoformat(),
            from_unix(end_ts).isoformat(),
            from_unix(available_end).isoformat(),
        )

        report_id = self._request_balance_report(end_ts, currency)

        self._currency = currency
        raw = self._list_balance_transactions(start_ts, end_ts, currency)
        txns = self.sort_transactions([self.normalize(item) for item in raw])
        logger.info("Stripe returned %d transaction(s)", len(txns))

        balance = self._balance_from_report(report_id)

        interval = ReportInterval(from_unix(start_ts), from_unix(end_ts))
        return ProviderResult(
            report_date=from_unix(available_end),
            interval=interval,
            balance=BalanceSnapshot(amount=balance, as_of=interval.end),
            transactions=tuple(txns),
            account_id=STRIPE_ACCOUNT_ID,
        )

    def _available_end(self) -> int:
        response = self.client.get(
            f"{self.base_url}/v1/reporting/report_types/{STRIPE_REPORT_TYPE}"
        )
        data = response.json or {}
        logger.debug(
            "Stripe data available from %s to %s",
            data.get("data_available_start"),
            data.get("data_available_end"),
        )
        return unix_field(data, "data_available_end", f"report type {STRIPE_REPORT_TYPE}")

    def _request_balance_report(self, interval_end: int, currency: str) -> str:
        response = self.client.post(
            f"{self.base_url}/v1/reporting/report_runs",
            data={
                "report_type": STRIPE_REPORT_TYPE,
                "parameters[currency]": currency.lower(),
                "parameters[interval_end]": str(interval_end),
                "parameters[columns[0]]": "reporting_category",
                "parameters[columns[1]]": "net",
            },
        )
        data = response.json or {}
        if data.get("status") == "failed":
            raise ReportGenerationFailed(data.get("id"), data.get("error"))

        report_id = require_field(data, "id", "report run")
        logger.info("Requested Stripe balance report %s", report_id)
        return report_id

    def _list_balance_transactions(
        self, start_ts: int, end_ts: int, currency: str
    ) -> list[dict[str, Any]]:
        """Page through /v1/balance_transactions for [start_ts, end_ts)."""
        results: list[dict[str, Any]] = []
        starting_after = None

        while True:
            params = {
                "limit": self.page_size,
                "currency": currency.lower(),
                "expand[]": "data.source",
                "created[gte]": start_ts,
                "created[lt]": end_ts,
            }
            if starting_after:
                params["starting_after"] = starting_after

            response = self.client.get(f"{self.base_url}/v1/balance_transactions", params=params)
            body = response.json or {}
            page = body.get("data") or []
            results.extend(page)

            if not body.get("has_more") or not page:
                return results
            starting_after = require_field(page[-1], "id", "balance transaction")

    def _balance_from_report(self, report_id: str) -> Decimal:
        """Poll the report run until it leaves 'pending', then parse its CSV."""
        url = f"{self.base_url}/v1/reporting/report_runs/{report_id}"
        delay = 0
        while True:
            if delay > 0:
                logger.debug("Stripe report %s pending, waiting %d s", report_id, delay)
                self.sleep(delay)
            delay = min(delay + POLL_STEP_SECONDS, POLL_MAX_SECONDS)

            data = self.client.get(url).json or {}
            if data.get("status") != "pending":
                break

        if data.get("status") == "failed":
            logger.error(f"Stripe report {report_id} failed: {data.get('error')}")
            raise ReportGenerationFailed(report_id, data.get("error"))

        result_url = (data.get("result") or {}).get("url")
        if not result_url:
            raise ReportGenerationFailed(report_id, "report has no result file")

        csv_text = self.client.get(result_url).text
        logger.debug("Stripe balance report:\n%s", csv_text)
        return parse_balance_csv(csv_text)

    def normalize(self, raw: dict[str, Any]) -> Transaction:
        txn_id = require_field(raw, "id", "balance transaction")
        created = unix_field(raw, "created", f"balance transaction {txn_id}")
        currency = raw.get("currency") or self._currency
        src = raw.get("source") if isinstance(raw.get("source"), dict) else {}
        billing = src.get("billing_details") or {}

        gross = minor_to_major(raw.get("amount"), currency, field=f"amount of {txn_id}")
        fee = minor_to_major(
            raw.get("fee"), currency, field=f"fee of {txn_id}", default=Decimal("0")
        )
        category = raw.get("reporting_category") or ""

        memo = []
        if billing.get("name"):
            memo.append(billing["name"])
        if billing.get("email"):
            memo.append(billing["email"])
        memo.append(category)
        memo.append(src.get("id") or txn_id)
        if src.get("customer"):
            memo.append(f"PAYER:{src['customer']}")
        if src.get("destination"):
            memo.append(f"BANK:{src['destination']}")

        return Transaction(
            id=txn_id,
            reference=src.get("id") or txn_id,
            effective_date=from_unix(created),
            amount_gross=gross,
            amount_fee=fee,
            counterparty_name=raw.get("description") or raw.get("object") or "",
            category=reporting_category(category, gross),
            memo_parts=tuple(memo),
        )

    def fee_fitid(self, txn: Transaction) -> str:
        return f"{txn.id}-1"

    def fee_memo(self, txn: Transaction) -> str:
        return f"for:{txn.reference}"
