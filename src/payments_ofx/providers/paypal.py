"""
PayPal transaction source (Transaction Search + Balances reporting API).

PayPal specifics:
- Report intervals are end-INCLUSIVE with 1 second resolution, so the
  exclusive statement end is pulled back one second on the way in and
  pushed forward one second on the way out.
- A single request may span at most 31 days; longer intervals are split
  into chunks whose boundaries are exactly one second apart.
- Transaction history is refreshed every few hours. A start date newer than
  the published data is rejected with a 'start_date' error, which means
  "no data yet", not failure.
- Fee amounts are reported as negative values.
"""

import logging
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any

from ..errors import HttpError, PaymentsOfxError
from ..http_client.client import HttpRequest, HttpResponse, ResilientHttpClient
from ..schemas.transaction import (
    NO_DATA_YET,
    BalanceSnapshot,
    NoDataYet,
    ProviderResult,
    ReportInterval,
    Transaction,
    TransactionCategory,
)
from .base import (
    ProviderSource,
    format_timestamp,
    parse_timestamp,
    to_decimal,
    validate_interval,
)

logger = logging.getLogger(__name__)

PAYPAL_BASE_URL = "https://api-m.paypal.com"
PAYPAL_SANDBOX_URL = "https://api-m.sandbox.paypal.com"

PAYPAL_MAX_INTERVAL = timedelta(days=31)
PAYPAL_RESOLUTION = timedelta(seconds=1)

PAYPAL_DEFAULT_HEADERS = {
    "Accept": "application/json",
    "Accept-Language": "en_US",
}
PAYPAL_CONTENT_TYPE = "application/json"

# Event code 'T0400' → group '04'
_GROUP_CATEGORY = {
    "00": TransactionCategory.PAYMENT,
    "01": TransactionCategory.FEE,  # non-payment-related fee
    "03": TransactionCategory.XFER,
    "04": TransactionCategory.XFER,
    "17": TransactionCategory.XFER,
    "20": TransactionCategory.XFER,
    "22": TransactionCategory.XFER,
    "08": TransactionCategory.INT,
    "14": TransactionCategory.INT,
}

_CODE_LABEL = {
    "T0002": "recurring payment",
    "T0013": "donation payment",
}

_GROUP_LABEL = {
    "00": "payment",
    "01": "fee",
    "03": "deposit from bank",
    "04": "withdrawal to bank",
}


def event_category(code: str, amount: Decimal) -> TransactionCategory:
    """OFX type for a PayPal transaction event code."""
    return _GROUP_CATEGORY.get(code[1:3]) or TransactionCategory.by_sign(amount)


def event_label(code: str, amount: Decimal) -> str:
    """Human-readable name for a PayPal transaction event code."""
    if code in _CODE_LABEL:
        return _CODE_LABEL[code]
    label = _GROUP_LABEL.get(code[1:3])
    if label:
        return label
    return "account debit" if amount < 0 else "account credit"


def chunk_interval(
    start: datetime, end: datetime, max_interval: timedelta = PAYPAL_MAX_INTERVAL
) -> list[tuple[datetime, datetime]]:
    """
    Split an end-inclusive interval into chunks no longer than max_interval.

    Each chunk is end-inclusive; the next chunk starts one resolution unit
    after the previous one ends, so nothing is fetched twice or skipped.
    """
    chunks = []
    chunk_start = start
    while True:
        chunk_end = min(end, chunk_start + max_interval)
        chunks.append((chunk_start, chunk_end))
        chunk_start = chunk_end + PAYPAL_RESOLUTION
        if chunk_start > end:
            return chunks


def is_start_date_rejection(response: HttpResponse) -> bool:
    """True if PayPal rejected the request because the start date is too new."""
    if response.status not in (400, 422):
        return False
    body = response.json if isinstance(response.json, dict) else {}
    texts = [str(body.get("message", ""))]
    for detail in body.get("details") or []:
        if isinstance(detail, dict):
            texts.extend(str(detail.get(key, "")) for key in ("field", "issue", "description"))
    blob = " ".join(texts).lower()
    return "start_date" in blob or "start date" in blob


class PayPalSource(ProviderSource):
    """Balance-affecting PayPal transactions for one currency."""

    name = "paypal"
    institution_id = "PayPal"
    fee_payee_name = "PayPal"

    def __init__(
        self,
        client: ResilientHttpClient,
        base_url: str = PAYPAL_BASE_URL,
        max_interval: timedelta = PAYPAL_MAX_INTERVAL,
    ):
        super().__init__(client, base_url)
        self.max_interval = max_interval

    def _page_request(
        self,
        start: datetime,
        end: datetime,
        currency: str,
        page: int,
        suppress_errors: bool = False,
    ) -> HttpRequest:
        return HttpRequest(
            url=f"{self.base_url}/v1/reporting/transactions",
            params={
                "start_date": format_timestamp(start),
                "end_date": format_timestamp(end),
                "fields": "transaction_info,payer_info",
                "transaction_currency": currency,
                "page": page,
            },
            suppress_errors=suppress_errors,
        )

    def fetch(
        self, start: datetime, end: datetime, currency: str = "USD"
    ) -> ProviderResult | NoDataYet:
        start, end = validate_interval(start, end)
        # Statement end is exclusive; PayPal's is inclusive.
        start, inclusive_end = validate_interval(start, end - PAYPAL_RESOLUTION)

        pages: list[list[dict[str, Any]]] = []
        account_id = ""
        report_date: datetime | None = None
        resolved_start: datetime | None = None
        resolved_end: datetime | None = None

        for index, (chunk_start, chunk_end) in enumerate(
            chunk_interval(start, inclusive_end, self.max_interval)
        ):
            logger.info(
                "PayPal chunk: %s to %s", format_timestamp(chunk_start), format_timestamp(chunk_end)
            )

            # Page 1 synchronously, to learn the page count.
            first = self.client.fetch(
                self._page_request(chunk_start, chunk_end, currency, 1, suppress_errors=index == 0)
            )
            if not first.ok:
                if is_start_date_rejection(first):
                    logger.info(
                        "PayPal has no data for start date %s yet", format_timestamp(chunk_start)
                    )
                    return NO_DATA_YET
                raise HttpError(first.url, first.status, first.text)

            data = first.json or {}
            total_pages = int(data.get("total_pages") or 1)
            account_id = data.get("account_number") or account_id

            chunk_report_date = self._timestamp(data, "last_refreshed_datetime", chunk_end)
            chunk_start_resolved = self._timestamp(data, "start_date", chunk_start)
            chunk_end_resolved = self._timestamp(data, "end_date", chunk_end)
            report_date = max(filter(None, (report_date, chunk_report_date)))
            resolved_start = min(filter(None, (resolved_start, chunk_start_resolved)))
            resolved_end = max(filter(None, (resolved_end, chunk_end_resolved)))

            pages.append(data.get("transaction_details") or [])

            if total_pages > 1:
                # Remaining pages in parallel.
                responses = self.client.fetch_all(
                    [
                        self._page_request(chunk_start, chunk_end, currency, page)
                        for page in range(2, total_pages + 1)
                    ]
                )
                for response in responses:
                    pages.append((response.json or {}).get("transaction_details") or [])

            logger.debug("PayPal chunk done: %d page(s)", total_pages)

        if report_date is None or resolved_start is None or resolved_end is None:
            raise PaymentsOfxError("PayPal returned no transaction pages")

        balance_amount = self._fetch_balance(resolved_end, currency)

        txns = self.sort_transactions([self.normalize(raw) for page in pages for raw in page])
        logger.info("PayPal returned %d transaction(s)", len(txns))

        # Back to an exclusive end.
        exclusive_end = resolved_end + PAYPAL_RESOLUTION
        return ProviderResult(
            report_date=report_date,
            interval=ReportInterval(resolved_start, exclusive_end),
            balance=BalanceSnapshot(amount=balance_amount, as_of=exclusive_end),
            transactions=tuple(txns),
            account_id=account_id,
        )

    @staticmethod
    def _timestamp(data: dict[str, Any], key: str, default: datetime) -> datetime:
        value = data.get(key)
        return parse_timestamp(value) if value else default

    def _fetch_balance(self, as_of: datetime, currency: str) -> Decimal:
        """Total balance at as_of (inclusive) for the currency."""
        response = self.client.fetch(
            HttpRequest(
                url=f"{self.base_url}/v1/reporting/balances",
                params={
                    "as_of_time": format_timestamp(as_of),
                    "currency_code": currency,
                },
            )
        )
        balances = (response.json or {}).get("balances") or []
        if not balances:
            message = f"PayPal returned no {currency} balance as of {as_of.isoformat()}"
            logger.error(message)
            raise PaymentsOfxError(message)

        entry = next((b for b in balances if b.get("currency") == currency), balances[0])
        return to_decimal(
            (entry.get("total_balance") or {}).get("value"), field=f"PayPal {currency} balance"
        )

    def normalize(self, raw: dict[str, Any]) -> Transaction:
        ti = raw.get("transaction_info") or {}
        pi = raw.get("payer_info") or {}

        txn_id = ti.get("transaction_id", "")
        code = ti.get("transaction_event_code", "")
        date = ti.get("transaction_updated_date") or ti.get("transaction_initiation_date")
        if not date:
            raise PaymentsOfxError(f"PayPal transaction {txn_id!r} has no date")

        gross = to_decimal(
            (ti.get("transaction_amount") or {}).get("value"),
            field=f"amount of PayPal transaction {txn_id!r}",
        )
        # PayPal reports fees as negative numbers; store the charge.
        fee = -to_decimal(
            (ti.get("fee_amount") or {}).get("value"),
            field=f"fee of PayPal transaction {txn_id!r}",
            default=Decimal("0"),
        )
        label = event_label(code, gross)

        memo: list[str] = []
        payer_name = pi.get("payer_name")
        if payer_name:
            if pi.get("email_address"):
                memo.append(pi["email_address"])
            memo.append(txn_id)

            # Organization name, then individual name, then the event label.
            name = (payer_name.get("alternate_full_name") or "").strip()
            if not name:
                given = payer_name.get("given_name") or ""
                surname = payer_name.get("surname") or ""
                name = f"{given} {surname}".strip()
            if not name:
                name = label
            else:
                memo.append(label)
        else:
            name = label
            memo.append(txn_id)

        if ti.get("transaction_subject"):
            memo.append(ti["transaction_subject"])
        if ti.get("paypal_account_id"):
            memo.append(f"PAYER:{ti['paypal_account_id']}")
        if ti.get("paypal_reference_id"):
            memo.append(f"{ti.get('paypal_reference_id_type', '')}:{ti['paypal_reference_id']}")
        if ti.get("bank_reference_id"):
            memo.append(f"BANK:{ti['bank_reference_id']}")

        return Transaction(
            id=f"{txn_id}-{code}",
            reference=txn_id,
            effective_date=parse_timestamp(date),
            amount_gross=gross,
            amount_fee=fee,
            counterparty_name=name,
            category=event_category(code, gross),
            memo_parts=tuple(memo),
        )

    def fee_memo(self, txn: Transaction) -> str:
        return f"processing fee for:{txn.reference}"
