"""
Report assembly: provider result → statement entries → OFX text.

Fee rendering:
- net mode: one entry per transaction at gross - fee
- gross mode: one entry at gross, plus a FEE entry at -fee when the fee is
  non-zero, so a transaction's entries always add up to its net amount
"""

import logging
import time
from collections.abc import Callable, Iterable, Mapping
from datetime import datetime

from ..auth.manager import (
    ApiKeyAuthManager,
    ApiKeyCredential,
    Clock,
    OAuthAuthManager,
    OAuthCredential,
    TokenStore,
    utc_now,
)
from ..config import Config
from ..http_client.client import ResilientHttpClient
from ..http_client.retry import RATE_LIMIT_SCHEDULE
from ..ofx.encoder import render_statement
from ..providers.base import ProviderSource
from ..providers.paypal import PAYPAL_CONTENT_TYPE, PAYPAL_DEFAULT_HEADERS, PayPalSource
from ..providers.stripe import STRIPE_CONTENT_TYPE, STRIPE_DEFAULT_HEADERS, StripeSource
from ..schemas.transaction import (
    NO_DATA_YET,
    NoDataYet,
    Report,
    ReportMode,
    StatementEntry,
    Transaction,
    TransactionCategory,
)

logger = logging.getLogger(__name__)


def build_entries(
    source: ProviderSource, transactions: Iterable[Transaction], mode: ReportMode | str
) -> list[StatementEntry]:
    """Statement entries for transactions, in order."""
    mode = ReportMode(mode)
    entries: list[StatementEntry] = []

    for txn in transactions:
        amount = txn.amount_net if mode == ReportMode.NET else txn.amount_gross
        entries.append(
            StatementEntry(
                trn_type=txn.category,
                posted=txn.effective_date,
                amount=amount,
                fitid=txn.id,
                name=txn.counterparty_name,
                memo=txn.memo,
            )
        )

        if mode == ReportMode.GROSS and txn.amount_fee != 0:
            entries.append(
                StatementEntry(
                    trn_type=TransactionCategory.FEE,
                    posted=txn.effective_date,
                    amount=-txn.amount_fee,
                    fitid=source.fee_fitid(txn),
                    name=source.fee_payee_name,
                    memo=source.fee_memo(txn),
                )
            )

    return entries


class ReportAssembler:
    """Produces statements from registered provider sources."""

    def __init__(self, sources: Mapping[str, ProviderSource], clock: Clock = utc_now):
        self.sources = dict(sources)
        self.clock = clock

    def generate_report(
        self,
        provider: str,
        start: datetime,
        end: datetime | None = None,
        currency: str = "USD",
        mode: ReportMode | str = ReportMode.NET,
    ) -> Report | NoDataYet:
        """
        Build an OFX statement for [start, end).

        Args:
            provider: Registered provider name ('paypal', 'stripe')
            start: Inclusive start
            end: Exclusive end (default: now)
            currency: ISO 4217 currency code
            mode: 'net' or 'gross'

        Returns:
            Report, or NO_DATA_YET if the provider has nothing published for
            the window yet

        Raises:
            ValueError: Unknown provider or mode
            InvalidInterval: start is later than end
        """
        source = self.sources.get(provider)
        if source is None:
            raise ValueError(
                f"Unknown provider {provider!r} (configured: {', '.join(sorted(self.sources)) or 'none'})"
            )
        mode = ReportMode(mode)
        if end is None:
            end = self.clock()

        logger.info(f"Generating {provider} {currency} report ({mode.value})")
        result = source.fetch(start, end, currency)
        if result is NO_DATA_YET:
            logger.info(f"No {provider} data available yet for start {start.isoformat()}")
            return NO_DATA_YET

        entries = build_entries(source, result.transactions, mode)
        encoded = render_statement(
            file_date=result.report_date,
            start=result.interval.start,
            end=result.interval.end,
            bank_id=source.institution_id,
            acct_id=result.account_id,
            currency=currency,
            entries=entries,
            balance=result.balance.amount,
            balance_as_of=result.balance.as_of,
        )

        report = Report(
            provider=provider,
            currency=currency,
            mode=mode,
            report_date=result.report_date,
            interval=result.interval,
            balance=result.balance,
            transactions=list(result.transactions),
            entries=entries,
            encoded=encoded,
        )
        logger.info(
            f"{provider} report: {report.num_txns} transaction(s), "
            f"{len(entries)} entr{'y' if len(entries) == 1 else 'ies'}, balance {report.balance.amount}"
        )
        return report


def build_sources(
    config: Config,
    token_store: TokenStore | None = None,
    clock: Clock = utc_now,
    sleep: Callable[[float], None] = time.sleep,
) -> dict[str, ProviderSource]:
    """Wire configured credentials into ready-to-use provider sources."""
    sources: dict[str, ProviderSource] = {}

    if config.paypal.enabled:
        paypal_auth = OAuthAuthManager(
            "paypal",
            OAuthCredential(config.paypal.client_id, config.paypal.client_secret),
            token_url=config.paypal.token_url,
            token_store=token_store,
            clock=clock,
            timeout=config.http.timeout_seconds,
        )
        paypal_client = ResilientHttpClient(
            paypal_auth,
            default_headers=PAYPAL_DEFAULT_HEADERS,
            content_type=PAYPAL_CONTENT_TYPE,
            sleep=sleep,
            timeout=config.http.timeout_seconds,
            max_workers=config.http.max_workers,
            max_retries=config.http.max_retries,
        )
        sources["paypal"] = PayPalSource(paypal_client, config.paypal.base_url)

    if config.stripe.enabled:
        stripe_auth = ApiKeyAuthManager("stripe", ApiKeyCredential(config.stripe.secret_key))
        stripe_client = ResilientHttpClient(
            stripe_auth,
            default_headers=STRIPE_DEFAULT_HEADERS,
            content_type=STRIPE_CONTENT_TYPE,
            rate_limit_schedule=RATE_LIMIT_SCHEDULE,
            sleep=sleep,
            timeout=config.http.timeout_seconds,
            max_workers=config.http.max_workers,
            max_retries=config.http.max_retries,
        )
        sources["stripe"] = StripeSource(stripe_client, config.stripe.base_url, sleep=sleep)

    logger.debug("Configured providers: %s", ", ".join(sources) or "none")
    return sources
